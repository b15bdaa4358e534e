"""Completion service client and answer parsing."""

from .completion import CompletionClient, build_combined_prompt, parse_answers

__all__ = [
    'CompletionClient',
    'build_combined_prompt',
    'parse_answers'
]
