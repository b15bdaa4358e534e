"""
Text Processing Utilities

Small, pure helpers shared by the extraction engine, the prompt builder and
the chat renderer: boilerplate detection, option cleanup, answer cleanup and
cache keys.
"""

import hashlib
import html
from typing import Optional

from ..constants import (
    ANSWER_PREFIX, BOILERPLATE_PHRASES, OPTION_ENUMERATION, PREVIOUS_ANSWER_PREFIX,
    SCORING_ANNOTATION
)


class TextProcessor:
    """
    Text checks and cleanup for content scraped from the course player.

    Every method is a staticmethod and safe to call with None.
    """

    @staticmethod
    def clean(text: Optional[str]) -> str:
        """Trim surrounding whitespace, returning '' for None."""
        return text.strip() if text else ""

    @staticmethod
    def is_scoring_annotation(text: Optional[str]) -> bool:
        """True for grading metadata such as '1.0/1.0 point (graded)'."""
        return bool(text) and SCORING_ANNOTATION.match(text.strip()) is not None

    @staticmethod
    def is_boilerplate(text: Optional[str]) -> bool:
        """
        True when text cannot be a question: empty, a known boilerplate
        phrase, or a scoring annotation.
        """
        cleaned = TextProcessor.clean(text)
        if not cleaned:
            return True
        return cleaned in BOILERPLATE_PHRASES or TextProcessor.is_scoring_annotation(cleaned)

    @staticmethod
    def is_previous_answer(text: Optional[str]) -> bool:
        """True for an echoed answer from an earlier attempt."""
        return TextProcessor.clean(text).upper().startswith(PREVIOUS_ANSWER_PREFIX)

    @staticmethod
    def strip_enumeration(option: Optional[str]) -> str:
        """
        Remove a leading enumeration marker from an option label.

        Args:
            option: Raw option text, e.g. "2. Paris"

        Returns:
            str: Option text without the marker, e.g. "Paris"
        """
        return OPTION_ENUMERATION.sub('', TextProcessor.clean(option))

    @staticmethod
    def strip_answer_prefix(answer: Optional[str]) -> str:
        """Drop an 'Ответ N:' prefix the model sometimes repeats inside the answer."""
        return ANSWER_PREFIX.sub('', TextProcessor.clean(answer))

    @staticmethod
    def escape_html(text: Optional[str]) -> str:
        """Escape text for HTML chat messages."""
        return html.escape(text or "", quote=False)


def url_cache_key(url: str) -> str:
    """Stable cache key for a page URL."""
    return hashlib.sha1(url.encode('utf-8')).hexdigest()
