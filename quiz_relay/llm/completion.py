"""
Completion service client and answer parsing.

The completion service is a black box that takes one combined prompt and
returns free text. Answers are recovered line by line with a tolerant regex;
missing lines become the unknown-answer sentinel, and a failed call turns the
whole batch into the pending-answer sentinel instead of an error.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp  # type: ignore

from ..constants import (
    ANSWER_LINE, COMPLETION_MAX_TOKENS, DEFAULT_MODEL, PENDING_ANSWER, PROMPT_FOOTER,
    SYSTEM_PROMPT, UNKNOWN_ANSWER
)
from ..exceptions import CompletionError
from ..models import Question, QuestionKind
from ..utils.retry import RetryExecutor, outbound_retry

logger = logging.getLogger(__name__)


def build_combined_prompt(questions: Sequence[Question]) -> str:
    """
    Render all questions into one numbered prompt.

    Args:
        questions: Questions in delivery order; numbering starts at 1

    Returns:
        str: Prompt text ending with the answer-format instruction
    """
    sections = []
    for index, question in enumerate(questions, 1):
        question_id = question.question_id or 'неизвестно'
        if question.kind is QuestionKind.TEXT:
            sections.append(f"Вопрос {index} (текстовый, ID: {question_id}): {question.text}")
            continue
        type_hint = "(множественный выбор)" if question.is_multiple_choice else "(одиночный выбор)"
        options = "\n".join(f"{i}. {option}" for i, option in enumerate(question.options, 1))
        sections.append(f"Вопрос {index} {type_hint} (ID: {question_id}): {question.text}\nВарианты:\n{options}")

    prompt = "\n\n".join(sections) + "\n\n" + PROMPT_FOOTER
    logger.debug(f"Combined prompt built: {len(questions)} questions, {len(prompt)} chars")
    return prompt


def parse_answers(text: str, count: int) -> List[Optional[str]]:
    """
    Pick ``Answer N: ...`` lines out of a completion.

    Lines with numbers outside 1..count are ignored; a later line for the same
    number wins.

    Returns:
        List of length ``count`` with None where no line matched
    """
    answers: List[Optional[str]] = [None] * count
    for line in (text or '').splitlines():
        match = ANSWER_LINE.search(line.strip())
        if not match:
            continue
        number = int(match.group(1))
        if 0 < number <= count:
            answers[number - 1] = match.group(2).strip()
    return answers


def merge_answers(questions: Sequence[Question], answers: Sequence[Optional[str]]) -> List[Question]:
    return [q.with_answer(a or UNKNOWN_ANSWER) for q, a in zip(questions, answers)]


class CompletionClient:
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(self, base_url: str, api_key: str = '', model: str = DEFAULT_MODEL,
                 referer: str = '', title: str = '', timeout: float = 45.0,
                 retry: Optional[RetryExecutor] = None):
        self.logger = logging.getLogger(__name__)
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.model = model
        self.referer = referer
        self.title = title
        self.timeout = timeout
        self.retry = retry or outbound_retry()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'CompletionClient':
        completion = settings['completion']
        return cls(
            base_url=completion['base_url'],
            api_key=completion.get('api_key', ''),
            model=completion.get('model', DEFAULT_MODEL),
            referer=completion.get('referer', ''),
            title=completion.get('title', ''),
            timeout=completion.get('timeout', 45.0),
            retry=outbound_retry(settings.get('retry', {}).get('outbound'))
        )

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"
        if self.referer:
            headers['HTTP-Referer'] = self.referer
        if self.title:
            headers['X-Title'] = self.title
        return headers

    async def _post(self, payload: Dict[str, Any]) -> str:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(f"{self.base_url}/chat/completions",
                                    json=payload, headers=self._headers()) as response:
                if response.status != 200:
                    body = await response.text()
                    raise CompletionError(f"HTTP {response.status}: {body[:200]}", status=response.status)
                try:
                    data = await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise CompletionError(f"Completion response is not JSON: {e}") from e

        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Malformed completion response: {e}") from e
        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Empty completion response")
        return content.strip()

    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Send one prompt and return the raw completion text.

        Raises:
            CompletionError: On a non-success status or unusable body
            aiohttp.ClientError: On transport failure after all retries
        """
        payload = {
            'model': model or self.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': prompt}
            ],
            'max_tokens': COMPLETION_MAX_TOKENS
        }
        self.logger.info(f"Requesting completion from {payload['model']} ({len(prompt)} chars)")
        return await self.retry.run(self._post, payload)

    async def answer_questions(self, questions: Sequence[Question],
                               combined_prompt: Optional[str] = None,
                               model: Optional[str] = None) -> List[Question]:
        """
        Answer a batch of questions.

        Returns:
            Copies of ``questions`` with ``answer`` set. Never raises for
            collaborator failures: every answer becomes the pending sentinel.
        """
        if not questions:
            return []
        prompt = combined_prompt or build_combined_prompt(questions)
        try:
            raw = await self.complete(prompt, model)
        except (CompletionError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Completion failed, answers deferred: {e}")
            self.logger.debug("Completion error details:", exc_info=True)
            return [q.with_answer(PENDING_ANSWER) for q in questions]

        answers = parse_answers(raw, len(questions))
        matched = sum(1 for a in answers if a)
        self.logger.info(f"Parsed {matched}/{len(questions)} answers from completion")
        return merge_answers(questions, answers)
