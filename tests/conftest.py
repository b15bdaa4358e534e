"""
Shared pytest fixtures and fakes.

Playwright, the chat transport and the completion service are replaced by
small in-process fakes so every test runs without a browser or network.
"""

from types import SimpleNamespace
from typing import List

import pytest

from quiz_relay.llm.completion import CompletionClient
from quiz_relay.models import Question, QuestionKind
from quiz_relay.utils.retry import RetryExecutor
from quiz_relay.utils.session_store import MemorySessionStore
from quiz_relay.workflow.messages import ChatGateway


class FakePage:
    def __init__(self, context):
        self.context = context
        self.url = 'about:blank'


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.cookies: List[dict] = []
        self.closed = False

    async def add_cookies(self, cookies):
        self.cookies.extend(cookies)

    async def new_page(self):
        return FakePage(self)

    async def close(self):
        self.closed = True
        self.browser.open_contexts -= 1


class FakeBrowser:
    """Stands in for a launched chromium; counts concurrently open contexts."""

    def __init__(self):
        self.contexts: List[FakeContext] = []
        self.open_contexts = 0
        self.peak_open_contexts = 0
        self.closed = False

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        self.open_contexts += 1
        self.peak_open_contexts = max(self.peak_open_contexts, self.open_contexts)
        return context

    async def close(self):
        self.closed = True


class FakeGateway(ChatGateway):
    """Records sent and edited messages; handles are increasing integers."""

    def __init__(self):
        self.sent: List[dict] = []
        self.edits: List[dict] = []
        self._next_handle = 100

    async def send_message(self, chat_id, text, buttons=None):
        self._next_handle += 1
        self.sent.append({'chat_id': chat_id, 'text': text, 'buttons': buttons, 'handle': self._next_handle})
        return self._next_handle

    async def edit_message(self, chat_id, handle, text, buttons=None):
        self.edits.append({'chat_id': chat_id, 'handle': handle, 'text': text, 'buttons': buttons})

    def texts(self) -> List[str]:
        return [m['text'] for m in self.sent]


class ScriptedCompletionClient(CompletionClient):
    """Completion client whose service replies come from a script."""

    def __init__(self, responses=None):
        super().__init__(base_url='http://completion.test/v1', model='test-model')
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    async def complete(self, prompt, model=None):
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def no_sleep(delay):
    pass


def make_questions(count: int, problem_id: str = 'block-1') -> List[Question]:
    """Text questions, except every third one which is a single choice."""
    questions = []
    for number in range(1, count + 1):
        if number % 3 == 0:
            questions.append(Question(
                text=f"Choose option for question {number}",
                kind=QuestionKind.SINGLE_CHOICE,
                options=['Alpha', 'Beta'],
                problem_id=problem_id,
                question_id=f"q{number}_2_1"
            ))
        else:
            questions.append(Question(
                text=f"Explain topic {number}",
                kind=QuestionKind.TEXT,
                problem_id=problem_id,
                question_id=f"q{number}_2_1"
            ))
    return questions


def answer_script(count: int, prefix: str = 'answer') -> str:
    return '\n'.join(f"Ответ {n}: {prefix} {n}" for n in range(1, count + 1))


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def browser_factory(fake_browser):
    async def factory():
        return fake_browser
    return factory


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sleeps():
    """Delays requested from an injected sleep function."""
    return []


@pytest.fixture
def recording_sleep(sleeps):
    async def sleep(delay):
        sleeps.append(delay)
    return sleep


@pytest.fixture
def fast_retry(recording_sleep):
    return RetryExecutor(4, 5.0, name='test', sleep=recording_sleep)


@pytest.fixture
def helpers():
    return SimpleNamespace(make_questions=make_questions, answer_script=answer_script)
