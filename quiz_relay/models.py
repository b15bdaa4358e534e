"""
Data model shared by the scraper, the relay and the workflow.

Records are plain dataclasses that serialise to JSON-compatible dicts so they
can be written to any session store backend.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QuestionKind(Enum):
    """Answer-input shape of a question."""
    TEXT = "text"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"


class ProcessingStatus(Enum):
    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionState(Enum):
    """Per-session workflow states."""
    NEW = "NEW"
    TAB_DISCOVERY_PENDING = "TAB_DISCOVERY_PENDING"
    TAB_DISCOVERED = "TAB_DISCOVERED"
    SCRAPE_PENDING = "SCRAPE_PENDING"
    ANSWERS_DELIVERED = "ANSWERS_DELIVERED"
    REGENERATE_PENDING = "REGENERATE_PENDING"


@dataclass
class Question:
    """
    One extracted quiz question.

    ``answer`` stays None until the completion service has been consulted.
    """
    text: str
    kind: QuestionKind
    options: List[str] = field(default_factory=list)
    problem_id: Optional[str] = None
    question_id: Optional[str] = None
    answer: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        """Composite identity used for deduplication."""
        return (self.problem_id or '', self.question_id or '', self.text)

    @property
    def is_multiple_choice(self) -> bool:
        return self.kind is QuestionKind.MULTI_CHOICE

    def with_answer(self, answer: str) -> 'Question':
        return replace(self, answer=answer)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'problem_id': self.problem_id,
            'question_id': self.question_id,
            'question': self.text,
            'kind': self.kind.value,
            'options': list(self.options)
        }
        if self.answer is not None:
            data['answer'] = self.answer
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        return cls(
            text=data['question'],
            kind=QuestionKind(data.get('kind', QuestionKind.TEXT.value)),
            options=list(data.get('options') or []),
            problem_id=data.get('problem_id'),
            question_id=data.get('question_id'),
            answer=data.get('answer')
        )


@dataclass(frozen=True)
class Tab:
    """Snapshot of one browser tab and the questions scraped from it."""
    url: str
    title: str
    cookies: Tuple[Dict[str, Any], ...] = ()
    questions: Tuple[Question, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'title': self.title,
            'cookies': [dict(c) for c in self.cookies],
            'questions': [q.to_dict() for q in self.questions]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tab':
        return cls(
            url=data['url'],
            title=data.get('title', ''),
            cookies=tuple(data.get('cookies') or ()),
            questions=tuple(Question.from_dict(q) for q in data.get('questions') or ())
        )


@dataclass
class Session:
    """Workflow record for one chat session."""
    session_id: str
    state: SessionState = SessionState.NEW
    tabs: List[Tab] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)
    message_refs: Dict[int, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'state': self.state.value,
            'tabs': [t.to_dict() for t in self.tabs],
            'questions': [q.to_dict() for q in self.questions],
            # JSON object keys are strings
            'message_refs': {str(k): v for k, v in self.message_refs.items()}
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        return cls(
            session_id=str(data['session_id']),
            state=SessionState(data.get('state', SessionState.NEW.value)),
            tabs=[Tab.from_dict(t) for t in data.get('tabs') or []],
            questions=[Question.from_dict(q) for q in data.get('questions') or []],
            message_refs={int(k): v for k, v in (data.get('message_refs') or {}).items()}
        )


@dataclass(frozen=True)
class PendingCommand:
    command: str
    target_session_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'command': self.command, 'target_session_id': self.target_session_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingCommand':
        return cls(command=data['command'], target_session_id=str(data['target_session_id']))


@dataclass
class ScrapeResult:
    """Unique questions of one page plus the per-frame maximum yield."""
    url: str
    questions: List[Question] = field(default_factory=list)
    expected_question_count: int = 0


@dataclass
class CacheEntry:
    """Last successful scrape of a URL together with its combined prompt."""
    url: str
    questions: List[Question]
    combined_prompt: str
    expected_question_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'questions': [q.to_dict() for q in self.questions],
            'combined_prompt': self.combined_prompt,
            'expected_question_count': self.expected_question_count
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheEntry':
        return cls(
            url=data['url'],
            questions=[Question.from_dict(q) for q in data.get('questions') or []],
            combined_prompt=data.get('combined_prompt', ''),
            expected_question_count=data.get('expected_question_count', 0)
        )
