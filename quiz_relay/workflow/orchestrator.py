"""
Workflow Orchestrator

Per-session state machine that ties the chat, the command relay, the scrape
service and the completion client together:

    NEW -> TAB_DISCOVERY_PENDING -> TAB_DISCOVERED -> SCRAPE_PENDING
        -> ANSWERS_DELIVERED <-> REGENERATE_PENDING

Failures never escape a trigger; they become chat messages and the session
falls back to the last stable state.
"""

import logging
from typing import Any, Callable, List, Optional

from ..constants import (
    AGENT_COMMAND_ACTIVE_TAB, CALLBACKS, PENDING_ANSWER, QUESTIONS_PER_MESSAGE, STORE_KEYS
)
from ..exceptions import QuizRelayError, SessionDataError
from ..llm.completion import CompletionClient
from ..models import CacheEntry, ProcessingStatus, Question, Session, SessionState, Tab
from ..relay.command_relay import CommandRelay
from ..scraper.service import ScrapeService
from ..utils.session_store import SessionStore
from . import messages
from .messages import ChatGateway


class WorkflowOrchestrator:
    def __init__(self, store: SessionStore, relay: CommandRelay, scraper: ScrapeService,
                 completion: CompletionClient, gateway: ChatGateway,
                 model: Optional[str] = None, push_timeout: Optional[float] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.relay = relay
        self.scraper = scraper
        self.completion = completion
        self.gateway = gateway
        self.model = model
        self.push_timeout = push_timeout

    # Session record helpers

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"{STORE_KEYS['session']}{session_id}"

    async def load_session(self, session_id: str) -> Optional[Session]:
        data = await self.store.get(self._session_key(session_id))
        return Session.from_dict(data) if data else None

    async def _update_session(self, session_id: str, mutate: Callable[[Session], None]) -> Session:
        def mutator(data: Any) -> dict:
            session = Session.from_dict(data) if data else Session(session_id=session_id)
            mutate(session)
            return session.to_dict()

        return Session.from_dict(await self.store.update(self._session_key(session_id), mutator))

    async def _set_state(self, session_id: str, state: SessionState) -> Session:
        def mutate(session: Session) -> None:
            session.state = state
        session = await self._update_session(session_id, mutate)
        self.logger.debug(f"Session {session_id} -> {state.value}")
        return session

    async def _require_user(self, session_id: str) -> bool:
        if await self.store.sismember(STORE_KEYS['users'], session_id):
            return True
        self.logger.info(f"Unregistered session {session_id}, asking to /start")
        await self.gateway.send_message(session_id, messages.START_FIRST)
        return False

    @staticmethod
    def _tab(session: Optional[Session], index: int) -> Tab:
        if session is None or not 0 <= index < len(session.tabs):
            raise SessionDataError(f"No tab {index} for session")
        return session.tabs[index]

    # Triggers

    async def start_session(self, session_id: str) -> Session:
        """Register the session and greet the user."""
        session_id = str(session_id)
        self.logger.info(f"Starting session {session_id}")
        await self.store.sadd(STORE_KEYS['users'], session_id)

        def reset(session: Session) -> None:
            session.state = SessionState.TAB_DISCOVERY_PENDING
            session.tabs = []
            session.questions = []
            session.message_refs = {}

        session = await self._update_session(session_id, reset)
        await self.gateway.send_message(session_id, messages.GREETING, messages.greeting_buttons())
        return session

    async def discover(self, session_id: str, source_handle: Any = None) -> List[Tab]:
        """
        Ask the browser agent for its tabs and scrape every allowed one.

        Tabs are always scraped fresh, bypassing the URL cache.

        Returns:
            The discovered tabs; empty when the agent sent nothing usable
        """
        session_id = str(session_id)
        if not await self._require_user(session_id):
            return []
        if source_handle is not None:
            await self.gateway.edit_message(session_id, source_handle, messages.PROCESSING)

        await self._set_state(session_id, SessionState.TAB_DISCOVERY_PENDING)
        await self.relay.post(session_id, AGENT_COMMAND_ACTIVE_TAB)

        try:
            payload = await self.relay.await_push(session_id, self.push_timeout)
            targets = self.relay.filter_allowed(payload) if payload else []
            tabs = await self.scraper.scrape_tabs(targets) if targets else []
        except QuizRelayError as e:
            self.logger.error(f"Tab discovery failed for session {session_id}: {e}")
            self.logger.debug("Discovery error details:", exc_info=True)
            await self.relay.set_status(session_id, ProcessingStatus.FAILED)
            await self.gateway.send_message(session_id, messages.error_message(str(e)))
            return []

        await self.relay.set_status(
            session_id, ProcessingStatus.COMPLETED if tabs else ProcessingStatus.FAILED
        )
        if not tabs:
            self.logger.info(f"No active tab found for session {session_id}")
            await self.gateway.send_message(session_id, messages.NO_ACTIVE_TAB)
            return []

        def store_tabs(session: Session) -> None:
            session.tabs = list(tabs)
            session.questions = []
            session.message_refs = {}
            session.state = SessionState.TAB_DISCOVERED

        await self._update_session(session_id, store_tabs)
        self.logger.info(f"Session {session_id}: discovered {len(tabs)} tabs")

        text, buttons = messages.render_preview(tabs[0])
        await self.gateway.send_message(session_id, text, buttons)
        return tabs

    async def select_tab(self, session_id: str, index: int, source_handle: Any = None) -> List[Question]:
        """
        Scrape the chosen tab, answer its questions and deliver them in batches.

        Returns:
            The answered questions; empty on any failure
        """
        session_id = str(session_id)
        if not await self._require_user(session_id):
            return []
        if source_handle is not None:
            await self.gateway.edit_message(session_id, source_handle, messages.PLEASE_WAIT)

        try:
            tab = self._tab(await self.load_session(session_id), index)
        except SessionDataError as e:
            self.logger.error(f"Session {session_id}: {e}")
            await self.gateway.send_message(session_id, messages.TAB_DATA_MISSING)
            return []

        await self._set_state(session_id, SessionState.SCRAPE_PENDING)
        self.logger.info(f"Session {session_id}: scraping {tab.url}")
        try:
            entry = await self.scraper.scrape_cached(tab.url, list(tab.cookies))
        except Exception as e:
            self.logger.error(f"Scrape failed for session {session_id}: {e}")
            self.logger.debug("Scrape error details:", exc_info=True)
            await self._set_state(session_id, SessionState.TAB_DISCOVERED)
            await self.gateway.send_message(session_id, messages.error_message(str(e)))
            return []

        if not entry.questions:
            await self._set_state(session_id, SessionState.TAB_DISCOVERED)
            await self.gateway.send_message(session_id, messages.NO_QUESTIONS)
            return []

        try:
            answered = await self._answer_and_deliver(session_id, entry)
        except Exception as e:
            self.logger.error(f"Answer delivery failed for session {session_id}: {e}")
            self.logger.debug("Delivery error details:", exc_info=True)
            await self._set_state(session_id, SessionState.TAB_DISCOVERED)
            await self.gateway.send_message(session_id, messages.error_message(str(e)))
            return []

        await self.gateway.send_message(session_id, messages.ALL_PROCESSED)
        return answered

    async def _answer_and_deliver(self, session_id: str, entry: CacheEntry) -> List[Question]:
        # Old batch messages show other questions now
        def store_questions(session: Session) -> None:
            session.questions = list(entry.questions)
            session.message_refs = {}
        await self._update_session(session_id, store_questions)

        answered = await self.completion.answer_questions(entry.questions, entry.combined_prompt, self.model)

        refs = {}
        for start in messages.batch_starts(len(answered)):
            text, buttons = messages.render_batch(answered, start)
            end = min(start + QUESTIONS_PER_MESSAGE, len(answered))
            self.logger.info(f"Sending questions {start + 1}-{end} to {session_id}")
            refs[start] = await self.gateway.send_message(session_id, text, buttons)

        def deliver(session: Session) -> None:
            session.questions = list(answered)
            session.message_refs = refs
            session.state = SessionState.ANSWERS_DELIVERED
        await self._update_session(session_id, deliver)
        return answered

    async def regenerate(self, session_id: str, question_number: int) -> Optional[Question]:
        """
        Re-answer one question and edit the batch message that shows it.

        Returns:
            The question with its new answer, or None if nothing changed
        """
        session_id = str(session_id)
        if not await self._require_user(session_id):
            return None

        session = await self.load_session(session_id)
        if session is None or not 0 < question_number <= len(session.questions):
            await self.gateway.send_message(session_id, messages.INVALID_QUESTION_NUMBER)
            return None

        batch_start = messages.batch_start_for(question_number)
        handle = session.message_refs.get(batch_start)
        if handle is None:
            self.logger.error(f"No message handle for batch {batch_start} of session {session_id}")
            await self.gateway.send_message(session_id, messages.MESSAGE_NOT_FOUND)
            return None

        previous_state = session.state
        await self._set_state(session_id, SessionState.REGENERATE_PENDING)
        self.logger.info(f"Session {session_id}: regenerating answer {question_number}")

        question = session.questions[question_number - 1]
        try:
            answered = await self.completion.answer_questions([question], model=self.model)
            new_answer = answered[0].answer
        except Exception as e:
            self.logger.error(f"Regeneration failed for session {session_id}: {e}")
            self.logger.debug("Regeneration error details:", exc_info=True)
            new_answer = PENDING_ANSWER
        if new_answer == PENDING_ANSWER:
            await self._set_state(session_id, previous_state)
            await self.gateway.send_message(session_id, messages.regenerate_failed_message(question_number))
            return None

        questions = list(session.questions)
        questions[question_number - 1] = question.with_answer(new_answer)
        text, buttons = messages.render_batch(questions, batch_start, regenerated=question_number)
        try:
            await self.gateway.edit_message(session_id, handle, text, buttons)
        except Exception as e:
            self.logger.error(f"Could not edit batch message for session {session_id}: {e}")
            self.logger.debug("Edit error details:", exc_info=True)
            await self._set_state(session_id, previous_state)
            await self.gateway.send_message(session_id, messages.regenerate_failed_message(question_number))
            return None

        def splice(current: Session) -> None:
            if question_number <= len(current.questions):
                current.questions[question_number - 1] = current.questions[question_number - 1].with_answer(new_answer)
            current.state = SessionState.ANSWERS_DELIVERED
        await self._update_session(session_id, splice)
        return questions[question_number - 1]

    async def dispatch(self, session_id: str, data: str, source_handle: Any = None) -> None:
        """Route a chat callback string to its trigger."""
        session_id = str(session_id)
        self.logger.info(f"Callback {data!r} from session {session_id}")

        if data in (CALLBACKS['get_questions'], CALLBACKS['refresh']):
            await self.discover(session_id, source_handle)
        elif data.startswith(CALLBACKS['select_tab']):
            try:
                index = int(data[len(CALLBACKS['select_tab']):])
            except ValueError:
                index = -1
            await self.select_tab(session_id, index, source_handle)
        elif data.startswith(CALLBACKS['regenerate']):
            try:
                number = int(data[len(CALLBACKS['regenerate']):])
            except ValueError:
                number = 0
            await self.regenerate(session_id, number)
        else:
            self.logger.warning(f"Unknown callback {data!r} from session {session_id}")
            if await self._require_user(session_id):
                await self.gateway.send_message(session_id, messages.UNKNOWN_ACTION)
