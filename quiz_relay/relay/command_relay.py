"""
Out-of-band signalling between the server and the remote browser agent.

The agent and the server never call each other. They meet in the session
store through two queues keyed by session id:

    outbox  command:<id>   written by ``post``, claimed by the agent's ``poll``
    inbox   inbox:<id>     written by the agent's ``push_tabs``, drained by ``await_push``

``await_push`` polls the inbox with a bounded timeout, so waiting for the
agent is an ordinary cancellable awaitable rather than a blind sleep.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..constants import ALLOWED_URL_PREFIXES, RELAY_WAIT, STORE_KEYS, UNTITLED_TAB
from ..exceptions import InvalidPushError
from ..models import PendingCommand, ProcessingStatus
from ..utils.session_store import SessionStore


class CommandRelay:
    def __init__(self, store: SessionStore,
                 allowed_prefixes: Sequence[str] = ALLOWED_URL_PREFIXES,
                 timeout: float = RELAY_WAIT['timeout'],
                 interval: float = RELAY_WAIT['interval'],
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.allowed_prefixes = tuple(allowed_prefixes)
        self.timeout = timeout
        self.interval = interval
        self._sleep = sleep or asyncio.sleep

    @staticmethod
    def _command_key(session_id: str) -> str:
        return f"{STORE_KEYS['command']}{session_id}"

    @staticmethod
    def _inbox_key(session_id: str) -> str:
        return f"{STORE_KEYS['inbox']}{session_id}"

    @staticmethod
    def _status_key(session_id: str) -> str:
        return f"{STORE_KEYS['processing']}{session_id}"

    async def set_status(self, session_id: str, status: ProcessingStatus) -> None:
        await self.store.set(self._status_key(session_id), status.value)

    async def get_status(self, session_id: str) -> ProcessingStatus:
        value = await self.store.get(self._status_key(session_id))
        return ProcessingStatus(value) if value else ProcessingStatus.NONE

    async def post(self, session_id: str, command: str) -> PendingCommand:
        """
        Record a command for the agent, replacing any unclaimed one.

        A push left over from an earlier command is discarded so that the next
        ``await_push`` only sees data produced in answer to this command.
        """
        session_id = str(session_id)
        pending = PendingCommand(command=command, target_session_id=session_id)
        await self.store.delete(self._inbox_key(session_id))
        await self.store.set(self._command_key(session_id), pending.to_dict())
        await self.set_status(session_id, ProcessingStatus.PENDING)
        self.logger.info(f"Command {command!r} posted for session {session_id}")
        return pending

    async def poll(self) -> Optional[PendingCommand]:
        """
        Claim one pending command for the agent.

        Which session is served first when several are waiting is arbitrary;
        there is no fairness guarantee.
        """
        for key in await self.store.keys(STORE_KEYS['command']):
            data = await self.store.pop(key)
            if data:
                command = PendingCommand.from_dict(data)
                self.logger.info(f"Command claimed: {command.command} for session {command.target_session_id}")
                return command
        return None

    async def push_tabs(self, session_id: str, payload: Dict[str, Any]) -> None:
        """
        Accept the agent's tab data for a session.

        Raises:
            InvalidPushError: If ``urls`` or ``titles`` is missing or not a list
        """
        session_id = str(session_id)
        urls = payload.get('urls') if isinstance(payload, dict) else None
        titles = payload.get('titles') if isinstance(payload, dict) else None
        if not isinstance(urls, list) or not isinstance(titles, list):
            self.logger.error(f"Invalid tab push for session {session_id}: {payload!r}")
            await self.set_status(session_id, ProcessingStatus.FAILED)
            raise InvalidPushError("urls and titles are required and must be lists")

        await self.store.set(self._inbox_key(session_id), {
            'urls': urls,
            'titles': titles,
            'cookies': payload.get('cookies') or []
        })
        self.logger.info(f"Received {len(urls)} tabs for session {session_id}")

    async def await_push(self, session_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Wait for the agent's push for a session.

        Returns:
            The pushed payload, or None if nothing arrived within ``timeout``
        """
        session_id = str(session_id)
        timeout = self.timeout if timeout is None else timeout
        polls = max(1, math.ceil(timeout / self.interval)) if self.interval > 0 else 1
        key = self._inbox_key(session_id)

        for _ in range(polls):
            payload = await self.store.pop(key)
            if payload is not None:
                return payload
            await self._sleep(self.interval)

        payload = await self.store.pop(key)
        if payload is None:
            self.logger.warning(f"No tab data from agent for session {session_id} within {timeout:.0f}s")
        return payload

    def filter_allowed(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Scrape targets for the allow-listed URLs of a push.

        Titles are matched by position. Cookies arrive as
        ``[{"url": ..., "cookies": [...]}]`` and are matched by URL.
        """
        urls = payload.get('urls') or []
        titles = payload.get('titles') or []
        cookie_sets = payload.get('cookies') or []

        targets = []
        for index, url in enumerate(urls):
            if not isinstance(url, str) or not url.startswith(self.allowed_prefixes):
                continue
            title = titles[index] if index < len(titles) and titles[index] else UNTITLED_TAB
            cookies = next(
                (c.get('cookies') or [] for c in cookie_sets if isinstance(c, dict) and c.get('url') == url),
                []
            )
            targets.append({'url': url, 'title': title, 'cookies': cookies})

        self.logger.info(f"Allowed tabs: {len(targets)} of {len(urls)}")
        return targets
