"""
Bounded pool of headless browser workers.

Tasks wait in a FIFO queue served by a fixed number of worker coroutines, so
no more than ``concurrency`` browser contexts are ever open at once. Each
task gets its own context: cookies and storage never leak between tasks, and
a crashed page cannot disturb its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError  # type: ignore
from playwright.async_api import async_playwright  # type: ignore

from ..constants import POOL_DEFAULTS, TIMEOUTS, USER_AGENT
from ..exceptions import PoolNotRunningError
from ..utils.monitoring import ScrapeMetrics


@dataclass
class ScrapeTask:
    """
    One unit of pool work.

    ``sink`` receives the handler's result or its exception; the pool creates
    it on submit when the caller does not provide one.
    """
    url: str
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    title: str = ''
    sink: Optional[asyncio.Future] = None


TaskHandler = Callable[[Any, ScrapeTask], Awaitable[Any]]


def format_cookies(url: str, cookies: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert browser-extension cookies to playwright cookie dicts.

    Cookies without a domain are scoped to the URL's host; a missing
    ``expirationDate`` makes a session cookie.
    """
    host = urlparse(url).hostname or ''
    formatted = []
    for cookie in cookies or []:
        if not cookie.get('name'):
            continue
        entry = {
            'name': cookie['name'],
            'value': str(cookie.get('value', '')),
            'domain': cookie.get('domain') or f".{host}",
            'path': cookie.get('path') or '/',
            'expires': float(cookie['expirationDate']) if cookie.get('expirationDate') else -1
        }
        for flag in ('httpOnly', 'secure'):
            if flag in cookie:
                entry[flag] = bool(cookie[flag])
        formatted.append(entry)
    return formatted


class BrowserWorkerPool:
    """
    Concurrency-bounded browser pool with an explicit lifecycle.

    Usage:
        async with BrowserWorkerPool(handler, concurrency=10) as pool:
            future = pool.submit(ScrapeTask(url))
            await pool.join()
    """

    def __init__(self, handler: TaskHandler,
                 concurrency: int = POOL_DEFAULTS['concurrency'],
                 headless: bool = POOL_DEFAULTS['headless'],
                 launch_args: Optional[List[str]] = None,
                 browser_factory: Optional[Callable[[], Awaitable[Any]]] = None,
                 metrics: Optional[ScrapeMetrics] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.logger = logging.getLogger(__name__)
        self.handler = handler
        self.concurrency = concurrency
        self.headless = headless
        self.launch_args = launch_args if launch_args is not None else list(POOL_DEFAULTS['launch_args'])
        self.browser_factory = browser_factory
        self.metrics = metrics

        self._playwright = None
        self._browser = None
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._running = False
        self.active = 0
        self.peak_active = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Launch the browser and the worker coroutines."""
        if self._running:
            return
        self.logger.info(f"Starting browser pool with {self.concurrency} workers")
        if self.browser_factory is not None:
            self._browser = await self.browser_factory()
        else:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
                timeout=TIMEOUTS['launch']
            )
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"browser-worker-{i}")
            for i in range(self.concurrency)
        ]
        self._running = True
        self.logger.info("Browser pool started")

    async def stop(self) -> None:
        """Stop workers, fail queued tasks and close the browser."""
        if not self._running:
            return
        self._running = False

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        while self._queue is not None and not self._queue.empty():
            task = self._queue.get_nowait()
            if task.sink is not None and not task.sink.done():
                task.sink.set_exception(PoolNotRunningError("Browser pool stopped before the task ran"))
            self._queue.task_done()

        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                self.logger.error(f"Error closing browser: {e}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Browser pool stopped")

    async def __aenter__(self) -> 'BrowserWorkerPool':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def submit(self, task: ScrapeTask) -> asyncio.Future:
        """
        Queue a task and return its result sink.

        Raises:
            PoolNotRunningError: If the pool has not been started
        """
        if not self._running:
            raise PoolNotRunningError("Browser pool is not running")
        if task.sink is None:
            task.sink = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(task)
        if self.metrics:
            self.metrics.record_submitted()
        self.logger.debug(f"Queued {task.url} ({self._queue.qsize()} waiting)")
        return task.sink

    async def run(self, task: ScrapeTask) -> Any:
        """Submit a task and wait for its own result."""
        return await self.submit(task)

    async def join(self) -> None:
        """Wait until every queued task has settled, successfully or not."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while True:
            task = await self._queue.get()
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            try:
                result = await self._execute(task)
                if not task.sink.done():
                    task.sink.set_result(result)
                if self.metrics:
                    self.metrics.record_task(True)
            except asyncio.CancelledError:
                if not task.sink.done():
                    task.sink.cancel()
                raise
            except Exception as e:
                self.logger.error(f"[worker {worker_id}] Task failed for {task.url}: {e}")
                self.logger.debug("Task error details:", exc_info=True)
                if not task.sink.done():
                    task.sink.set_exception(e)
                if self.metrics:
                    self.metrics.record_task(False)
            finally:
                self.active -= 1
                self._queue.task_done()

    async def _execute(self, task: ScrapeTask) -> Any:
        context = await self._browser.new_context(user_agent=USER_AGENT)
        try:
            cookies = format_cookies(task.url, task.cookies)
            if cookies:
                await context.add_cookies(cookies)
            page = await context.new_page()
            return await self.handler(page, task)
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                self.logger.debug(f"Error closing context: {e}")
