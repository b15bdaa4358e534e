import logging
import time
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError  # type: ignore
from playwright.async_api import Frame, Page  # type: ignore
from playwright.async_api import TimeoutError as PlaywrightTimeoutError  # type: ignore

from ..constants import SELECTORS, TIMEOUTS
from ..exceptions import NavigationError
from ..models import Question, ScrapeResult
from ..utils.monitoring import ScrapeMetrics
from ..utils.retry import RetryExecutor, navigation_retry
from .extraction import dedupe_questions, extract_questions_from_html
from .pool import ScrapeTask

READY_STATE_SCRIPT = "() => document.readyState === 'complete'"


def _markers_script(selectors: List[str]) -> str:
    checks = ' || '.join(f"document.querySelector('{s}')" for s in selectors)
    return f"() => !!({checks})"


class OpenEduScraper:
    """
    Page-level driver for the openedu.ru course unit player.

    Loads the page, finds the unit iframe, waits for it on a best-effort
    basis, walks every nested frame and feeds each frame's HTML to the
    extraction engine. Used as the task handler of a BrowserWorkerPool.
    """

    def __init__(self, retry: Optional[RetryExecutor] = None,
                 metrics: Optional[ScrapeMetrics] = None,
                 timeouts: Optional[dict] = None):
        self.logger = logging.getLogger(__name__)
        self.retry = retry or navigation_retry()
        self.metrics = metrics
        self.timeouts = {**TIMEOUTS, **(timeouts or {})}

    async def __call__(self, page: Page, task: ScrapeTask) -> ScrapeResult:
        return await self.scrape_page(page, task.url)

    async def scrape_page(self, page: Page, url: str) -> ScrapeResult:
        await self.load_page(page, url)
        result = await self.extract(page, url)
        if self.metrics:
            self.metrics.record_questions([q.kind.value for q in result.questions])
        return result

    async def _goto(self, page: Page, url: str) -> None:
        started = time.time()
        response = await page.goto(url, wait_until='networkidle', timeout=self.timeouts['page_load'])
        status = response.status if response is not None else 'n/a'
        self.logger.info(f"Page loaded: {url} (status {status}, {time.time() - started:.1f}s)")
        if self.metrics:
            self.metrics.record_page_loaded(time.time() - started)

    async def load_page(self, page: Page, url: str) -> None:
        """
        Navigate with retries.

        Raises:
            NavigationError: If every attempt failed
        """
        try:
            await self.retry.run(self._goto, page, url)
        except PlaywrightError as e:
            if self.metrics:
                self.metrics.record_navigation_failure(url, str(e))
            raise NavigationError(url, self.retry.max_attempts, e) from e

    async def locate_unit_frame(self, page: Page) -> Optional[Frame]:
        """The primary content frame, or None when the page has no quiz."""
        try:
            await page.wait_for_selector(SELECTORS['unit_frame'], timeout=self.timeouts['unit_frame'])
        except PlaywrightTimeoutError as e:
            self.logger.warning(f"{SELECTORS['unit_frame']} not found: {e}")

        handle = await page.query_selector(SELECTORS['unit_frame'])
        if handle is None:
            return None
        return await handle.content_frame()

    async def wait_for_content(self, frame: Frame) -> None:
        """Wait for the frame document and its content markers; timeouts are tolerated."""
        try:
            await frame.wait_for_function(READY_STATE_SCRIPT, timeout=self.timeouts['frame_ready'])
        except PlaywrightError as e:
            self.logger.warning(f"Unit frame did not finish loading: {e}")

        try:
            await frame.wait_for_function(
                _markers_script(SELECTORS['content_markers']),
                timeout=self.timeouts['content_markers']
            )
        except PlaywrightError as e:
            self.logger.warning(f"Content markers did not appear: {e}")

    @staticmethod
    def collect_frames(frame: Frame) -> List[Frame]:
        """The frame and all its descendants, depth-first."""
        frames = [frame]
        for child in frame.child_frames:
            frames.extend(OpenEduScraper.collect_frames(child))
        return frames

    async def extract(self, page: Page, url: str = '') -> ScrapeResult:
        """
        Extract unique questions from every frame of a loaded page.

        The expected question count is the largest single-frame yield, a
        heuristic upper bound on the number of questions in the unit.
        """
        unit_frame = await self.locate_unit_frame(page)
        if unit_frame is None:
            self.logger.warning(f"No unit frame on {url or page.url}")
            return ScrapeResult(url=url)

        await self.wait_for_content(unit_frame)
        frames = self.collect_frames(unit_frame)
        self.logger.info(f"Found {len(frames)} frames")

        collected: List[Question] = []
        expected = 0
        for frame in frames:
            try:
                html = await frame.content()
            except PlaywrightError as e:
                self.logger.warning(f"Could not read frame {frame.url}: {e}")
                continue
            frame_questions = extract_questions_from_html(html)
            self.logger.debug(f"Frame {frame.url}: {len(frame_questions)} questions")
            collected.extend(frame_questions)
            expected = max(expected, len(frame_questions))

        questions = dedupe_questions(collected)
        self.logger.info(f"Extraction finished: {len(questions)} unique questions, expected {expected}")
        return ScrapeResult(url=url, questions=questions, expected_question_count=expected)
