import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..constants import STORE_KEYS
from ..exceptions import QuizRelayError, ScrapeError
from ..llm.completion import build_combined_prompt
from ..models import CacheEntry, ScrapeResult, Tab
from ..utils.monitoring import ScrapeMetrics
from ..utils.session_store import SessionStore
from ..utils.text_processor import url_cache_key
from .pool import BrowserWorkerPool, ScrapeTask


class ScrapeService:
    """
    Front door to the browser pool.

    ``scrape_cached`` consults the URL cache first; a hit never touches the
    pool. The cache is keyed by URL alone, so a second session asking for the
    same page gets the first session's result whatever cookies it supplies.
    """

    def __init__(self, pool: BrowserWorkerPool, store: SessionStore,
                 metrics: Optional[ScrapeMetrics] = None, cache_enabled: bool = True):
        self.logger = logging.getLogger(__name__)
        self.pool = pool
        self.store = store
        self.metrics = metrics
        self.cache_enabled = cache_enabled

    @staticmethod
    def cache_key(url: str) -> str:
        return STORE_KEYS['cache'] + url_cache_key(url)

    async def scrape_fresh(self, url: str, cookies: Optional[List[Dict[str, Any]]] = None,
                           title: str = '') -> ScrapeResult:
        """
        Scrape through the pool, bypassing the cache.

        Raises:
            NavigationError: If the page never loaded
            ScrapeError: If the page driver failed in any other way
        """
        try:
            return await self.pool.run(ScrapeTask(url=url, cookies=list(cookies or []), title=title))
        except QuizRelayError:
            raise
        except Exception as e:
            raise ScrapeError(f"Scrape of {url} failed: {e}") from e

    async def scrape_cached(self, url: str,
                            cookies: Optional[List[Dict[str, Any]]] = None) -> CacheEntry:
        """
        Cached scrape of one URL.

        Only non-empty results are cached, so a page that rendered no quiz
        (expired cookies, slow load) is retried on the next request.
        """
        key = self.cache_key(url)
        if self.cache_enabled:
            cached = await self.store.get(key)
            if cached:
                self.logger.info(f"Using cached result for {url}")
                if self.metrics:
                    self.metrics.record_cache(True)
                return CacheEntry.from_dict(cached)
            if self.metrics:
                self.metrics.record_cache(False)

        result = await self.scrape_fresh(url, cookies)
        entry = CacheEntry(
            url=url,
            questions=result.questions,
            combined_prompt=build_combined_prompt(result.questions),
            expected_question_count=result.expected_question_count
        )
        self.logger.info(f"Scraped {url}: {len(entry.questions)} questions")
        if self.cache_enabled and entry.questions:
            await self.store.set(key, entry.to_dict())
        return entry

    async def scrape_tabs(self, targets: Sequence[Dict[str, Any]]) -> List[Tab]:
        """
        Scrape several tabs concurrently and snapshot the successful ones.

        Args:
            targets: dicts with ``url``, ``title`` and ``cookies``

        Returns:
            Tabs in input order; failed scrapes are logged and left out
        """
        futures = [
            self.pool.submit(ScrapeTask(url=t['url'], cookies=list(t.get('cookies') or []),
                                        title=t.get('title', '')))
            for t in targets
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

        tabs = []
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                self.logger.error(f"Tab scrape failed for {target['url']}: {result}")
                continue
            tabs.append(Tab(
                url=target['url'],
                title=target.get('title', ''),
                cookies=tuple(target.get('cookies') or ()),
                questions=tuple(result.questions)
            ))
        return tabs
