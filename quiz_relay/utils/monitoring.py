import time
import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List

import psutil

# Newest errors kept in detail; older ones only count
MAX_RECORDED_ERRORS = 100
MAX_LOAD_SAMPLES = 1000


class ScrapeMetrics:
    """Tracks and reports scraping metrics for the lifetime of the process."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.started = time.time()
        self.counters = {
            'tasks_submitted': 0,
            'tasks_succeeded': 0,
            'tasks_failed': 0,
            'pages_loaded': 0,
            'navigation_failures': 0,
            'cache_hits': 0,
            'cache_misses': 0,
            'questions_extracted': 0,
            'errors': 0
        }
        self.questions_by_kind: Dict[str, int] = {}
        self.page_load_times: Deque[float] = deque(maxlen=MAX_LOAD_SAMPLES)
        self.errors: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECORDED_ERRORS)
        self.peak_memory_mb = 0.0
        self.last_memory_check = 0.0

    def record_task(self, succeeded: bool) -> None:
        self.counters['tasks_succeeded' if succeeded else 'tasks_failed'] += 1
        self._update_memory()

    def record_submitted(self) -> None:
        self.counters['tasks_submitted'] += 1

    def record_page_loaded(self, load_time: float = 0) -> None:
        """Record a page visit with load time."""
        self.counters['pages_loaded'] += 1
        if load_time > 0:
            self.page_load_times.append(load_time)

    def record_navigation_failure(self, url: str, error: str) -> None:
        self.counters['navigation_failures'] += 1
        self.record_error('navigation', f"{url}: {error}")

    def record_cache(self, hit: bool) -> None:
        self.counters['cache_hits' if hit else 'cache_misses'] += 1

    def record_questions(self, kinds: List[str]) -> None:
        """Record extracted questions by their kind."""
        self.counters['questions_extracted'] += len(kinds)
        for kind in kinds:
            self.questions_by_kind[kind] = self.questions_by_kind.get(kind, 0) + 1

    def record_error(self, error_type: str, error_message: str) -> None:
        """Record an error occurrence."""
        self.counters['errors'] += 1
        self.errors.append({
            'timestamp': datetime.now().isoformat(),
            'type': error_type,
            'message': error_message
        })

    def _update_memory(self) -> None:
        # psutil calls are not free, sample at most every 10 seconds
        now = time.time()
        if now - self.last_memory_check < 10:
            return
        self.last_memory_check = now
        try:
            memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            self.logger.debug(f"Could not read process memory: {e}")
            return
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

    def summary(self) -> Dict[str, Any]:
        """Snapshot of all counters and derived figures."""
        loads = self.page_load_times
        lookups = self.counters['cache_hits'] + self.counters['cache_misses']
        return {
            'uptime_seconds': round(time.time() - self.started, 1),
            **self.counters,
            'questions_by_kind': dict(self.questions_by_kind),
            'avg_page_load_time': round(sum(loads) / len(loads), 2) if loads else 0,
            'cache_hit_rate': round(self.counters['cache_hits'] / lookups, 2) if lookups else 0,
            'peak_memory_mb': round(self.peak_memory_mb, 1)
        }

    def log_summary(self) -> None:
        stats = self.summary()
        self.logger.info("=" * 60)
        self.logger.info("SCRAPE METRICS")
        self.logger.info("=" * 60)
        for key, value in stats.items():
            self.logger.info(f"  {key}: {value}")
