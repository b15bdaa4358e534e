"""
Utility modules for the quiz relay.

This package contains:
- Session store backends
- Retry executor
- Text processing and cleaning
- Scrape metrics
"""

from .session_store import SessionStore, MemorySessionStore, JsonFileSessionStore, create_store
from .retry import RetryExecutor, navigation_retry, outbound_retry
from .text_processor import TextProcessor, url_cache_key
from .monitoring import ScrapeMetrics

__all__ = [
    'SessionStore',
    'MemorySessionStore',
    'JsonFileSessionStore',
    'create_store',
    'RetryExecutor',
    'navigation_retry',
    'outbound_retry',
    'TextProcessor',
    'url_cache_key',
    'ScrapeMetrics'
]
