"""
Browser pool, page driver and extraction engine for the openedu.ru unit player.
"""

from .pool import BrowserWorkerPool, ScrapeTask, format_cookies
from .openedu import OpenEduScraper
from .extraction import extract_questions_from_html, dedupe_questions
from .service import ScrapeService

__all__ = [
    'BrowserWorkerPool',
    'ScrapeTask',
    'format_cookies',
    'OpenEduScraper',
    'extract_questions_from_html',
    'dedupe_questions',
    'ScrapeService'
]
