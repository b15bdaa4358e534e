"""
Quiz Relay Package

Scrapes quiz questions from openedu.ru course units through a pool of headless
browsers and relays them, with generated answers, to a chat front-end.
"""

__version__ = "1.0.0"

from .models import Question, QuestionKind, Session, SessionState, Tab
from .scraper.pool import BrowserWorkerPool, ScrapeTask
from .scraper.openedu import OpenEduScraper
from .scraper.service import ScrapeService
from .relay.command_relay import CommandRelay
from .llm.completion import CompletionClient
from .workflow.orchestrator import WorkflowOrchestrator

__all__ = [
    'Question',
    'QuestionKind',
    'Session',
    'SessionState',
    'Tab',
    'BrowserWorkerPool',
    'ScrapeTask',
    'OpenEduScraper',
    'ScrapeService',
    'CommandRelay',
    'CompletionClient',
    'WorkflowOrchestrator'
]
