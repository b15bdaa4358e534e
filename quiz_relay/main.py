import argparse
import asyncio
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional

from .config import load_settings
from .exceptions import QuizRelayError
from .llm.completion import CompletionClient
from .relay.command_relay import CommandRelay
from .scraper.openedu import OpenEduScraper
from .scraper.pool import BrowserWorkerPool
from .scraper.service import ScrapeService
from .utils.monitoring import ScrapeMetrics
from .utils.retry import navigation_retry
from .utils.session_store import SessionStore, create_store
from .workflow.messages import ChatGateway
from .workflow.orchestrator import WorkflowOrchestrator


def setup_logging(settings: Dict[str, Any]) -> None:
    """Set up logging to a rotating file and the console."""
    log_file = settings['logging']['file']
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()

    # Clear any existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_level = getattr(logging, settings['logging']['level'].upper(), logging.INFO)
    root_logger.setLevel(log_level)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=settings['logging'].get('max_size', 10485760),
        backupCount=settings['logging'].get('backup_count', 5),
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s'
    ))
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    ))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info(f"Logging initialized - Level: {settings['logging']['level']}")
    root_logger.debug(f"Log file: {log_file}")


def load_cookies(path: Optional[str]) -> List[Dict[str, Any]]:
    """Read a browser-extension cookie export (a JSON list)."""
    if not path:
        return []
    with open(path, 'r', encoding='utf-8') as f:
        cookies = json.load(f)
    if not isinstance(cookies, list):
        raise ValueError(f"{path} must contain a JSON list of cookies")
    return cookies


def build_pool(settings: Dict[str, Any], metrics: Optional[ScrapeMetrics] = None) -> BrowserWorkerPool:
    """Browser pool wired to the openedu page driver."""
    scraper = OpenEduScraper(retry=navigation_retry(settings['retry']['navigation']), metrics=metrics)
    return BrowserWorkerPool(
        scraper,
        concurrency=settings['pool']['concurrency'],
        headless=settings['pool']['headless'],
        launch_args=settings['pool']['launch_args'],
        metrics=metrics
    )


def build_orchestrator(settings: Dict[str, Any], pool: BrowserWorkerPool, gateway: ChatGateway,
                       store: Optional[SessionStore] = None,
                       metrics: Optional[ScrapeMetrics] = None) -> WorkflowOrchestrator:
    """
    Wire the chat workflow for a bot front-end.

    The caller owns the pool lifecycle and supplies the chat transport.
    """
    store = store or create_store(settings)
    relay = CommandRelay(store, timeout=settings['relay']['timeout'], interval=settings['relay']['interval'])
    scraper = ScrapeService(pool, store, metrics, cache_enabled=settings['cache']['enabled'])
    return WorkflowOrchestrator(
        store, relay, scraper,
        CompletionClient.from_settings(settings),
        gateway,
        model=settings['completion']['model']
    )


async def run_scrape(settings: Dict[str, Any], url: str, cookies: List[Dict[str, Any]],
                     answer: bool = False) -> Dict[str, Any]:
    """Scrape one page, optionally answer its questions, and return a JSON-ready report."""
    logger = logging.getLogger(__name__)
    metrics = ScrapeMetrics()
    store = create_store(settings)

    async with build_pool(settings, metrics) as pool:
        service = ScrapeService(pool, store, metrics, cache_enabled=settings['cache']['enabled'])
        entry = await service.scrape_cached(url, cookies)

    questions = entry.questions
    if answer and questions:
        client = CompletionClient.from_settings(settings)
        questions = await client.answer_questions(questions, entry.combined_prompt)

    logger.info(f"Scraped {len(questions)} questions from {url} "
                f"(expected {entry.expected_question_count})")
    metrics.log_summary()
    return {
        'url': url,
        'expected_question_count': entry.expected_question_count,
        'questions': [q.to_dict() for q in questions],
        'combined_prompt': entry.combined_prompt
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='openedu.ru quiz scraper and answer relay')
    subparsers = parser.add_subparsers(dest='command', required=True)

    scrape = subparsers.add_parser('scrape', help='Scrape the questions of one course unit page')
    scrape.add_argument('url', help='Course unit URL')
    scrape.add_argument('--cookies', type=str, help='JSON file with cookies exported from the browser')
    scrape.add_argument('--answer', action='store_true', help='Ask the completion service for answers')
    scrape.add_argument('--concurrency', type=int, help='Number of browser workers')
    scrape.add_argument('--output', type=str, help='Write the JSON report to this file instead of stdout')
    scrape.add_argument('--config', type=str, default='config/settings.json', help='Path to configuration file')
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)
    if args.concurrency is not None:
        if args.concurrency < 1:
            print(f"Error: Concurrency must be at least 1 (got {args.concurrency})")
            return 1
        settings['pool']['concurrency'] = args.concurrency

    setup_logging(settings)
    logger = logging.getLogger(__name__)

    try:
        cookies = load_cookies(args.cookies)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read cookies: {e}")
        return 1

    try:
        report = await run_scrape(settings, args.url, cookies, answer=args.answer)
    except QuizRelayError as e:
        logger.error(f"Scrape failed: {e}")
        logger.debug("Scrape error details:", exc_info=True)
        return 1

    output = json.dumps(report, ensure_ascii=False, indent=2)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output)
        logger.info(f"Report written to {args.output}")
    else:
        print(output)
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    cli()
