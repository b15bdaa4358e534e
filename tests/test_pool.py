import asyncio

import pytest

from quiz_relay.exceptions import PoolNotRunningError
from quiz_relay.scraper.pool import BrowserWorkerPool, ScrapeTask, format_cookies
from quiz_relay.utils.monitoring import ScrapeMetrics


async def echo_handler(page, task):
    await asyncio.sleep(0.01)
    return task.url


class TestLifecycle:
    async def test_submit_before_start_is_rejected(self, browser_factory):
        pool = BrowserWorkerPool(echo_handler, concurrency=2, browser_factory=browser_factory)
        with pytest.raises(PoolNotRunningError):
            pool.submit(ScrapeTask(url='https://courses.openedu.ru/a'))

    async def test_context_manager_closes_browser(self, browser_factory, fake_browser):
        async with BrowserWorkerPool(echo_handler, concurrency=2, browser_factory=browser_factory) as pool:
            assert pool.running
            assert await pool.run(ScrapeTask(url='https://courses.openedu.ru/a')) == 'https://courses.openedu.ru/a'
        assert not pool.running
        assert fake_browser.closed
        with pytest.raises(PoolNotRunningError):
            pool.submit(ScrapeTask(url='https://courses.openedu.ru/b'))

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            BrowserWorkerPool(echo_handler, concurrency=0)

    async def test_stop_fails_queued_tasks(self, browser_factory):
        release = asyncio.Event()

        async def blocking_handler(page, task):
            await release.wait()
            return task.url

        pool = BrowserWorkerPool(blocking_handler, concurrency=1, browser_factory=browser_factory)
        await pool.start()
        running = pool.submit(ScrapeTask(url='https://courses.openedu.ru/running'))
        queued = pool.submit(ScrapeTask(url='https://courses.openedu.ru/queued'))
        await asyncio.sleep(0.01)

        await pool.stop()
        assert running.cancelled()
        with pytest.raises(PoolNotRunningError):
            await queued


class TestScheduling:
    async def test_active_tasks_never_exceed_concurrency(self, browser_factory, fake_browser):
        async with BrowserWorkerPool(echo_handler, concurrency=3, browser_factory=browser_factory) as pool:
            futures = [pool.submit(ScrapeTask(url=f"https://courses.openedu.ru/{i}")) for i in range(10)]
            await pool.join()

        assert [f.result() for f in futures] == [f"https://courses.openedu.ru/{i}" for i in range(10)]
        assert pool.peak_active == 3
        assert fake_browser.peak_open_contexts <= 3
        assert len(fake_browser.contexts) == 10
        assert all(c.closed for c in fake_browser.contexts)

    async def test_tasks_start_in_submission_order(self, browser_factory):
        started = []

        async def handler(page, task):
            started.append(task.url)
            await asyncio.sleep(0)
            return task.url

        async with BrowserWorkerPool(handler, concurrency=1, browser_factory=browser_factory) as pool:
            for i in range(5):
                pool.submit(ScrapeTask(url=str(i)))
            await pool.join()

        assert started == ['0', '1', '2', '3', '4']

    async def test_failed_task_does_not_affect_siblings(self, browser_factory, fake_browser):
        metrics = ScrapeMetrics()

        async def handler(page, task):
            if task.url.endswith('bad'):
                raise RuntimeError('page crashed')
            return task.url

        async with BrowserWorkerPool(handler, concurrency=2, browser_factory=browser_factory,
                                     metrics=metrics) as pool:
            good = pool.submit(ScrapeTask(url='https://courses.openedu.ru/good'))
            bad = pool.submit(ScrapeTask(url='https://courses.openedu.ru/bad'))
            await pool.join()

            with pytest.raises(RuntimeError, match='page crashed'):
                await bad
            assert await good == 'https://courses.openedu.ru/good'
            assert await pool.run(ScrapeTask(url='https://courses.openedu.ru/after')) == \
                'https://courses.openedu.ru/after'

        assert all(c.closed for c in fake_browser.contexts)
        summary = metrics.summary()
        assert summary['tasks_submitted'] == 3
        assert summary['tasks_succeeded'] == 2
        assert summary['tasks_failed'] == 1

    async def test_each_task_gets_its_own_cookies(self, browser_factory, fake_browser):
        async with BrowserWorkerPool(echo_handler, concurrency=2, browser_factory=browser_factory) as pool:
            await pool.run(ScrapeTask(url='https://courses.openedu.ru/a',
                                      cookies=[{'name': 'sessionid', 'value': 'one'}]))
            await pool.run(ScrapeTask(url='https://apps.openedu.ru/b'))

        first, second = fake_browser.contexts
        assert [c['value'] for c in first.cookies] == ['one']
        assert second.cookies == []
        assert 'user_agent' in first.options


class TestFormatCookies:
    def test_defaults_from_url(self):
        cookies = format_cookies('https://courses.openedu.ru/unit', [{'name': 'csrftoken', 'value': 'abc'}])
        assert cookies == [{
            'name': 'csrftoken',
            'value': 'abc',
            'domain': '.courses.openedu.ru',
            'path': '/',
            'expires': -1
        }]

    def test_extension_fields_are_kept(self):
        cookies = format_cookies('https://courses.openedu.ru/unit', [{
            'name': 'sessionid',
            'value': 'xyz',
            'domain': '.openedu.ru',
            'path': '/courses',
            'expirationDate': 1893456000.5,
            'httpOnly': True,
            'secure': 1
        }])
        assert cookies[0]['domain'] == '.openedu.ru'
        assert cookies[0]['path'] == '/courses'
        assert cookies[0]['expires'] == 1893456000.5
        assert cookies[0]['httpOnly'] is True
        assert cookies[0]['secure'] is True

    def test_nameless_cookies_are_dropped(self):
        assert format_cookies('https://courses.openedu.ru', [{'value': 'orphan'}]) == []
