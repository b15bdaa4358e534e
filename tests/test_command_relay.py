import asyncio

import pytest

from quiz_relay.constants import UNTITLED_TAB
from quiz_relay.exceptions import InvalidPushError
from quiz_relay.models import ProcessingStatus
from quiz_relay.relay.command_relay import CommandRelay

PUSH = {
    'urls': ['https://courses.openedu.ru/unit/1', 'https://example.com/other', 'https://apps.openedu.ru/unit/2'],
    'titles': ['Unit 1', 'Other', ''],
    'cookies': [
        {'url': 'https://apps.openedu.ru/unit/2', 'cookies': [{'name': 'sessionid', 'value': 'two'}]},
        {'url': 'https://courses.openedu.ru/unit/1', 'cookies': [{'name': 'sessionid', 'value': 'one'}]}
    ]
}


@pytest.fixture
def relay(store, recording_sleep):
    return CommandRelay(store, timeout=2.0, interval=0.5, sleep=recording_sleep)


async def test_posted_command_is_claimed_once(relay):
    await relay.post('42', 'get-active-tab')
    assert await relay.get_status('42') is ProcessingStatus.PENDING

    command = await relay.poll()
    assert command.command == 'get-active-tab'
    assert command.target_session_id == '42'
    assert await relay.poll() is None


async def test_new_command_replaces_unclaimed_one(relay):
    await relay.post('42', 'first')
    await relay.post('42', 'second')
    assert (await relay.poll()).command == 'second'
    assert await relay.poll() is None


async def test_push_is_received(relay):
    await relay.post('42', 'get-active-tab')
    await relay.push_tabs('42', PUSH)
    payload = await relay.await_push('42')
    assert payload['urls'] == PUSH['urls']
    assert await relay.await_push('42', timeout=0.5) is None


async def test_post_discards_stale_push(relay):
    await relay.push_tabs('42', PUSH)
    await relay.post('42', 'get-active-tab')
    assert await relay.await_push('42') is None


async def test_await_push_times_out(relay, sleeps):
    assert await relay.await_push('42') is None
    assert sleeps == [0.5, 0.5, 0.5, 0.5]


async def test_await_push_sees_push_made_while_waiting(store):
    relay = CommandRelay(store, timeout=2.0, interval=0.01)
    await relay.post('7', 'get-active-tab')
    waiter = asyncio.create_task(relay.await_push('7'))
    await asyncio.sleep(0.03)
    await relay.push_tabs('7', {'urls': [], 'titles': []})
    assert await waiter == {'urls': [], 'titles': [], 'cookies': []}


@pytest.mark.parametrize('payload', [
    {'titles': []},
    {'urls': 'https://courses.openedu.ru', 'titles': []},
    {'urls': [], 'titles': None},
    None
])
async def test_malformed_push_is_rejected(relay, payload):
    with pytest.raises(InvalidPushError):
        await relay.push_tabs('42', payload)
    assert await relay.get_status('42') is ProcessingStatus.FAILED


async def test_status_defaults_to_none(relay):
    assert await relay.get_status('unknown') is ProcessingStatus.NONE


def test_filter_allowed(relay):
    targets = relay.filter_allowed(PUSH)
    assert targets == [
        {'url': 'https://courses.openedu.ru/unit/1', 'title': 'Unit 1',
         'cookies': [{'name': 'sessionid', 'value': 'one'}]},
        {'url': 'https://apps.openedu.ru/unit/2', 'title': UNTITLED_TAB,
         'cookies': [{'name': 'sessionid', 'value': 'two'}]}
    ]


def test_filter_allowed_without_cookies_or_titles(relay):
    targets = relay.filter_allowed({'urls': ['https://courses.openedu.ru/u'], 'titles': []})
    assert targets == [{'url': 'https://courses.openedu.ru/u', 'title': UNTITLED_TAB, 'cookies': []}]
