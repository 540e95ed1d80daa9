import asyncio

import pytest
from pydle.features.rfc1459 import RFC1459Message

from ircgate.access import AccessLevel
from ircgate.bot import Bot

CONFIG = """
[main]
nick = gatebot
server = irc.example.net
whois_timeout = 1

[admins]
carol = root
AdminAcct = admin

[throttle]
burst = 10
rate = 0.01
user_burst = 2
user_rate = 0.01
channel_rate = 0
"""


class Recorder:
    module = 'recorder'

    def __init__(self):
        self.calls = []

    def on_join(self, bot, channel, user):
        self.calls.append(('join', channel, user))

    def on_notice(self, bot, message):
        self.calls.append(('notice', message.user, message.text))


async def never(nick):
    await asyncio.Event().wait()


async def wait_until(predicate, timeout=1):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "timed out"
        await asyncio.sleep(0.01)


def numeric(command, *params):
    return RFC1459Message(command, ['gatebot'] + list(params))


@pytest.fixture
def bot():
    bot = Bot(data=CONFIG)
    yield bot
    for throttle in list(bot.target_throttles.values()):
        throttle.reset()
    bot.global_throttle.reset()


@pytest.fixture
def raw(bot):
    """Records raw lines instead of writing them to a connection."""
    sent = []

    async def rawmsg(command, *args, **kwargs):
        sent.append((command,) + args)

    bot.rawmsg = rawmsg
    return sent


async def stop(bot):
    bot.global_throttle.reset()
    await wait_until(lambda: not bot.global_throttle.running)


def test_config_becomes_client_settings(bot):
    assert bot._nicknames == ['gatebot']
    assert bot.context.whois_timeout == 1
    assert bot.dispatcher.resolver.admins == {'carol': True, 'adminacct': False}
    assert bot.registry.is_loaded('modules') and bot.registry.is_loaded('log')


@pytest.mark.asyncio
async def test_callbacks_are_forwarded_to_plugins(bot):
    recorder = Recorder()
    bot.registry.register(recorder)
    await bot.on_join('#test', 'alice')
    await bot.on_notice('#test', 'services', 'hello there')
    assert recorder.calls == [('join', '#test', 'alice'), ('notice', 'services', 'hello there')]


@pytest.mark.asyncio
async def test_messages_go_to_the_dispatcher(bot, monkeypatch):
    seen = []

    async def handle_message(message):
        seen.append(message)

    monkeypatch.setattr(bot.dispatcher, 'handle_message', handle_message)
    bot.users['alice'] = {'nickname': 'alice', 'username': 'al', 'hostname': 'example.com'}
    await bot.on_message('#test', 'alice', '!roll')
    await bot.on_message('gatebot', 'bob', 'hi')
    assert [(m.text, m.user, m.source, m.is_channel, m.hostmask) for m in seen] == [
        ('!roll', 'alice', '#test', True, 'alice!al@example.com'),
        ('hi', 'bob', 'bob', False, None),
    ]


@pytest.mark.asyncio
async def test_account_numeric_completes_identity_lookup(bot):
    resolver = bot.dispatcher.resolver
    resolver.lookup = never
    task = asyncio.ensure_future(resolver.resolve('dave'))
    await asyncio.sleep(0)
    await bot.on_raw_330(numeric('330', 'dave', 'AdminAcct', 'is logged in as'))
    assert await asyncio.wait_for(task, 1) is AccessLevel.ADMIN


@pytest.mark.asyncio
async def test_identified_numeric_completes_identity_lookup(bot):
    resolver = bot.dispatcher.resolver
    resolver.lookup = never
    task = asyncio.ensure_future(resolver.resolve('Carol'))
    await asyncio.sleep(0)
    await bot.on_raw_307(numeric('307', 'carol', 'has identified for this nick'))
    assert await asyncio.wait_for(task, 1) is AccessLevel.ROOT


@pytest.mark.asyncio
async def test_account_of_reads_whois_reply(bot, raw):
    task = asyncio.ensure_future(bot.account_of('dave'))
    await wait_until(lambda: 'dave' in bot._pending['whois'])
    assert raw == [('WHOIS', 'dave')]
    await bot.on_raw_330(numeric('330', 'dave', 'AdminAcct', 'is logged in as'))
    await bot.on_raw_318(numeric('318', 'dave', 'End of /WHOIS list.'))
    assert await asyncio.wait_for(task, 1) == 'AdminAcct'


@pytest.mark.asyncio
async def test_account_of_falls_back_to_nick_when_identified(bot, raw):
    task = asyncio.ensure_future(bot.account_of('carol'))
    await wait_until(lambda: 'carol' in bot._pending['whois'])
    await bot.on_raw_307(numeric('307', 'carol', 'has identified for this nick'))
    await bot.on_raw_318(numeric('318', 'carol', 'End of /WHOIS list.'))
    assert await asyncio.wait_for(task, 1) == 'carol'


@pytest.mark.asyncio
async def test_account_of_without_account(bot, raw):
    task = asyncio.ensure_future(bot.account_of('erin'))
    await wait_until(lambda: 'erin' in bot._pending['whois'])
    await bot.on_raw_318(numeric('318', 'erin', 'End of /WHOIS list.'))
    assert await asyncio.wait_for(task, 1) is None


@pytest.mark.asyncio
async def test_user_events_pass_through_both_throttles(bot):
    calls = []
    await bot.throttled('alice', lambda: calls.append('sent'))
    assert 'alice' in bot.target_throttles
    await wait_until(lambda: calls)
    assert bot.global_throttle.running
    await wait_until(lambda: 'alice' not in bot.target_throttles)
    assert calls == ['sent']
    await stop(bot)


@pytest.mark.asyncio
async def test_channel_events_skip_target_throttle(bot):
    calls = []
    await bot.throttled('#test', lambda: calls.append('sent'))
    assert bot.target_throttles == {}
    await wait_until(lambda: calls)
    await stop(bot)


@pytest.mark.asyncio
async def test_message_sends_each_line(bot, raw):
    await bot.message('#test', 'one\r\n\ntwo')
    await wait_until(lambda: len(raw) == 2)
    assert raw == [('PRIVMSG', '#test', 'one'), ('PRIVMSG', '#test', 'two')]
    await stop(bot)


@pytest.mark.asyncio
async def test_action_is_sent_once_as_ctcp(bot, raw):
    await bot.action('#nowhere', 'waves')
    await wait_until(lambda: raw)
    await asyncio.sleep(0.02)
    assert raw == [('PRIVMSG', '#nowhere', '\x01ACTION waves\x01')]
    await stop(bot)


@pytest.mark.asyncio
async def test_own_echo_is_not_a_command(bot, raw, monkeypatch):
    lookups = []

    async def account_of(nick):
        lookups.append(nick)

    monkeypatch.setattr(bot.dispatcher.resolver, 'lookup', account_of)
    await bot.message('#test', '!roll')
    await wait_until(lambda: raw)
    await bot.dispatcher.drain()
    assert raw == [('PRIVMSG', '#test', '!roll')]
    assert lookups == []
    await stop(bot)


def test_message_cost(bot):
    assert bot.message_cost(100) == 1.0
