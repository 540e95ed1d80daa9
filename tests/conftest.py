import asyncio

import pytest

import ircgate.modules
from ircgate.context import Context
from ircgate.dispatch import Dispatcher
from ircgate.gateway import Message


class FakeClient:
    """Stands in for the Pydle client: records what is sent and answers identity lookups from a table."""

    def __init__(self, nickname='gatebot'):
        self.nickname = nickname
        self.accounts = {}
        self.lookup_delay = None
        self.lookups = []
        self.channels = {}
        self.sent = []
        self.actions = []
        self.joined = []
        self.parted = []

    def is_channel(self, target):
        return bool(target) and target[0] in '#&'

    def add_channel(self, name, ops=(), voices=()):
        self.channels[name] = {'users': set(ops) | set(voices), 'modes': {'o': list(ops), 'v': list(voices)}}

    async def message(self, target, line):
        self.sent.append((target, line))

    async def action(self, target, text):
        self.actions.append((target, text))

    async def account_of(self, nick):
        self.lookups.append(nick)
        if self.lookup_delay is not None:
            await asyncio.sleep(self.lookup_delay)
        return self.accounts.get(nick)

    async def join(self, channel, password=None):
        self.joined.append((channel, password))
        self.channels[channel] = {'users': {self.nickname}, 'modes': {}}

    async def part(self, channel, message=None):
        self.parted.append(channel)
        self.channels.pop(channel, None)

    def lines(self, target=None):
        return [line for to, line in self.sent if target is None or to == target]


@pytest.fixture
def client():
    client = FakeClient()
    client.add_channel('#test')
    client.accounts.update({'carol': 'RootAcct', 'dave': 'adminacct'})
    return client


@pytest.fixture
def context():
    return Context(prefix='!', admins={'rootacct': True, 'adminacct': False}, whois_timeout=0.5)


@pytest.fixture
def bot(client, context):
    """A dispatcher with nothing loaded."""
    return Dispatcher(client, context)


@pytest.fixture
def loaded_bot(bot):
    """A dispatcher with every built-in module loaded."""
    ircgate.modules.install(bot.registry, bot.context)
    return bot


@pytest.fixture
def chat():
    """Returns a coroutine function that feeds a message to a dispatcher and waits until it is fully handled."""
    async def _chat(bot, text, user='alice', target='#test', hostmask=None):
        message = Message.inbound(bot.client, target, user, text, hostmask or '{0}!{0}@example.com'.format(user))
        await bot.handle_message(message)
        await bot.drain()
        return message
    return _chat
