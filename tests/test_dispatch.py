import asyncio
import random

import pytest

from ircgate.access import AccessLevel
from ircgate.commands import UsageError, command
from ircgate.dispatch import ConnectionState
from ircgate.gateway import Message


class Recorder:
    def __init__(self, module, calls):
        self.module = module
        self.calls = calls

    def on_join(self, bot, channel, user):
        self.calls.append((self.module, channel, user))


class AsyncRecorder(Recorder):
    async def on_join(self, bot, channel, user):
        await asyncio.sleep(0)
        self.calls.append((self.module, channel, user))


class Broken(Recorder):
    def on_join(self, bot, channel, user):
        raise RuntimeError("plugin failure")


def register(bot, fn, **kwargs):
    created = command(fn, **kwargs)
    bot.registry.register(created)
    return created


def test_connection_state_machine(bot):
    assert bot.state is ConnectionState.DISCONNECTED
    assert not bot.set_state(ConnectionState.CONNECTED)
    assert bot.state is ConnectionState.DISCONNECTED
    assert bot.set_state(ConnectionState.CONNECTING)
    assert bot.set_state(ConnectionState.CONNECTED)
    assert not bot.set_state(ConnectionState.CONNECTING)
    assert bot.set_state(ConnectionState.DISCONNECTED)


@pytest.mark.asyncio
async def test_plugin_failures_are_isolated(bot):
    calls = []
    bot.registry.register(Recorder('first', calls), Broken('broken', calls), AsyncRecorder('last', calls))
    await bot.emit('join', '#test', 'alice')
    assert calls == [('first', '#test', 'alice'), ('last', '#test', 'alice')]


@pytest.mark.asyncio
async def test_events_without_handlers_are_skipped(bot):
    calls = []
    bot.registry.register(Recorder('first', calls))
    await bot.emit('kick', '#test', 'alice', 'bob', 'bye')
    assert calls == []


@pytest.mark.asyncio
async def test_plain_messages_are_not_commands(bot, client):
    seen = []

    class Watcher:
        def on_message(self, bot, message):
            seen.append(('message', message.text))

        def on_channel_message(self, bot, message):
            seen.append(('channel', message.text))

    bot.registry.register(Watcher())
    task = await bot.handle_message(Message.inbound(client, '#test', 'alice', 'hello'))
    assert task is None
    assert seen == [('message', 'hello'), ('channel', 'hello')]
    assert client.lookups == []


@pytest.mark.asyncio
async def test_roll_end_to_end(loaded_bot, client, chat):
    await chat(loaded_bot, '!roll -seed:42 3d6')
    rng = random.Random(42)
    expected = ", ".join(str(rng.randint(1, 6)) for _ in range(3))
    assert client.sent == [('#test', 'alice: ' + expected)]
    assert client.lookups == ['alice']


@pytest.mark.asyncio
async def test_permission_denied_end_to_end(loaded_bot, client, chat):
    await chat(loaded_bot, '!modules -unload:roll')
    assert client.lines() == [
        "alice: You don't have the permission to use this command! Only ROOT can use this command! You are NORMAL."
    ]
    assert loaded_bot.registry.lookup('roll') is not None


@pytest.mark.asyncio
async def test_normal_user_cannot_unload_modules(loaded_bot, client, chat):
    await chat(loaded_bot, '!modules -unload:modules')
    assert client.lines() == [
        "alice: You don't have the permission to use this command! Only ROOT can use this command! You are NORMAL."
    ]
    assert loaded_bot.registry.is_loaded('modules')
    assert loaded_bot.registry.lookup('modules') is not None


@pytest.mark.asyncio
async def test_own_messages_are_not_commands(loaded_bot, client, chat):
    await chat(loaded_bot, '!roll', user='GateBot')
    await chat(loaded_bot, '!roll', user='gatebot', target='gatebot')
    assert client.sent == []
    assert client.lookups == []


@pytest.mark.asyncio
async def test_root_unloads_a_module(loaded_bot, client, chat):
    await chat(loaded_bot, '!modules -unload:roll', user='carol')
    assert client.lines() == ['carol: Unloaded the module "roll"']
    await chat(loaded_bot, '!roll')
    assert len(client.sent) == 1


@pytest.mark.asyncio
async def test_unknown_commands_are_silent(loaded_bot, client, chat):
    await chat(loaded_bot, '!nonsense with arguments')
    await chat(loaded_bot, '!')
    assert client.sent == []
    assert client.lookups == []


@pytest.mark.asyncio
async def test_serious_channels_skip_other_commands(bot, client, context, chat):
    async def ping(bot, message):
        await bot.reply(message, 'pong')

    register(bot, ping, name='ping')
    register(bot, ping, name='sping', serious=True)
    context.channel('#test').serious = True
    await chat(bot, '!ping')
    assert client.sent == []
    await chat(bot, '!sping')
    assert client.lines() == ['alice: pong']
    await chat(bot, '!ping', target='gatebot')
    assert client.sent[-1] == ('alice', 'alice: pong')


@pytest.mark.asyncio
async def test_command_errors_are_reported(bot, client, chat):
    async def usage(bot, message):
        raise UsageError("Bad usage!")

    async def explode(bot, message):
        raise ValueError("boom")

    register(bot, usage, name='usage')
    register(bot, explode, name='explode')
    await chat(bot, '!usage')
    await chat(bot, '!explode')
    assert client.lines() == ['alice: Bad usage!', 'alice: Error in explode: boom']


@pytest.mark.asyncio
async def test_checks_run_before_identity_lookup(bot, client, chat):
    ran = []

    async def ping(bot, message):
        ran.append(message.text)

    register(bot, ping, name='ping')
    bot.checks.append(lambda bot, command, message: message.user != 'mallory')
    await chat(bot, '!ping a', user='mallory')
    await chat(bot, '!ping b')
    assert ran == ['b']
    assert client.lookups == ['alice']


@pytest.mark.asyncio
async def test_commands_see_resolved_level_and_arguments(bot, client, chat):
    seen = []

    async def whoami(bot, message):
        seen.append((message.text, message.level))

    register(bot, whoami, name='whoami')
    client.add_channel('#test', ops=['Alice'])
    await chat(bot, '!WhoAmI   some  text')
    await chat(bot, '!whoami', user='carol', target='gatebot')
    assert seen == [('some  text', AccessLevel.OPERATOR), ('', AccessLevel.ROOT)]


@pytest.mark.asyncio
async def test_identity_timeout_uses_channel_level(bot, client, context, chat):
    ran = []

    async def opcommand(bot, message):
        ran.append(message.level)

    register(bot, opcommand, name='opcommand', level=AccessLevel.OPERATOR)
    bot.resolver.timeout = 0.05
    client.lookup_delay = 10
    client.add_channel('#test', ops=['alice'])
    await chat(bot, '!opcommand')
    assert ran == [AccessLevel.OPERATOR]
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_exclusive_commands_run_one_at_a_time(bot, client):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow(bot, message):
        started.set()
        await release.wait()
        await bot.reply(message, 'done')

    register(bot, slow, name='slow', exclusive=True)
    first = await bot.handle_message(Message.inbound(client, '#test', 'alice', '!slow'))
    await started.wait()
    second = await bot.handle_message(Message.inbound(client, '#test', 'bob', '!slow'))
    await second
    assert client.lines() == ['bob: slow is already running.']
    release.set()
    await first
    assert client.lines()[-1] == 'alice: done'
    assert bot.workers == {}


@pytest.mark.asyncio
async def test_exclusive_commands_time_out(bot, client, chat):
    async def hang(bot, message):
        await asyncio.Event().wait()

    register(bot, hang, name='hang', exclusive=True, timeout=0.05)
    await chat(bot, '!hang')
    assert client.lines() == ['alice: hang timed out.']
    assert bot.workers == {}


@pytest.mark.asyncio
async def test_cancel_running_command(bot, client):
    started = asyncio.Event()

    async def slow(bot, message):
        started.set()
        await asyncio.Event().wait()

    register(bot, slow, name='slow', exclusive=True)
    task = await bot.handle_message(Message.inbound(client, '#test', 'alice', '!slow'))
    await started.wait()
    assert bot.cancel('SLOW')
    await task
    assert client.lines() == ['alice: slow was cancelled.']
    assert not bot.cancel('slow')
    assert bot.workers == {}


@pytest.mark.asyncio
async def test_invoke_keeps_level_and_limits_depth(bot, client):
    seen = []

    async def target(bot, message):
        seen.append((message.text, message.level, message.depth))

    register(bot, target, name='target', level=AccessLevel.ADMIN)
    message = Message.inbound(client, '#test', 'carol', '').resolved(AccessLevel.ROOT)
    assert await bot.invoke('!target some args', message)
    assert seen == [('some args', AccessLevel.ROOT, 1)]
    with pytest.raises(UsageError):
        await bot.invoke('target', message._replace(depth=bot.max_depth))
    with pytest.raises(UsageError):
        await bot.invoke('!missing', message)


@pytest.mark.asyncio
async def test_sent_messages_are_events(bot, client):
    sent = []

    class Watcher:
        def on_message_sent(self, bot, message):
            sent.append((message.source, message.text))

    bot.registry.register(Watcher())
    await bot.send_message('hi', 'alice', '#test')
    await bot.send_action('waves', '#test')
    assert sent == [('#test', 'alice: hi'), ('#test', 'waves')]
