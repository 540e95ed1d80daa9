"""
The Pydle client.

:class:`Bot` connects to IRC, turns Pydle's callbacks into bot events and chat messages for the
:class:`~ircgate.dispatch.Dispatcher` and throttles everything it sends.
"""
import asyncio
import functools
import inspect
import logging

import pydle
from pydle.features.ctcp import construct_ctcp

import ircgate.modules
import ircgate.usertrack
from ircgate import Config
from ircgate.commands import Registry
from ircgate.context import Context
from ircgate.dispatch import ConnectionState, Dispatcher
from ircgate.gateway import Message
from ircgate.util import Throttle

__all__ = ['EventEmitter', 'Bot']

logger = logging.getLogger(__name__)

# Callbacks that are not forwarded as events, because the bot turns them into something else or they are too noisy.
_NOT_EMITTED = {
    'on_data', 'on_data_error', 'on_message', 'on_channel_message', 'on_private_message',
    'on_notice', 'on_channel_notice', 'on_private_notice',
}


class EventEmitter(pydle.Client):
    """
    Forwards Pydle's ``on_<event>`` callbacks to the dispatcher, which offers them to every loaded plugin.
    """
    dispatcher = None

    async def emit(self, _event, *args):
        """
        Triggers the specified event.

        :param _event: Event to trigger
        :param args: Event arguments
        """
        if self.dispatcher is not None:
            await self.dispatcher.emit(_event, *args)


def _add_emitter(attr):
    fn = getattr(EventEmitter, attr)
    if not callable(fn):
        return
    event = attr[3:]

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        rv = getattr(super(EventEmitter, self), attr)(*args, **kwargs)
        if inspect.isawaitable(rv):
            rv = await rv
        await self.emit(event, *args)
        return rv
    setattr(EventEmitter, attr, wrapper)


for _attr in [
    attr for attr in dir(EventEmitter)
    if attr.startswith('on_') and not attr.startswith('on_raw') and attr not in _NOT_EMITTED
]:
    _add_emitter(_attr)
del _add_emitter


class Bot(pydle.featurize(EventEmitter, ircgate.usertrack.UserTrackingClient)):
    def __init__(self, config=None, filename=None, data=None, **kwargs):
        """
        Creates a new Bot.

        :param config: Configuration object.
        :param filename: Filename to load config from.  Ignored if `config` is not None.
        :param data: Data to load config from.  Ignored if `config` is not None.
        :param kwargs: Keyword arguments passed to superclass.  Overrides config if there is a conflict.
        """
        self.server_index = -1

        if config is None:
            config = Config(filename=filename, data=data)
        self.config = config
        main = self.config.main

        kwargs.setdefault('nickname', main.nicknames[0])
        kwargs.setdefault('fallback_nicknames', main.nicknames[1:])
        kwargs.setdefault('username', main.username)
        kwargs.setdefault('realname', main.realname)
        if main.auth_username and main.auth_password:
            kwargs.setdefault('sasl_username', main.auth_username)
            kwargs.setdefault('sasl_password', main.auth_password)
            if main.auth_method:
                kwargs.setdefault('sasl_mechanism', main.auth_method.upper())

        super().__init__(**kwargs)
        self.global_throttle = Throttle(self.config.throttle.burst, self.config.throttle.rate)
        self.target_throttles = {}

        self.context = Context.from_config(self.config)
        self.registry = Registry()
        self.dispatcher = Dispatcher(self, self.context, self.registry)
        ircgate.modules.install(self.registry, self.context)

    async def connect(self, hostname=None, **kwargs):
        """
        Overrides the superclass's connect() to allow rotating between multiple servers if hostname is None.

        :param hostname: Passed to superclass.
        :param kwargs: Passed to superclass
        """
        main = self.config.main
        kwargs['hostname'] = hostname
        if hostname is None and main.servers:
            self.server_index += 1
            if self.server_index >= len(main.servers):
                self.server_index = 0
            kwargs.update(main.servers[self.server_index])
        for attr in ('tls_client_cert', 'tls_client_cert_key', 'tls_client_cert_password'):
            if main[attr]:
                kwargs.setdefault(attr, main[attr])
        logger.info("Connecting to %s:%s...", kwargs['hostname'], kwargs.get('port', 6667))
        self.dispatcher.set_state(ConnectionState.CONNECTING)
        try:
            return await super().connect(**kwargs)
        except Exception:
            self.dispatcher.set_state(ConnectionState.DISCONNECTED)
            raise

    async def on_connect(self):
        """
        Attempt to join channels on connect.
        """
        self.dispatcher.set_state(ConnectionState.CONNECTED)
        await super().on_connect()
        for policy in list(self.context.channels.values()):
            if not policy.autojoin:
                continue
            try:
                await self.join(policy.name, policy.password)
            except pydle.AlreadyInChannel:
                pass
        self._start(self.global_throttle)

    async def on_disconnect(self, expected):
        while self.target_throttles:
            target, throttle = self.target_throttles.popitem()
            logger.debug("Cleaning up event queue for %r (%d pending items)", target, len(throttle.queue))
            throttle.reset()
        self.global_throttle.reset()
        self.dispatcher.set_state(ConnectionState.DISCONNECTED)
        await super().on_disconnect(expected)

    async def on_message(self, target, by, message):
        await super().on_message(target, by, message)
        await self.dispatcher.handle_message(Message.inbound(self, target, by, message, self.hostmask(by)))

    async def on_notice(self, target, by, message):
        await super().on_notice(target, by, message)
        await self.emit('notice', Message.inbound(self, target, by, message, self.hostmask(by)))

    async def on_identified(self, nickname, account):
        self.dispatcher.resolver.feed(nickname, account)

    @staticmethod
    def _start(throttle, until_idle=False):
        if throttle.running:
            return None
        return asyncio.ensure_future(throttle.run(until_idle))

    def _retire(self, target, throttle, task=None):
        if not throttle.running and not throttle.queue and self.target_throttles.get(target) is throttle:
            del self.target_throttles[target]

    async def throttled(self, target, fn, cost=1):
        """
        Adds a throttled event.

        Events for a target go through that target's throttle first, if it has one, and then through the global one.
        A target's throttle is dropped once it is idle and full again.

        :param target: Event target nickname or channel.  May be None for a global event
        :param fn: Function (or coroutine function) to queue
        :param cost: Event cost.
        """
        def _relay(cost, fn):
            self.global_throttle.add(cost, fn)
            self._start(self.global_throttle)

        if not target:
            _relay(cost, fn)
            return

        throttle = self.target_throttles.get(target)
        if throttle is None:
            if self.is_channel(target):
                burst, rate = self.config.throttle.channel_burst, self.config.throttle.channel_rate
            else:
                burst, rate = self.config.throttle.user_burst, self.config.throttle.user_rate
            if not rate:
                _relay(cost, fn)
                return
            throttle = self.target_throttles[target] = Throttle(burst, rate)
        throttle.add(cost, _relay, cost, fn)
        task = self._start(throttle, until_idle=True)
        if task is not None:
            task.add_done_callback(functools.partial(self._retire, target, throttle))

    def message_cost(self, length):
        """
        Returns the cost of a message of size length.
        :param length: Length of message
        :return: Message cost
        """
        return self.config.throttle.cost_base + (
            float(length) * self.config.throttle.cost_multiplier *
            (float(length) ** self.config.throttle.cost_exponent)
        )

    # Override the builtin message() to allow for throttling.
    async def message(self, target, message, cost=None):
        """
        Sends a PRIVMSG

        :param target: Recipient
        :param message: Message text.  May contain newlines, which will be split into multiple messages.
        :param cost: The cost per message.
        """
        for line in message.replace('\r', '').split('\n'):
            if not line:
                continue
            line_cost = cost if cost is not None else self.message_cost(len(target) + len(line) + 10)
            await self.throttled(target, functools.partial(super().message, target, line), line_cost)

    async def action(self, target, text):
        """
        Sends a CTCP ACTION (/me)

        :param target: Recipient
        :param text: What to do.
        """
        await self.message(target, construct_ctcp('ACTION', text))
