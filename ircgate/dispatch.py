"""
Routing of bot events and commands.

The :class:`Dispatcher` sits between the protocol client and everything that is loaded into the
:class:`~ircgate.commands.Registry`.  Every bot event is offered to every loaded plugin that has an ``on_<event>``
method for it; messages that start with the command prefix additionally go through the command path:

1. Look up the command.  Unknown commands are ignored.
2. Run the execute checks (e.g. the ignore list).
3. Resolve the sender's access level and compare it to the command's.
4. Skip commands that aren't serious in serious channels.
5. Run the command, reporting errors to the sender.

Command handling runs in its own task, since resolving the access level waits on the network.
"""
import asyncio
import contextlib
import enum
import inspect
import logging

from ircgate.access import AccessLevel, satisfies
from ircgate.commands import Registry, UsageError, module_of
from ircgate.gateway import Gateway
from ircgate.permissions import PermissionResolver, channel_modes

__all__ = ['ConnectionState', 'Dispatcher', 'DENIED_MESSAGE']

logger = logging.getLogger(__name__)

DENIED_MESSAGE = "You don't have the permission to use this command! Only {required} can use this command! You are {level}."


class ConnectionState(enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'


_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED},
}


class Dispatcher:
    """
    Routes events to plugins and messages to commands.

    Commands and plugin handlers receive the dispatcher as their `bot` argument.

    :ivar client: Protocol client.  See :class:`~ircgate.gateway.Gateway` for what it needs; identity lookups use its
        ``account_of(nick)`` coroutine, channel status its ``channels`` mapping.
    :ivar context: :class:`~ircgate.context.Context`
    :ivar registry: :class:`~ircgate.commands.Registry`
    :ivar resolver: :class:`~ircgate.permissions.PermissionResolver`
    :ivar gateway: :class:`~ircgate.gateway.Gateway`
    :ivar checks: Callables run as ``check(bot, command, message)`` before a command's access level is resolved.  If
        any of them returns a false value, the command is silently dropped.  Plugins can provide the same thing with a
        ``check_command`` method.
    :ivar workers: Dictionary of lowercase module identifier -> task of the exclusive command running for it.
    :ivar tasks: Command handling tasks that haven't finished yet.
    :ivar state: :class:`ConnectionState`
    """
    max_depth = 5  # How deeply aliases may invoke other aliases.

    def __init__(self, client, context, registry=None, resolver=None, gateway=None):
        self.client = client
        self.context = context
        self.registry = registry if registry is not None else Registry()
        if resolver is None:
            resolver = PermissionResolver(client.account_of, context.admins, context.whois_timeout)
        self.resolver = resolver
        if gateway is None:
            gateway = Gateway(client, context.wrap_length, context.wrap_indent)
        if gateway.on_sent is None:
            gateway.on_sent = self._on_sent
        self.gateway = gateway
        self.checks = []
        self.workers = {}
        self.tasks = set()
        self.state = ConnectionState.DISCONNECTED

    @property
    def nickname(self):
        return self.client.nickname

    def set_state(self, state):
        """
        Moves the connection state machine to `state`.

        :return: True if the transition was valid.  Invalid ones are logged and ignored.
        """
        if state is self.state:
            return True
        if state not in _TRANSITIONS[self.state]:
            logger.warning("Ignoring connection state change %s -> %s", self.state.value, state.value)
            return False
        logger.debug("Connection state %s -> %s", self.state.value, state.value)
        self.state = state
        return True

    @contextlib.contextmanager
    def log_exceptions(self, what, target=None):
        """
        Log exceptions rather than allowing them to raise.  Contextmanager.

        :param what: Description of what is being done, for the log.
        :param target: If specified, the error text is also sent there.

        Usage::

            with bot.log_exceptions("loading modules", "Adminuser"):
                raise ValueError("oh no!")
        """
        try:
            yield None
        except Exception as ex:
            logger.exception("Error in %s", what)
            if target:
                self.spawn(self.gateway.send(target, "Error in {}: {}".format(what, ex)))

    def spawn(self, coro):
        """
        Runs `coro` in a task that :meth:`drain` will wait for.

        :return: The task.
        """
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def drain(self):
        """Waits until every task started by :meth:`spawn` has finished, including ones they start."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    async def emit(self, event, *args):
        """
        Offers an event to every loaded plugin.

        Each plugin that has an ``on_<event>`` method gets it called with ``(bot, *args)``.  A failing handler is
        logged and doesn't affect the others.

        :param event: Event name, e.g. 'join'
        :param args: Event arguments.
        """
        attr = 'on_' + event
        for plugin in self.registry.plugins:
            handler = getattr(plugin, attr, None)
            if handler is None:
                continue
            with self.log_exceptions("{!r}.{}".format(plugin, attr)):
                result = handler(self, *args)
                if inspect.isawaitable(result):
                    await result

    async def _on_sent(self, message):
        await self.emit('message_sent', message)

    async def handle_message(self, message):
        """
        Handles an incoming chat message.

        :param message: :class:`~ircgate.gateway.Message`
        :return: The task handling the command, if the message is one, otherwise None.
        """
        await self.emit('message', message)
        await self.emit('channel_message' if message.is_channel else 'private_message', message)
        prefix = self.context.prefix
        own = (message.user or '').lower() == self.nickname.lower()
        if not prefix or not message.text.startswith(prefix) or own:
            return None
        return self.spawn(self.handle_command(message))

    async def handle_command(self, message):
        """
        Runs the command in `message`, if there is one.

        :param message: Message whose text starts with the command prefix.
        """
        with self.log_exceptions("handling {!r}".format(message.text)):
            name, text = self.split_command(message.text[len(self.context.prefix):])
            command = self.registry.lookup(name) if name else None
            if command is None:
                logger.debug("Ignoring unknown command %r from %s", name, message.user)
                return
            message = message.with_text(text)
            if not await self.run_checks(command, message):
                logger.debug("%s from %s rejected by checks", command.name, message.user)
                return
            modes = channel_modes(self.client, message.source, message.user) if message.is_channel else set()
            level = await self.resolver.resolve(message.user, modes)
            await self.dispatch(command, message.resolved(level))

    @staticmethod
    def split_command(text):
        """Splits command text into (name, arguments)."""
        parts = text.strip().split(None, 1)
        if not parts:
            return '', ''
        return parts[0], parts[1] if len(parts) > 1 else ''

    async def run_checks(self, command, message):
        """Returns True if every execute check lets `command` run."""
        checks = list(self.checks)
        checks.extend(plugin.check_command for plugin in self.registry.plugins if hasattr(plugin, 'check_command'))
        for check in checks:
            result = check(self, command, message)
            if inspect.isawaitable(result):
                result = await result
            if not result:
                return False
        return True

    async def dispatch(self, command, message):
        """
        Enforces access level and channel policy, then executes `command`.

        :param command: :class:`~ircgate.commands.Command`
        :param message: Message with its level resolved and its text reduced to the command's arguments.
        :return: True if the command was executed.
        """
        level = message.level if message.level is not None else AccessLevel.NORMAL
        if not satisfies(command.level, level):
            await self.reply(message, DENIED_MESSAGE.format(required=command.level.name, level=level.name))
            return False
        if message.is_channel and not command.serious and self.context.is_serious(message.source):
            logger.debug("Not running %s in serious channel %s", command.name, message.source)
            return False
        await self.execute(command, message)
        return True

    async def _run(self, command, message):
        try:
            await command.run(self, message)
        except UsageError as ex:
            await self.reply(message, str(ex))
        except Exception as ex:
            logger.exception("Error in %s", command.name)
            await self.reply(message, "Error in {}: {}".format(command.name, ex))

    async def execute(self, command, message):
        """
        Runs `command`.  Errors are reported to the sender and never propagate.

        Exclusive commands run in a worker task, one per module at a time, and are cancelled after their timeout.
        """
        if not command.exclusive:
            await self._run(command, message)
            return
        key = module_of(command).lower()
        running = self.workers.get(key)
        if running is not None and not running.done():
            await self.reply(message, "{} is already running.".format(command.name))
            return
        task = asyncio.ensure_future(self._run(command, message))
        self.workers[key] = task
        try:
            await asyncio.wait({task}, timeout=command.timeout)
            if not task.done():
                task.cancel()
                logger.info("%s timed out after %ss", command.name, command.timeout)
                await self.reply(message, "{} timed out.".format(command.name))
            elif task.cancelled():
                await self.reply(message, "{} was cancelled.".format(command.name))
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self.workers.get(key) is task:
                del self.workers[key]

    def cancel(self, identifier):
        """
        Cancels a running exclusive command.

        :param identifier: Module identifier or command name.
        :return: True if something was cancelled.
        """
        key = identifier.lower()
        if key not in self.workers:
            command = self.registry.lookup(identifier)
            if command is not None:
                key = module_of(command).lower()
        task = self.workers.get(key)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def invoke(self, line, message):
        """
        Runs the command line `line` on behalf of the sender of `message`, keeping their resolved level.

        :param line: Command line, with or without the prefix.
        :param message: Message being handled.
        :raises: :class:`~ircgate.commands.UsageError` if the command is unknown or nesting is too deep.
        """
        if message.depth >= self.max_depth:
            raise UsageError("Too many nested commands.")
        prefix = self.context.prefix
        line = line.strip()
        if prefix and line.startswith(prefix):
            line = line[len(prefix):]
        name, text = self.split_command(line)
        command = self.registry.lookup(name) if name else None
        if command is None:
            raise UsageError("Unknown command {!r}.".format(name))
        return await self.dispatch(command, message._replace(text=text, depth=message.depth + 1))

    async def reply(self, message, text, noname=False):
        """
        Answers the sender of `message` where they sent it.

        :param message: Message being answered.
        :param text: Reply text.
        :param noname: If True, don't address the sender by name.
        """
        return await self.gateway.send_message(text, message.user, message.source, noname)

    async def send_message(self, text, user, to, noname=False):
        return await self.gateway.send_message(text, user, to, noname)

    async def send_action(self, text, to):
        return await self.gateway.send_action(text, to)
