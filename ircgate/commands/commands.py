import functools
import inspect
import logging
import threading

import ircgate.util
from ircgate.access import AccessLevel
from .exc import *

__all__ = [
    'module_of', 'Registry', 'Command', 'FunctionCommand', 'PendingCommand',
    'wrap_decorator', 'chain_decorator', 'command', 'alias', 'param', 'doc',
]

logger = logging.getLogger(__name__)


def module_of(item):
    """
    Returns the module identifier of a registered item: its `module` attribute if set, otherwise its type name.

    :param item: A command or plugin.
    """
    return getattr(item, 'module', None) or type(item).__name__


class _Snapshot:
    """Immutable view of the registry contents.  Replaced wholesale on every change."""
    __slots__ = ('items', 'commands', 'names')

    def __init__(self, items=(), names=None):
        self.items = tuple(items)
        self.commands = tuple(item for item in self.items if isinstance(item, Command))
        self.names = dict(names or {})


class Registry:
    """
    Registers commands and plugins and serves as the intermediary between them and the dispatcher.

    Anything that is a :class:`Command` is indexed by its name and aliases.  Everything registered, commands included,
    is a plugin: the dispatcher offers it every event it has a handler for.

    The registry is read on every incoming message but changed rarely, so reads go to an immutable snapshot while
    writers serialize on a lock and swap in a new snapshot when they are done.

    :ivar factories: Dictionary of lowercase module identifier -> callable that creates a fresh instance.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = _Snapshot()
        self.factories = {}

    @property
    def commands(self):
        """All registered commands, in registration order."""
        return self._snapshot.commands

    @property
    def plugins(self):
        """Everything registered, in registration order."""
        return self._snapshot.items

    def register(self, *items):
        """
        Adds one or more commands or plugins to the registry.

        Either all items are added or, if any of them is rejected, none are.

        :param items: Item(s) to add.
        :raises: :class:`DuplicateCommandError` if a command name or alias is taken.
        :raises: :class:`ModuleLoadedError` if an item with the same module identifier is registered.
        """
        with self._lock:
            current = self._snapshot
            names = dict(current.names)
            modules = {module_of(item).lower() for item in current.items}
            for item in items:
                module = module_of(item).lower()
                if module in modules:
                    raise ModuleLoadedError("Module {!r} is already loaded.".format(module_of(item)), module)
                modules.add(module)
                if not isinstance(item, Command):
                    continue
                for name in item.names:
                    if name in names:
                        raise DuplicateCommandError(
                            "Duplicate command name {!r} (already used by {!r})".format(name, names[name].name), name
                        )
                    names[name] = item
            self._snapshot = _Snapshot(current.items + tuple(items), names)
        for item in items:
            logger.debug("Registered %r", item)

    def unregister(self, identifier):
        """
        Removes every command and plugin whose module identifier is `identifier` (case-insensitive).

        :param identifier: Module identifier, see :func:`module_of`
        :return: List of removed items.
        :raises: :class:`UnknownModuleError` if nothing matched.
        """
        key = identifier.lower()
        with self._lock:
            current = self._snapshot
            removed = [item for item in current.items if module_of(item).lower() == key]
            if not removed:
                raise UnknownModuleError("Module {!r} is not loaded.".format(identifier), identifier)
            names = {name: item for name, item in current.names.items() if item not in removed}
            self._snapshot = _Snapshot((item for item in current.items if item not in removed), names)
        logger.debug("Unregistered %r", removed)
        return removed

    def is_loaded(self, identifier):
        """Returns True if anything with module identifier `identifier` is registered."""
        key = identifier.lower()
        return any(module_of(item).lower() == key for item in self._snapshot.items)

    def lookup(self, search):
        """
        Searches for 'search' against all registered command names and aliases.

        :param search: Command to search for.
        :returns: A :class:`Command`, or None.
        """
        return self._snapshot.names.get(search.lower().strip())

    def add_factory(self, identifier, factory):
        """
        Makes `identifier` loadable by :meth:`load`.

        :param identifier: Module identifier.
        :param factory: Callable that returns a new command or plugin instance.
        """
        self.factories[identifier.lower()] = factory

    def available(self):
        """Returns a sorted list of module identifiers known to the catalog."""
        return sorted(self.factories)

    def load(self, identifier):
        """
        Creates a module from its factory and registers it.

        :param identifier: Module identifier.
        :return: The new item.
        :raises: :class:`UnknownModuleError` if there is no such factory.
        :raises: :class:`ModuleLoadedError` if it is already loaded.
        """
        factory = self.factories.get(identifier.lower())
        if factory is None:
            raise UnknownModuleError("Module {!r} doesn't exist.".format(identifier), identifier)
        if self.is_loaded(identifier):
            raise ModuleLoadedError("Module {!r} is already loaded.".format(identifier), identifier)
        item = factory()
        self.register(item)
        return item


class Command:
    """
    Represents commands.

    Subclass this and override :meth:`run`, or build a command from a coroutine function with the decorator syntax
    of :func:`command`, :func:`alias`, :func:`param` and :func:`doc`::

        @command('roll', serious=True)
        @param('seed', 'The seed for the random number generator.')
        @doc('Generates random numbers.')
        async def roll(bot, message):
            ...

    Despite the fact that the decorators run bottom-up, repeated ones (like several ``@param``) end up in top to bottom
    order.
    """
    name = None                   # Primary name, as shown by !help
    aliases = ()                  # Alternative names.  (Case-insensitive string matching)
    level = AccessLevel.NORMAL    # Level required to run the command.
    serious = False               # True if the command may run in serious channels.
    parameters = ()               # Sequence of (name, description) pairs for help.
    doc = None                    # Detailed help text.
    example = None                # Example arguments, without the prefix and name.
    category = None
    module = None                 # Module identifier.  Defaults to the type name.
    exclusive = False             # True if only one invocation may run at a time.  See Dispatcher.execute()
    timeout = None                # If exclusive, seconds before a running invocation is cancelled.

    _ATTRIBUTES = (
        'name', 'aliases', 'level', 'serious', 'parameters', 'doc', 'example', 'category', 'module',
        'exclusive', 'timeout',
    )

    def __init__(self, **kwargs):
        """
        Defines a new command.  Keyword arguments override the class attributes of the same name.

        :param name: Command name.  If None, uses the first alias.
        :param aliases: Alternative names.
        :param level: Required :class:`AccessLevel`
        :param serious: If True, the command may run in serious channels.
        :param parameters: Sequence of (name, description) pairs.
        :param doc: Detailed help text.
        :param example: Example arguments.
        :param category: Category for !help.
        :param module: Module identifier.
        :param exclusive: If True, at most one invocation runs at a time.
        :param timeout: Timeout of exclusive invocations, in seconds.
        """
        unknown = set(kwargs) - set(self._ATTRIBUTES)
        if unknown:
            raise TypeError("Unknown command attribute(s): {}".format(", ".join(sorted(unknown))))
        for attr in self._ATTRIBUTES:
            value = kwargs.get(attr)
            if value is not None:
                setattr(self, attr, value)
        self.aliases = tuple(ircgate.util.listify(self.aliases))
        self.parameters = tuple(self.parameters)
        self.level = AccessLevel(self.level)
        if not self.name and self.aliases:
            self.name, self.aliases = self.aliases[0], self.aliases[1:]
        if not self.name:
            raise ValueError("Commands must have a name")

    @property
    def names(self):
        """Set of lowercase names this command answers to."""
        return {self.name.lower()} | {alias.lower() for alias in self.aliases}

    def is_named(self, name):
        """Returns True if `name` should trigger this command."""
        return name.lower().strip() in self.names

    def usage(self, prefix=''):
        """Returns a usage example, e.g. '!roll -seed:42 3d6'"""
        return "{}{} {}".format(prefix, self.name, self.example or '').strip()

    def export(self, **kwargs):
        """
        Makes a copy of this command with updated attributes.

        :param kwargs: Arguments to pass to the new command's constructor.  Omitted arguments will be set from the
            current command.
        :return: The new :class:`Command` object.
        """
        for attr in self._ATTRIBUTES:
            kwargs.setdefault(attr, getattr(self, attr))
        return self._clone(**kwargs)

    def _clone(self, **kwargs):
        return type(self)(**kwargs)

    async def run(self, bot, message):
        """
        Executes the command.

        :param bot: The :class:`~ircgate.dispatch.Dispatcher` handling the message.
        :param message: The triggering :class:`~ircgate.gateway.Message`, with the prefix and command name removed from
            its text and its level resolved.
        """
        raise NotImplementedError

    def __repr__(self):
        return "<{}({!r})>".format(type(self).__name__, self.name)


class FunctionCommand(Command):
    """A :class:`Command` that calls a (coroutine) function with (bot, message)."""

    def __init__(self, function, **kwargs):
        self.function = function
        kwargs.setdefault('module', kwargs.get('name') or function.__name__)
        super().__init__(**kwargs)

    def _clone(self, **kwargs):
        return type(self)(self.function, **kwargs)

    async def run(self, bot, message):
        result = self.function(bot, message)
        if inspect.isawaitable(result):
            result = await result
        return result

    @classmethod
    def from_pending(cls, pending, **kwargs):
        """
        Create a new instance from a :class:`PendingCommand`

        :param pending: A PendingCommand instance.
        :param kwargs: Additional arguments to pass to constructor.  Merged with PendingCommand arguments.
        :return: The new command
        """
        # Merge the various lists in reverse.  This allows decorators to be interpreted top-down even though they are
        # executed bottom-up.
        for attr in ('aliases', 'parameters'):
            kwargs[attr] = list(ircgate.util.listify(kwargs.get(attr)))
            kwargs[attr].extend(reversed(getattr(pending, attr)))
        doc = list(ircgate.util.listify(kwargs.get('doc')))
        doc.extend(reversed(pending.doc))
        kwargs['doc'] = "\n".join(doc) or None
        return cls(pending.function, **kwargs)


class PendingCommand:
    """
    Trickery to allow decorators to return something looking like the original function.

    Should not be directly instantiated by external code.
    """
    def __init__(self, function):
        self.function = function
        # These all resemble the Command counterparts, but will be reversed upon being finalized.
        self.aliases = []
        self.parameters = []
        self.doc = []

    def __call__(self, *args, **kwargs):
        return self.function(*args, **kwargs)


def wrap_decorator(fn):
    """
    Returns a version of the function wrapped in such a way as to allow both decorator and non-decorator syntax.

    If the first argument of the wrapped function is a callable, the wrapped function is called as-is.

    Otherwise, returns a decorator

    :param fn: Function to decorate.
    """
    # Determine the name of the first argument, in case it is specified in kwargs instead.
    signature = inspect.signature(fn)
    param = next(iter(signature.parameters.values()), None)
    assert param and param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    arg = param.name

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        if (args and callable(args[0])) or (arg in kwargs and callable(kwargs[arg])):
            return fn(*args, **kwargs)

        def decorator(_fn):
            return fn(_fn, *args, **kwargs)
        return decorator
    return wrapper


def chain_decorator(fn):
    """
    The wrapped function will always receive a PendingCommand instead of a function, and will always return that same
    PendingCommand.  This allows for chaining decorators.

    If fn is not a PendingCommand, converts it to one.

    :param fn: Function to decorate.
    """
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        def decorator(pending):
            if not isinstance(pending, PendingCommand):
                pending = PendingCommand(pending)
            fn(pending, *args, **kwargs)
            return pending
        return decorator
    return wrapper


@wrap_decorator
def command(fn=None, name=None, registry=None, factory=FunctionCommand, **kwargs):
    """
    Command decorator.

    This must be the 'last' decorator in the chain of command construction (and thus, the first to appear when stacking
    multiple decorators).  Unlike the other decorators, it returns the new :class:`Command` rather than the function.

    :param fn: Function to decorate, or a :class:`PendingCommand` instance.
    :param name: Command name.
    :param registry: If not None, a :class:`Registry` the command will be registered in.
    :param factory: A :class:`FunctionCommand` subclass.
    :param kwargs: Passed to factory.
    :return: The new :class:`Command` object.
    """
    if not isinstance(fn, PendingCommand):
        fn = PendingCommand(fn)
    created = factory.from_pending(fn, name=name, **kwargs)
    if registry is not None:
        registry.register(created)
    return created


@chain_decorator
def alias(fn, *aliases):
    """
    Adds one or more alternative names to the pending command.

    :param fn: Function to decorate, or a :class:`PendingCommand` instance.
    :param aliases: One or more aliases to add.
    """
    fn.aliases.extend(reversed(aliases))


@chain_decorator
def param(fn, name, description):
    """
    Documents a flag parameter of the pending command.

    :param fn: Function to decorate, or a :class:`PendingCommand` instance.
    :param name: Flag name, without the leading '-'
    :param description: What it does.
    """
    fn.parameters.append((name, description))


@chain_decorator
def doc(fn, helptext):
    """
    Adds helptext to the pending command.

    :param fn: Function to decorate, or a :class:`PendingCommand` instance.
    :param helptext: Helptext to add.
    """
    fn.doc.append(helptext)
