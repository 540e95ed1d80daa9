"""
User-defined command aliases.

An alias is a command that runs another command line.  Without a structure, the line is run as is::

    !alias -create:hi !say Hello everyone!

With a structure (a regular expression), the alias only runs if its arguments match, and the groups of the match are
filled into the line's ``{0}``, ``{1}``, ... placeholders::

    !alias -create:roll30 -structure:"^([0-9]+)$" !roll {0}d30

``-escape`` escapes double quotes in the filled-in groups, for lines that quote them.

Aliases can also be defined in the config file::

    [alias:roll30]
    command = !roll {0}d30
    structure = ^([0-9]+)$
    level = normal
"""
import logging
import re

from ircgate.access import AccessLevel, satisfies
from ircgate.commands import (
    Command, command, param, doc, parse_flag, consume_flag, UsageError, RegistryError, DuplicateCommandError,
)

__all__ = ['AliasCommand', 'alias_manager', 'install_aliases']

logger = logging.getLogger(__name__)


class AliasCommand(Command):
    """
    A command that runs another command line on behalf of whoever used it, at their access level.

    :ivar template: Command line to run, with ``{0}``-style placeholders if there is a structure.
    :ivar structure: Regular expression the arguments must match, or None.
    :ivar escape: If True, double quotes in the matched groups are escaped.
    """
    serious = True
    category = 'alias'

    def __init__(self, template, structure=None, escape=False, **kwargs):
        if kwargs.get('name'):
            kwargs.setdefault('module', 'alias:' + kwargs['name'].lower())
        super().__init__(**kwargs)
        self.template = template
        self.structure = structure or None
        self.escape = escape
        self._pattern = re.compile(self.structure) if self.structure else None

    def _clone(self, **kwargs):
        return type(self)(self.template, self.structure, self.escape, **kwargs)

    @classmethod
    def from_definition(cls, name, definition):
        """
        Creates an alias from a stored definition (see :meth:`definition`)

        :param name: Alias name.
        :param definition: Mapping with the keys of an ``[alias:name]`` config section.
        """
        return cls(
            definition['command'], definition.get('structure'), definition.get('escape', False),
            name=name, level=definition.get('level', AccessLevel.NORMAL), serious=definition.get('serious', True),
            doc=definition.get('description'), example=definition.get('example'),
        )

    def definition(self):
        """Returns this alias as a dictionary that :meth:`from_definition` accepts."""
        return {
            'command': self.template, 'structure': self.structure, 'escape': self.escape, 'level': self.level,
            'serious': self.serious, 'description': self.doc, 'example': self.example,
        }

    def expand(self, text):
        """
        Returns the command line to run for arguments `text`, or None if they don't match the structure.

        :param text: Arguments the alias was called with.
        """
        if self._pattern is None:
            return self.template
        match = self._pattern.search(text.strip())
        if match is None:
            return None
        groups = [group.strip() for group in match.groups() if group is not None]
        if self.escape:
            groups = [group.replace('"', '\\"') for group in groups]
        try:
            return self.template.format(*groups)
        except (IndexError, KeyError, ValueError):
            raise UsageError("The alias {} doesn't fit its structure.".format(self.name)) from None

    async def run(self, bot, message):
        line = self.expand(message.text)
        if line is None:
            logger.debug("%r doesn't match the structure of %s", message.text, self.name)
            return
        await bot.invoke(line, message)


def install_aliases(registry, context):
    """
    Registers every alias defined in `context`.  Broken definitions are logged and skipped.

    :param registry: :class:`~ircgate.commands.Registry`
    :param context: :class:`~ircgate.context.Context`
    """
    for name, definition in list(context.aliases.items()):
        try:
            registry.register(AliasCommand.from_definition(name, definition))
        except (RegistryError, re.error, ValueError) as ex:
            logger.error("Can't register alias %r: %s", name, ex)


def _find(bot, name):
    found = bot.registry.lookup(name)
    return found if isinstance(found, AliasCommand) else None


async def _edit(bot, message, name, what, changes):
    """
    Replaces an existing alias with a copy that has different attributes.

    :param name: Alias name.
    :param what: What is being changed, for the reply.
    :param changes: Attributes to change.
    """
    existing = _find(bot, name)
    if existing is None:
        await bot.reply(message, "This alias doesn't exist! You can add it using the -create attribute.")
        return
    if not satisfies(existing.level, message.level):
        await bot.reply(
            message,
            "You don't have the permission to edit this alias! Only {} can edit this alias! You are {}.".format(
                existing.level.name, message.level.name
            )
        )
        return
    updated = existing.export(**changes)
    bot.registry.unregister(existing.module)
    bot.registry.register(updated)
    bot.context.aliases[updated.name.lower()] = updated.definition()
    await bot.reply(message, 'Updated the {} for "{}{}"'.format(what, bot.context.prefix, updated.name))


@command('alias', level=AccessLevel.ADMIN, serious=True, example='-create:roll30 -structure:^([0-9]+)$ !roll {0}d30')
@param('create', 'Creates an alias with the given name')
@param('remove', 'Removes the alias with the given name')
@param('structure', 'Defines the structure for a new alias')
@param('escape', 'Escapes the params before passing them to the alias command.')
@param('description', 'Sets the description for an alias')
@param('level', 'Sets the access level for an alias')
@param('example', 'Adds a proper example for the alias')
@doc('Creates an alias command for another command (sequence)')
async def alias_manager(bot, message):
    text = message.text
    prefix = bot.context.prefix

    if parse_flag(text, 'remove'):
        name, text = consume_flag(text, 'remove')
        name = name.lower()
        existing = _find(bot, name)
        if existing is None:
            await bot.reply(message, 'The alias "{}" does not exist!'.format(name))
            return
        if not satisfies(existing.level, message.level):
            await bot.reply(
                message,
                "You don't have the permission to remove this alias! Only {} can remove this alias! "
                "You are {}.".format(existing.level.name, message.level.name)
            )
            return
        bot.registry.unregister(existing.module)
        bot.context.aliases.pop(existing.name.lower(), None)
        await bot.reply(message, 'Removed the alias "{}"'.format(existing.name))
        return

    if parse_flag(text, 'create'):
        name, text = consume_flag(text, 'create', escape=True)
        name = name.lower()
        if not name or name.startswith(prefix):
            raise UsageError("Invalid alias name.")
        structure, text = consume_flag(text, 'structure', escape=True)
        escape = parse_flag(text, 'escape')
        if escape:
            _, text = consume_flag(text, 'escape', escape=True)
        template = text.strip()
        if not template:
            raise UsageError("What should the alias do?")
        if _find(bot, name) is not None:
            await bot.reply(message, "This alias does already exist!")
            return
        try:
            created = AliasCommand(template, structure or None, escape, name=name)
        except re.error as ex:
            raise UsageError("Invalid structure: {}".format(ex)) from None
        try:
            bot.registry.register(created)
        except DuplicateCommandError:
            await bot.reply(message, "There already is a command called {}{}.".format(prefix, name))
            return
        bot.context.aliases[name] = created.definition()
        await bot.reply(message, 'Aliased "{}" to "{}{}"'.format(template, prefix, name))
        return

    if parse_flag(text, 'description'):
        name, text = consume_flag(text, 'description')
        await _edit(bot, message, name, 'description', {'doc': text or None})
        return

    if parse_flag(text, 'level'):
        name, text = consume_flag(text, 'level')
        try:
            level = AccessLevel.parse(text)
        except ValueError:
            await bot.reply(message, "Please enter a valid AccessLevel!")
            return
        await _edit(bot, message, name, 'access level', {'level': level})
        return

    if parse_flag(text, 'example'):
        name, text = consume_flag(text, 'example')
        await _edit(bot, message, name, 'example', {'example': text or None})
        return

    raise UsageError("Use -create, -remove, -description, -level or -example.")
