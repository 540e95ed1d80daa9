"""
Built-in modules.

Every module is made available to the registry's catalog under its module identifier, so it can be loaded and unloaded
at runtime with ``!modules``.  Which ones are loaded at startup is controlled by the ``modules`` setting.
"""
import logging

from ircgate.commands import RegistryError
from . import alias, channel, chat, core, log

__all__ = ['CATALOG', 'install']

logger = logging.getLogger(__name__)

#: Module identifier -> factory.
CATALOG = {
    'help': core.help_command.export,
    'modules': core.modules_command.export,
    'cancel': core.cancel_command.export,
    'alias': alias.alias_manager.export,
    'roll': chat.roll.export,
    'say': chat.say.export,
    'action': chat.action.export,
    'join': channel.join.export,
    'leave': channel.leave.export,
    'channel': channel.channel_command.export,
    'ignore': channel.Ignore,
    'log': log.Log,
}


def install(registry, context):
    """
    Adds the built-in modules to the catalog of `registry`, loads the ones `context` asks for and registers the aliases
    it defines.

    :param registry: :class:`~ircgate.commands.Registry`
    :param context: :class:`~ircgate.context.Context`
    """
    for identifier, factory in CATALOG.items():
        registry.add_factory(identifier, factory)
    identifiers = context.modules if context.modules is not None else list(CATALOG)
    for identifier in identifiers:
        try:
            registry.load(identifier)
        except RegistryError as ex:
            logger.error("Can't load module %r: %s", identifier, ex)
    alias.install_aliases(registry, context)
