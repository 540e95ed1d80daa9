"""
Core bot functionality.

`help_command`
    Adds ``!help``, which lists all commands in a private message, or shows the description, parameters and example
    of a single command.
`modules_command`
    Adds ``!modules``, which loads and unloads modules at runtime.
`cancel_command`
    Adds ``!cancel``, which stops a running long-running command.
"""
from ircgate.access import AccessLevel
from ircgate.commands import (
    command, param, doc, parse_flag, consume_flag, UsageError, ModuleLoadedError, UnknownModuleError,
)


@command('help', serious=True, example='<command>')
@doc('Provides a list of all available commands plus short descriptions for them.')
async def help_command(bot, message):
    """
    Produces help.

    :param bot: Dispatcher
    :param message: Message
    """
    prefix = bot.context.prefix
    name = message.text.strip()
    if prefix and name.startswith(prefix):
        name = name[len(prefix):]

    if not name:
        names = []
        for item in bot.registry.commands:
            names.append(item.name)
            names.extend(item.aliases)
        await bot.send_message(
            "Commands I recognize: " + ", ".join(sorted(names, key=str.lower)), message.user, message.user, noname=True
        )
        await bot.send_message(
            'For additional help type "{0}help <command>" where <command> is the name of the command you want help '
            'for.'.format(prefix),
            message.user, message.user, noname=True
        )
        if message.is_channel:
            await bot.reply(message, "I sent you a private message with information about all my commands!")
        return

    found = bot.registry.lookup(name)
    if found is None:
        raise UsageError("I don't know the command {}{}.".format(prefix, name))
    await bot.reply(message, "{}: {}".format(name, found.doc or "No description available."), noname=True)
    if found.parameters:
        await bot.reply(
            message,
            "parameters: " + ", ".join("-{} ({})".format(flag, description) for flag, description in found.parameters),
            noname=True
        )
    if found.example:
        await bot.reply(message, "example: " + found.usage(prefix), noname=True)


@command('modules', level=AccessLevel.ROOT, serious=True, example='-unload:roll')
@param('load', 'Loads the given module.')
@param('unload', 'Unloads the given module.')
@param('list', 'Lists loaded and available modules.')
@doc('Loads and unloads modules at runtime.')
async def modules_command(bot, message):
    registry = bot.registry
    text = message.text

    if parse_flag(text, 'load'):
        identifier, text = consume_flag(text, 'load')
        try:
            registry.load(identifier)
        except ModuleLoadedError:
            await bot.reply(message, "This module is already loaded.")
        except UnknownModuleError:
            await bot.reply(message, "This module doesn't exist.")
        else:
            await bot.reply(message, 'Loaded the module "{}"'.format(identifier))
        return

    if parse_flag(text, 'unload'):
        identifier, text = consume_flag(text, 'unload')
        try:
            registry.unregister(identifier)
        except UnknownModuleError:
            if identifier.lower() in registry.available():
                await bot.reply(message, "This module is already unloaded.")
            else:
                await bot.reply(message, "This module doesn't exist.")
        else:
            await bot.reply(message, 'Unloaded the module "{}"'.format(identifier))
        return

    if parse_flag(text, 'list'):
        available = registry.available()
        loaded = [identifier for identifier in available if registry.is_loaded(identifier)]
        unloaded = [identifier for identifier in available if identifier not in loaded]
        await bot.reply(
            message,
            "Loaded: {}. Not loaded: {}.".format(", ".join(loaded) or "nothing", ", ".join(unloaded) or "nothing")
        )
        return

    raise UsageError("Use -load:<module>, -unload:<module> or -list.")


@command('cancel', level=AccessLevel.ADMIN, serious=True, example='<command>')
@doc('Stops a long-running command.')
async def cancel_command(bot, message):
    name = message.text.strip()
    if not name:
        raise UsageError("Which command should I cancel?")
    if bot.cancel(name):
        await bot.reply(message, 'Cancelling "{}".'.format(name))
    else:
        await bot.reply(message, '"{}" isn\'t running.'.format(name))
