"""Channel management: joining, leaving, per-channel settings and the ignore list."""
import re

from ircgate.access import AccessLevel
from ircgate.commands import Command, command, param, doc, parse_flag, consume_flag, UsageError

_HOSTMASK = re.compile(r'[^!@\s]+![^!@\s]+@[^!@\s]+')
_BOOLEANS = {'true': True, 'yes': True, 'on': True, '1': True, 'false': False, 'no': False, 'off': False, '0': False}


def parse_bool(value):
    try:
        return _BOOLEANS[value.strip().lower()]
    except KeyError:
        raise UsageError("{!r} is neither true nor false.".format(value)) from None


def _is_joined(client, name):
    name = name.lower()
    return any(channel.lower() == name for channel in client.channels)


@command('join', level=AccessLevel.ADMIN, serious=True, example='#botwar')
@param('password', 'The password for the channel')
@doc('Makes the bot join a channel.')
async def join(bot, message):
    password, text = consume_flag(message.text, 'password')
    name = text.strip()
    if not name:
        await bot.send_action("tries to unlock the tremendous energy of the vacuum", message.source)
        return
    if not bot.client.is_channel(name):
        await bot.reply(message, "Invalid channel name!")
        return
    if _is_joined(bot.client, name):
        await bot.reply(message, "I am already active in {}.".format(name))
        return
    if name.lower() not in bot.context.channels:
        policy = bot.context.channel(name)
        policy.serious = True
        policy.secret = bool(password)
    policy = bot.context.channel(name)
    policy.autojoin = True
    if password:
        policy.password = password
    await bot.client.join(name, policy.password)
    await bot.reply(message, "I have joined {}!".format(name))


@command('leave', level=AccessLevel.ADMIN, serious=True, example='#botwar')
@doc('Makes the bot leave this channel, or the given one.')
async def leave(bot, message):
    name = message.text.strip()
    if not name:
        if not message.is_channel:
            await bot.reply(message, "You have to submit a channel name in a private message!")
            return
        await bot.reply(message, "I will leave this channel now.")
        name = message.source
    elif not bot.client.is_channel(name):
        await bot.reply(message, "Invalid channel name!")
        return
    else:
        await bot.reply(message, "I will leave the channel {} now.".format(name))
    policy = bot.context.channels.get(name.lower())
    if policy is not None:
        policy.autojoin = False
    await bot.client.part(name)


@command('channel', level=AccessLevel.OPERATOR, serious=True, example='-serious:true -state')
@param('serious', 'Whether only serious commands may run here (true/false).')
@param('secret', 'Whether messages here are kept out of the history (true/false).')
@param('state', 'Shows the current settings.')
@doc('Changes the settings of this channel.')
async def channel_command(bot, message):
    if not message.is_channel:
        await bot.reply(message, "This command doesn't work in PM", noname=True)
        return
    policy = bot.context.channel(message.source)
    text = message.text
    if parse_flag(text, 'serious'):
        value, text = consume_flag(text, 'serious')
        policy.serious = parse_bool(value)
    if parse_flag(text, 'secret'):
        value, text = consume_flag(text, 'secret')
        policy.secret = parse_bool(value)
    if parse_flag(text, 'state'):
        await bot.reply(message, "Serious: {}, Secret: {}".format(policy.serious, policy.secret))


class Ignore(Command):
    """
    Ignores commands from everyone matching a hostmask.

    Besides the ``!ignore`` command, this provides the execute check that drops their commands.  The check never stops
    ``!ignore`` itself, so nobody can lock themselves out.
    """
    name = 'ignore'
    level = AccessLevel.ADMIN
    serious = True
    example = 'Spambot!*@*'
    parameters = (
        ('remove', 'Removes an ignored hostmask'),
        ('list', 'Lists all ignored hostmasks'),
    )
    doc = 'Ignores commands from everyone matching a hostmask.  * and ? are wildcards.'

    def __init__(self, **kwargs):
        kwargs.setdefault('module', 'ignore')
        super().__init__(**kwargs)

    def check_command(self, bot, command, message):
        if command is self:
            return True
        return not bot.context.is_ignored(message.hostmask)

    async def run(self, bot, message):
        ignores = bot.context.ignores
        text = message.text

        if parse_flag(text, 'list'):
            listing = "; ".join(sorted(ignores)) or "Nobody is ignored."
            await bot.send_message(listing, message.user, message.user, noname=True)
            return

        if parse_flag(text, 'remove'):
            mask, text = consume_flag(text, 'remove')
            mask = (mask or text).strip().lower()
            if mask not in ignores:
                await bot.reply(message, "This hostmask isn't ignored!")
                return
            ignores.discard(mask)
            await bot.reply(message, 'Unignored "{}"'.format(mask))
            return

        mask = text.strip()
        if not _HOSTMASK.fullmatch(mask):
            await bot.reply(message, "Invalid hostmask!")
            return
        if mask.lower() in ignores:
            await bot.reply(message, "This hostmask is already ignored!")
            return
        ignores.add(mask.lower())
        await bot.reply(message, 'Ignored "{}"'.format(mask))
