"""Commands that talk: dice rolls, say and action."""
import random
import re

from ircgate.commands import command, param, doc, parse_flag, consume_flag, UsageError

MAX_DICE = 300
_DICE = re.compile(r'(\d*)\s*d\s*(\d+)', re.IGNORECASE)


def _clamp(value):
    return min(MAX_DICE, max(1, value))


def parse_dice(text):
    """
    Parses ``<count>d<sides>``.  Both numbers are clamped to 1..300; the count may be omitted.

    :param text: Dice specification.  Empty means 1d6.
    :return: A tuple of (count, sides)
    :raises: :class:`UsageError` if `text` isn't a dice specification.
    """
    text = text.strip()
    if not text:
        return 1, 6
    match = _DICE.fullmatch(text)
    if not match:
        raise UsageError("I can only roll dice like 3d6.")
    count, sides = match.groups()
    return _clamp(int(count or 1)), _clamp(int(sides))


@command('roll', serious=True, example='-seed:42 3d6')
@param('seed', 'The seed for the random number generator.')
@doc('Rolls <count>d<sides> dice, 1d6 if nothing is given.')
async def roll(bot, message):
    rng = random.Random()
    text = message.text
    if parse_flag(text, 'seed'):
        seed, text = consume_flag(text, 'seed')
        try:
            rng.seed(int(seed))
        except ValueError:
            raise UsageError("The seed has to be a number.") from None
    count, sides = parse_dice(text)
    await bot.reply(message, ", ".join(str(rng.randint(1, sides)) for _ in range(count)))


@command('say', serious=True, example='-to:#channel Hello!')
@param('to', 'Where to say it instead of here.')
@doc('Makes the bot say something.')
async def say(bot, message):
    target, text = consume_flag(message.text, 'to')
    if not text:
        raise UsageError("What should I say?")
    if target:
        await bot.send_message(text, target, target, noname=True)
    else:
        await bot.reply(message, text, noname=True)


@command('action', serious=True, example='-to:#channel waves')
@param('to', 'Where to do it instead of here.')
@doc('Makes the bot do something (/me).')
async def action(bot, message):
    target, text = consume_flag(message.text, 'to')
    if not text:
        raise UsageError("What should I do?")
    await bot.send_action(text, target or message.source)
