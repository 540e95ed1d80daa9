"""
Message records and outbound formatting.

Outgoing text may use a small markup that is translated to IRC control codes::

    [b]bold[/b] [i]italic[/i] [u]underline[/u] [s]strikethrough[/s] [r]reverse[/r]
    [color=Red]red[/color] [color=White,Black]white on black[/color] [color=4]also red[/color]

Long text is split into several lines.  Each line is well-formed on its own: formatting that is still open at the
end of a line is reset there and reopened at the start of the next one.
"""
import collections
import datetime
import logging
import re

from ircgate.access import AccessLevel

__all__ = ['Message', 'Gateway', 'format_markup', 'wrap', 'ControlCode', 'COLORS']

logger = logging.getLogger(__name__)


class ControlCode:
    """Control codes for IRC"""
    BOLD = '\x02'
    COLOR = '\x03'
    RESET = '\x0f'
    REVERSE = '\x16'
    ITALIC = '\x1d'
    STRIKETHROUGH = '\x1e'
    UNDERLINE = '\x1f'


#: Color names accepted by [color=...], case-insensitive.
COLORS = {
    'white': 0, 'black': 1, 'darkblue': 2, 'darkgreen': 3, 'red': 4, 'darkred': 5, 'darkviolet': 6, 'orange': 7,
    'yellow': 8, 'lightgreen': 9, 'cyan': 10, 'lightcyan': 11, 'blue': 12, 'violet': 13, 'darkgray': 14,
    'lightgray': 15,
}

_SIMPLE_TAGS = {
    'b': ControlCode.BOLD, 'i': ControlCode.ITALIC, 'u': ControlCode.UNDERLINE,
    's': ControlCode.STRIKETHROUGH, 'r': ControlCode.REVERSE,
}
_TOGGLES = tuple(_SIMPLE_TAGS.values())
_CONTROL_CHARS = frozenset(_TOGGLES + (ControlCode.COLOR, ControlCode.RESET))
_TAG = re.compile(r'\[/?([bisur])\]|\[color=([^\],]*)(?:,([^\]]*))?\]|\[/color\]', re.IGNORECASE)
# Note that \s would match \x1c-\x1f, which includes two of the control codes.
_ATOM = re.compile(
    r'\x03(?:\d{1,2}(?:,\d{1,2})?)?|[\x02\x0f\x16\x1d\x1e\x1f]|[ \t]+|[^ \t\x02\x03\x0f\x16\x1d\x1e\x1f]+'
)
_COLOR_CODE = re.compile(r'\x03(\d{1,2})?(?:,(\d{1,2}))?')


def _color(name):
    """Returns the color number for a color name or number.  Unknown colors are white."""
    name = (name or '').strip()
    if name.isdigit():
        return int(name) % 100
    return COLORS.get(name.lower(), 0)


def format_markup(text):
    """
    Translates markup tags in `text` to IRC control codes.

    :param text: Text to translate.
    """
    def _replace(match):
        simple, foreground, background = match.groups()
        if simple:
            return _SIMPLE_TAGS[simple.lower()]
        if foreground is None:
            return ControlCode.COLOR
        code = ControlCode.COLOR + "{:02d}".format(_color(foreground))
        if background is not None:
            code += ",{:02d}".format(_color(background))
        return code
    return _TAG.sub(_replace, text)


class _FormatState:
    """Tracks which formatting is in effect at a given point of a line."""

    def __init__(self):
        self.toggles = set()
        self.color = None

    def apply(self, code):
        if code == ControlCode.RESET:
            self.toggles.clear()
            self.color = None
        elif code in _TOGGLES:
            self.toggles ^= {code}
        else:
            foreground, background = _COLOR_CODE.fullmatch(code).groups()
            if foreground is None:
                self.color = None
            else:
                if background is None and self.color:
                    background = self.color[1]
                self.color = (foreground, background)

    def opener(self):
        """Control codes that restore this state at the start of a line."""
        codes = [code for code in _TOGGLES if code in self.toggles]
        if self.color:
            foreground, background = self.color
            codes.append(ControlCode.COLOR + foreground + (',' + background if background else ''))
        return ''.join(codes)

    def closer(self):
        """Control code that closes everything this state has open."""
        if self.toggles or self.color:
            return ControlCode.RESET
        return ''


def wrap(text, width=400, indent=''):
    """
    Splits `text` into lines of at most `width` characters.

    Lines break at spaces where possible; words longer than a line are split.  Control codes are never split and
    formatting is closed and reopened at each line break.  Explicit newlines always start a new line.

    :param text: Text, already translated by :func:`format_markup`
    :param width: Maximum line length.
    :param indent: Prefix of lines that continue a line that was too long.
    :return: A list of lines.  Empty if `text` holds nothing but whitespace and control codes.
    """
    state = _FormatState()
    lines = []
    parts, size, content, pending = [], 0, False, ''

    def begin(continued):
        nonlocal parts, size, content, pending
        prefix = (indent if continued else '') + state.opener()
        parts, size, content, pending = [prefix], len(prefix), False, ''

    def finish(continued=True):
        if content:
            lines.append(''.join(parts) + state.closer())
        begin(continued and content)

    begin(False)
    for paragraph in text.replace('\r', '').split('\n'):
        for atom in _ATOM.findall(paragraph):
            if atom[0] in ' \t':
                if content:
                    pending = atom
                continue
            if atom[0] in _CONTROL_CHARS:
                if content and size + len(pending) + len(atom) + 1 > width:
                    finish()
                parts.append(pending + atom)
                size += len(pending) + len(atom)
                pending = ''
                state.apply(atom)
                continue
            word = atom
            while word:
                room = width - 1 - size - len(pending)
                if len(word) <= room:
                    parts.append(pending + word)
                    size += len(pending) + len(word)
                    pending, content, word = '', True, ''
                elif content:
                    finish()
                else:
                    room = max(room, 1)
                    parts.append(word[:room])
                    size += room
                    content, word = True, word[room:]
                    finish()
        finish(continued=False)
    return lines


class Message(collections.namedtuple(
        '_Message', ['text', 'user', 'source', 'is_channel', 'time', 'level', 'hostmask', 'depth'])):
    """
    A chat message, inbound or outbound.

    :ivar text: Message text.  For commands, the text after the prefix and command name.
    :ivar user: Nickname of the sender.
    :ivar source: Channel name, or the nickname of the other side of a private conversation.
    :ivar is_channel: True if the message was sent to a channel.
    :ivar time: When the message was created (UTC).
    :ivar level: The sender's resolved :class:`AccessLevel`, or None before resolution.
    :ivar hostmask: nick!user@host of the sender, if known.
    :ivar depth: How many alias expansions produced this message.
    """
    __slots__ = ()

    def __new__(cls, text='', user='', source='', is_channel=False, time=None, level=None, hostmask=None, depth=0):
        if time is None:
            time = datetime.datetime.now(datetime.timezone.utc)
        if level is not None:
            level = AccessLevel(level)
        return super().__new__(cls, text, user, source, is_channel, time, level, hostmask, depth)

    @classmethod
    def inbound(cls, client, target, nick, text, hostmask=None):
        """
        Normalizes an incoming PRIVMSG or NOTICE.

        :param client: Protocol client, used to tell channels from nicknames.
        :param target: Where the message was sent to.
        :param nick: Who sent it.
        :param text: Message text.
        :param hostmask: Sender hostmask, if known.
        """
        is_channel = bool(client.is_channel(target))
        return cls(
            text=text, user=nick, source=target if is_channel else nick, is_channel=is_channel, hostmask=hostmask
        )

    def resolved(self, level):
        """Returns a copy with the sender's level set."""
        return self._replace(level=AccessLevel(level))

    def with_text(self, text):
        """Returns a copy with different text."""
        return self._replace(text=text)


class Gateway:
    """
    Formats and sends outbound messages.

    :ivar client: Protocol client.  Needs ``is_channel(target)``, ``message(target, line)``, ``action(target, text)``
        and a ``nickname`` attribute.
    :ivar width: Maximum line length.
    :ivar indent: Prefix for continuation lines.
    :ivar on_sent: Coroutine function called with the outbound :class:`Message` after sending, or None.
    """

    def __init__(self, client, width=400, indent='...', on_sent=None):
        self.client = client
        self.width = width
        self.indent = indent
        self.on_sent = on_sent

    async def _sent(self, text, target):
        is_channel = bool(self.client.is_channel(target))
        outbound = Message(
            text=text, user=self.client.nickname, source=target if is_channel else self.client.nickname,
            is_channel=is_channel,
        )
        if self.on_sent is not None:
            await self.on_sent(outbound)
        return outbound

    async def send(self, target, text):
        """
        Sends `text` to `target` as is, apart from markup translation and line splitting.

        :return: The outbound :class:`Message`
        """
        text = format_markup(text)
        for line in wrap(text, self.width, self.indent):
            await self.client.message(target, line)
        return await self._sent(text, target)

    async def send_message(self, text, user, to, noname=False):
        """
        Sends a reply to `user`.

        :param text: Message text.
        :param user: Nickname being answered.  Unless `noname` is set, the first line starts with "user: "
        :param to: Where to answer.  If this isn't a channel, the answer goes to `user` directly.
        :param noname: If True, don't address the user by name.
        :return: The outbound :class:`Message`
        """
        target = to if to and self.client.is_channel(to) else user
        if not noname:
            text = "{}: {}".format(user, text)
        return await self.send(target, text)

    async def send_action(self, text, to):
        """
        Sends `text` to `to` as an action (/me)

        :return: The outbound :class:`Message`
        """
        text = format_markup(text)
        await self.client.action(to, text)
        return await self._sent(text, to)
