"""
Argument and flag parsing for command text.

Flags
=====
Commands take named parameters as a run of leading flag tokens::

    !say -to:#channel Hello there
    !alias -create:roll30 -structure:"^([0-9]+)$" !roll {0}d30

A flag is ``-name``, ``-name:value``, ``-name=value`` or ``-name:"quoted value"``.  Only the tokens *before* the first
word that does not start with ``-`` are considered, so flags belonging to a nested command line (as in the alias
example above) are left alone.  Writing ``\\-`` instead of ``-`` keeps a word from being read as a flag; consuming a flag
turns those escapes back into plain ``-``.
"""
import collections
import re

__all__ = [
    'Flag',
    'leading_flags', 'find_flag', 'parse_flag', 'consume_flag', 'unescape',
]


#: A parsed flag.  `start` and `end` locate the whole token in the text it was parsed from.
Flag = collections.namedtuple('Flag', ['name', 'value', 'start', 'end'])

_SPACE = re.compile(r'\s*')
_FLAG = re.compile(
    r'''
    -(?P<name>[^\s:="\\]+)
    (?:
        [:=]
        (?:
            "(?P<quoted>(?:\\.|[^"\\])*)"
            |
            (?P<value>\S+)
        )?
    )?
    (?=\s|$)
    ''',
    re.VERBOSE
)
_ESCAPED_MARKER = re.compile(r'(?<!\\)\\-')


def leading_flags(message):
    """
    Parses the run of flag tokens at the start of `message`.

    :param message: Text to parse.
    :return: A list of :class:`Flag` in the order they appear.  Malformed input simply ends the run.
    """
    flags = []
    pos = _SPACE.match(message).end()
    while pos < len(message):
        match = _FLAG.match(message, pos)
        if not match:
            break
        quoted = match.group('quoted')
        if quoted is not None:
            value = quoted.replace('\\"', '"')
        else:
            value = match.group('value') or ''
        flags.append(Flag(match.group('name'), value, match.start(), match.end()))
        pos = _SPACE.match(message, match.end()).end()
    return flags


def find_flag(message, name):
    """
    Returns the first leading :class:`Flag` called `name` (case-insensitive), or None.

    :param message: Text to search.
    :param name: Flag name, without the leading '-'
    """
    name = name.lower()
    for flag in leading_flags(message):
        if flag.name.lower() == name:
            return flag
    return None


def parse_flag(message, name):
    """
    Returns True if the leading flags of `message` include `name`.

    :param message: Text to search.
    :param name: Flag name, without the leading '-'
    """
    return find_flag(message, name) is not None


def unescape(message):
    """Turns escaped flag markers (``\\-``) into plain dashes."""
    return _ESCAPED_MARKER.sub('-', message)


def consume_flag(message, name, escape=False):
    """
    Removes flag `name` from the leading flags of `message`.

    :param message: Text to parse.
    :param name: Flag name, without the leading '-'
    :param escape: If True, escaped markers in the remainder are kept as they are.  Use this when the remainder is
        stored to be parsed again later.
    :return: A tuple of (value, remainder).  If the flag is absent, this is ('', message) with `message` untouched.
    """
    flag = find_flag(message, name)
    if flag is None:
        return '', message
    end = _SPACE.match(message, flag.end).end()
    remainder = message[:flag.start] + message[end:]
    if not escape:
        remainder = unescape(remainder)
    return flag.value.strip(), remainder.strip()
