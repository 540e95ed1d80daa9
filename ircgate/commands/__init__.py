"""
IRC command definition tools.

This package defines the classes and utility functions used to define bot commands, parse their arguments and keep
track of which commands and plugins are loaded.

Argument Parsing
================
Commands receive the text that follows their name.  Named parameters are written as leading flags (``-to:#channel``),
which :func:`parse_flag` and :func:`consume_flag` pick out of that text; whatever remains is the command's free-form
argument.

Commands
========
The most basic :class:`Command` decorates a coroutine function in such a way that it is called with the following
signature::

    function(bot, message)

Where `bot` is the :class:`~ircgate.dispatch.Dispatcher` and `message` the :class:`~ircgate.gateway.Message` that
triggered the command, with its text reduced to the command's arguments.

Registry
========
A :class:`Registry` holds everything that is loaded.  Commands are found by name; every loaded item, command or not,
receives the bot events it has ``on_<event>`` methods for.
"""
from .exc import *
from .core import *
from .commands import *
