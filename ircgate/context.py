"""Runtime state shared by the dispatcher and the built-in modules."""
import collections
import logging
import re

__all__ = ['ChannelPolicy', 'Context', 'mask_matches']

logger = logging.getLogger(__name__)


def mask_matches(pattern, hostmask):
    """
    Returns True if `hostmask` matches `pattern`, case-insensitive.  Only ``*`` and ``?`` are wildcards.

    :param pattern: Hostmask pattern, e.g. ``*!*@example.com``
    :param hostmask: nick!user@host
    """
    regex = re.escape(pattern.lower()).replace(r"\*", ".*").replace(r"\?", ".")
    return re.fullmatch(regex, hostmask.lower(), re.DOTALL) is not None


class ChannelPolicy:
    """
    Per-channel settings.

    :ivar name: Channel name, as configured.
    :ivar password: Channel key, or None.
    :ivar serious: If True, only commands marked serious may run in this channel.
    :ivar secret: If True, messages in this channel are not kept in the history.
    :ivar autojoin: If True, the bot joins this channel when it connects.
    """

    def __init__(self, name, password=None, serious=False, secret=False, autojoin=False):
        self.name = name
        self.password = password
        self.serious = serious
        self.secret = secret
        self.autojoin = autojoin

    def __repr__(self):
        return "<{}({!r}, serious={}, secret={})>".format(type(self).__name__, self.name, self.serious, self.secret)


class Context:
    """
    Everything the dispatcher and commands need to know that doesn't come from the registry.

    :ivar prefix: Command prefix, e.g. '!'
    :ivar channels: Dictionary of lowercase channel name -> :class:`ChannelPolicy`
    :ivar admins: Dictionary of lowercase services account -> True if root, False if admin.
    :ivar aliases: Dictionary of lowercase alias name -> alias definition (see :mod:`ircgate.modules.alias`)
    :ivar ignores: Set of lowercase hostmask patterns whose commands are ignored.
    :ivar history: Recent messages, oldest first.
    :ivar whois_timeout: Seconds to wait for identity lookups.
    :ivar modules: Module identifiers to load at startup, or None for all of them.
    :ivar wrap_length: Maximum outgoing line length.
    :ivar wrap_indent: Prefix of continuation lines.
    """

    def __init__(
            self, prefix='!', channels=None, admins=None, aliases=None, ignores=None, history=1000,
            whois_timeout=10.0, modules=None, wrap_length=400, wrap_indent='...'
    ):
        self.prefix = prefix
        self.channels = {}
        for policy in channels or ():
            self.channels[policy.name.lower()] = policy
        self.admins = {account.lower(): bool(root) for account, root in (admins or {}).items()}
        self.aliases = dict(aliases or {})
        self.ignores = {pattern.lower() for pattern in ignores or ()}
        self.history = collections.deque(maxlen=history or None)
        self.whois_timeout = whois_timeout
        self.modules = modules
        self.wrap_length = wrap_length
        self.wrap_indent = wrap_indent

    @classmethod
    def from_config(cls, config):
        """
        Builds a context from a :class:`~ircgate.Config`

        :param config: Configuration.
        """
        main = config.main
        channels = {}
        for item in main.channels:
            channels[item['channel'].lower()] = ChannelPolicy(item['channel'], item['password'], autojoin=True)
        for key, section in config.channels.items():
            policy = channels.get(key)
            if policy is None:
                policy = channels[key] = ChannelPolicy(key)
            if section.password:
                policy.password = section.password
            policy.serious = section.serious
            policy.secret = section.secret
        return cls(
            prefix=main.prefix, channels=channels.values(), admins=config.admins, aliases=config.aliases,
            history=main.history, whois_timeout=main.whois_timeout, modules=main.modules,
            wrap_length=main.wrap_length, wrap_indent=main.wrap_indent,
        )

    def channel(self, name):
        """
        Returns the policy of channel `name`, creating a default one if there is none.

        :param name: Channel name.
        """
        key = name.lower()
        policy = self.channels.get(key)
        if policy is None:
            policy = self.channels[key] = ChannelPolicy(name)
        return policy

    def is_serious(self, name):
        policy = self.channels.get(name.lower())
        return bool(policy and policy.serious)

    def is_secret(self, name):
        policy = self.channels.get(name.lower())
        return bool(policy and policy.secret)

    def is_ignored(self, hostmask):
        """
        Returns True if `hostmask` matches an ignored pattern.  Patterns use ``*`` and ``?`` wildcards.

        :param hostmask: nick!user@host
        """
        if not hostmask:
            return False
        return any(mask_matches(pattern, hostmask) for pattern in self.ignores)
