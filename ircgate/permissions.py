"""
Resolving a user's access level.

A user's level starts from their status in the channel the command was used in (op or voice) and is upgraded if their
services account, found through an identity lookup (WHOIS), is on the admin list.  The lookup is the only place
where command dispatch waits on the network, so it is bounded by a timeout: if the lookup doesn't finish in time or
fails, the channel-derived level is used.
"""
import asyncio
import enum
import logging

from ircgate.access import AccessLevel

__all__ = ['LookupState', 'PendingLookup', 'PermissionResolver', 'channel_modes']

logger = logging.getLogger(__name__)


class LookupState(enum.Enum):
    START = 'start'
    AWAITING = 'awaiting'
    RESOLVED = 'resolved'
    TIMED_OUT = 'timed out'
    FAILED = 'failed'


class PendingLookup:
    """
    An identity lookup in flight.  Completes exactly once; anything after that is ignored.

    :ivar nick: Nickname being looked up.
    :ivar state: :class:`LookupState`
    :ivar future: Resolves to the account name, or None if there is none or the lookup didn't succeed.
    :ivar task: The task running the lookup, if any.
    :ivar waiters: Number of callers currently waiting on the result.
    """

    def __init__(self, nick):
        self.nick = nick
        self.state = LookupState.START
        self.future = asyncio.get_running_loop().create_future()
        self.task = None
        self.waiters = 0

    @property
    def done(self):
        return self.future.done()

    def complete(self, account):
        """
        Completes the lookup with `account`.

        :return: True if this call completed the lookup, False if it was already complete.
        """
        if self.done:
            logger.debug("Ignoring late identity result for %r (%s)", self.nick, self.state.value)
            return False
        self.state = LookupState.RESOLVED
        self.future.set_result(account)
        return True

    def fail(self, state=LookupState.FAILED):
        """
        Completes the lookup without an account.

        :return: True if this call completed the lookup, False if it was already complete.
        """
        if self.done:
            return False
        self.state = state
        self.future.set_result(None)
        return True

    def __repr__(self):
        return "<{}({!r}, {})>".format(type(self).__name__, self.nick, self.state.value)


def channel_modes(client, channel, nick):
    """
    Returns the set of status modes (e.g. {'o', 'v'}) `nick` holds in `channel`, as tracked by the protocol client.

    :param client: Protocol client with a pydle-style ``channels`` mapping.
    :param channel: Channel name, or None for private messages.
    :param nick: Nickname.
    """
    if not channel:
        return set()
    info = client.channels.get(channel)
    if not info:
        return set()
    nick = nick.lower()
    modes = set()
    for mode, holders in info.get('modes', {}).items():
        if isinstance(holders, (list, set, tuple)) and any(holder.lower() == nick for holder in holders):
            modes.add(mode)
    return modes


class PermissionResolver:
    """
    Determines access levels.

    :ivar lookup: Coroutine function that takes a nickname and returns its services account, or None.
    :ivar admins: Dictionary of lowercase account name -> True if that admin is root.
    :ivar timeout: Seconds to wait for an identity lookup.
    :ivar pending: Dictionary of lowercase nickname -> :class:`PendingLookup` currently in flight.
    """

    def __init__(self, lookup, admins=None, timeout=10.0):
        self.lookup = lookup
        self.admins = {name.lower(): bool(root) for name, root in (admins or {}).items()}
        self.timeout = timeout
        self.pending = {}

    @staticmethod
    def baseline(modes):
        """
        Returns the level implied by channel status modes.

        :param modes: Collection of mode letters the user holds in the channel.
        """
        if 'o' in modes:
            return AccessLevel.OPERATOR
        if 'v' in modes:
            return AccessLevel.VOICE
        return AccessLevel.NORMAL

    def admin_level(self, account):
        """Returns ROOT or ADMIN if `account` is on the admin list, otherwise None."""
        if not account:
            return None
        root = self.admins.get(account.lower())
        if root is None:
            return None
        return AccessLevel.ROOT if root else AccessLevel.ADMIN

    async def _run(self, pending):
        if pending.done:
            return
        pending.state = LookupState.AWAITING
        try:
            account = await self.lookup(pending.nick)
        except asyncio.CancelledError:
            pending.fail()
            raise
        except Exception:
            logger.exception("Identity lookup for %r failed", pending.nick)
            pending.fail()
        else:
            pending.complete(account)

    def start(self, nick):
        """
        Returns the :class:`PendingLookup` for `nick`, starting one if none is in flight.

        The entry is dropped from :attr:`pending` as soon as the lookup completes, however that happens.

        :param nick: Nickname.
        """
        key = nick.lower()
        pending = self.pending.get(key)
        if pending is None:
            pending = PendingLookup(nick)
            self.pending[key] = pending
            pending.future.add_done_callback(lambda future: self._forget(pending))
            pending.task = asyncio.ensure_future(self._run(pending))
        return pending

    def feed(self, nick, account):
        """
        Completes an in-flight lookup from an identity result that arrived some other way.

        :return: True if a pending lookup was completed.
        """
        pending = self.pending.get(nick.lower())
        return pending is not None and pending.complete(account)

    def _forget(self, pending):
        key = pending.nick.lower()
        if self.pending.get(key) is pending:
            del self.pending[key]
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()

    async def identify(self, nick):
        """
        Returns the services account of `nick`, or None if they have none or it couldn't be found out in time.

        Every caller waits at most :attr:`timeout` from the moment it asked.  A shared lookup is only given up once its
        last waiter has stopped waiting.

        :param nick: Nickname.
        """
        pending = self.start(nick)
        pending.waiters += 1
        state = LookupState.FAILED
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), self.timeout)
        except asyncio.TimeoutError:
            state = LookupState.TIMED_OUT
            logger.warning("Identity lookup for %r timed out after %.1fs", nick, self.timeout)
            return None
        finally:
            pending.waiters -= 1
            if not pending.waiters:
                pending.fail(state)

    async def resolve(self, nick, modes=()):
        """
        Returns the access level of `nick`.

        :param nick: Nickname.
        :param modes: Status modes held in the channel the request came from.  Empty for private messages.
        """
        level = self.baseline(modes)
        account = await self.identify(nick)
        admin = self.admin_level(account)
        if admin is not None and admin > level:
            level = admin
        logger.debug("Resolved %r (account %r) to %s", nick, account, level)
        return level
