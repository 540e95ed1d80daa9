"""Improved usertracking capabilities."""
import inspect
import logging

import pydle

logger = logging.getLogger(__name__)


class UserTrackingClient(pydle.Client):
    """
    Adds services account lookups and hostmasks on top of Pydle's user tracking.

    Subclasses can override :meth:`on_identified` to learn about accounts as soon as the server reports them.
    """

    async def on_identified(self, nickname, account):
        """Called when a WHOIS reply tells us the services account of `nickname`."""
        pass

    async def _chain(self, attr, message):
        handler = getattr(super(), attr, None)
        if handler is not None:
            result = handler(message)
            if inspect.isawaitable(result):
                await result

    async def on_raw_307(self, message):
        """ WHOIS: User has identified for this nickname. (Anope) """
        await self._chain('on_raw_307', message)
        # Anope doesn't say which account.  For convenience, assume it's the same as the nick.
        target, nickname = message.params[:2]
        for info in (self._whois_info.get(nickname), self.users.get(nickname)):
            if info is not None and not info.get('account'):
                info['account'] = nickname
                info['identified'] = True
        await self.on_identified(nickname, nickname)

    async def on_raw_330(self, message):
        """ WHOIS: User is logged in as an account. """
        await self._chain('on_raw_330', message)
        target, nickname, account = message.params[:3]
        await self.on_identified(nickname, account)

    async def account_of(self, nickname):
        """
        Returns the services account `nickname` is logged into, or None.  Always performs a WHOIS.

        :param nickname: Nickname to look up.
        """
        result = self.whois(nickname)
        while inspect.isawaitable(result):
            result = await result
        if not result:
            return None
        return result.get('account') or None

    def hostmask(self, nickname):
        """
        Returns nick!user@host for `nickname` as far as it is known, or None if we don't know them.

        :param nickname: Nickname.
        """
        user = self.users.get(nickname)
        if not user:
            return None
        return "{}!{}@{}".format(nickname, user.get('username') or '*', user.get('hostname') or '*')

