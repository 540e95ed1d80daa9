"""Miscellaneous utilities."""
import collections
import datetime
import functools
import inspect
import logging
import time

import tornado.locks

__all__ = ["listify", "Throttle"]

logger = logging.getLogger(__name__)


def listify(x):
    """
    Returns [] for None, [x] for a single str or bytes, and x itself otherwise.

    :param x: What to listify.
    """
    if x is None:
        return []
    if isinstance(x, (str, bytes)):
        return [x]
    return x


class Throttle:
    """
    Token bucket that paces outgoing traffic.

    The bucket holds up to `burst` tokens and regains `amount` of them every `rate` seconds.  Every queued send has a
    cost and waits until the bucket holds that many tokens.  A send that costs more than the whole bucket goes out as
    soon as the bucket is full, leaving it in debt.

    :ivar burst: Bucket capacity.
    :ivar rate: Time per refill, as a :class:`datetime.timedelta`.  Zero disables throttling.
    :ivar amount: Tokens regained per refill.
    :ivar tokens: Tokens currently available.  Negative while in debt.
    :ivar queue: Pending (cost, callable) pairs.
    :ivar running: True while :meth:`run` is active.
    """
    _clock = time.monotonic

    def __init__(self, burst, rate, amount=1):
        """
        :param burst: Bucket capacity.  Must be > 0 unless `rate` is zero.
        :param rate: Seconds (or a :class:`datetime.timedelta`) per refill.  Must be >= 0.
        :param amount: Tokens regained per refill.  Must be > 0 unless `rate` is zero.
        """
        if not isinstance(rate, datetime.timedelta):
            rate = datetime.timedelta(seconds=rate)
        if rate < datetime.timedelta():
            raise ValueError('rate cannot be < 0 seconds')
        if rate and (burst <= 0 or amount <= 0):
            raise ValueError('burst and amount must be > 0')
        self.burst = burst
        self.rate = rate
        self.amount = amount
        self.tokens = burst
        self.stamp = self._clock()
        self.queue = collections.deque()
        self.running = False
        self._stopping = False
        self._wake = tornado.locks.Condition()

    @property
    def full(self):
        return not self.rate or self.tokens >= self.burst

    def refill(self):
        """Credits the tokens regained since the last refill."""
        now = self._clock()
        if self.rate and self.tokens < self.burst:
            ticks = (now - self.stamp) / self.rate.total_seconds()
            self.tokens = min(self.burst, self.tokens + ticks * self.amount)
        self.stamp = now

    def delay(self, cost):
        """Returns the seconds until a send costing `cost` may go out."""
        if not self.rate:
            return 0
        missing = min(cost, self.burst) - self.tokens
        if missing <= 0:
            return 0
        return missing / self.amount * self.rate.total_seconds()

    def add(self, cost, fn, *args, **kwargs):
        """
        Queues ``fn(*args, **kwargs)``.  It may return an awaitable, which is awaited before the next send.

        :param cost: Tokens the send uses up.
        :param fn: Callable.
        """
        self.queue.append((cost, functools.partial(fn, *args, **kwargs)))
        self._wake.notify_all()

    def reset(self):
        """Drops everything queued and makes :meth:`run` return at its next chance."""
        self.queue.clear()
        if self.running:
            self._stopping = True
            self._wake.notify_all()

    async def _wait(self, seconds=None):
        await self._wake.wait(timeout=None if seconds is None else datetime.timedelta(seconds=seconds))

    async def run(self, until_idle=False):
        """
        Sends queued items as fast as the bucket allows.

        :param until_idle: If True, return once the queue is empty and the bucket has filled up again.  Otherwise keep
            waiting for new items until :meth:`reset` is called.
        :return: False if the throttle was already running, True once it stops.
        """
        if self.running:
            return False
        self.running = True
        self._stopping = False
        try:
            while not self._stopping:
                self.refill()
                if self.queue:
                    wait = self.delay(self.queue[0][0])
                    if wait:
                        await self._wait(wait)
                        continue
                    cost, event = self.queue.popleft()
                    if self.rate:
                        self.tokens -= cost
                    try:
                        result = event()
                        if inspect.isawaitable(result):
                            await result
                    except Exception:
                        logger.exception("Throttled event %r failed", event)
                elif not until_idle:
                    await self._wait()
                elif self.full:
                    break
                else:
                    await self._wait(self.delay(self.burst))
        finally:
            self.running = False
            self._stopping = False
        return True
