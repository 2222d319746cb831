"""HostCapacityPool: one capacity token per worker thread across all hosts.

Tokens are handed out highest priority first (earliest-configured host),
then in the order they were returned. Acquirers that find the pool empty
queue up in arrival order; a release hands its token straight to the oldest
live waiter, so a token never sits in the pool while someone is waiting.

Mutation happens only inside acquire()/release() on the event loop thread.
"""

import asyncio
import heapq
import itertools
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

import structlog

from ..domain.errors import PoolConfigurationError, TokenReleaseError
from ..domain.models import CapacityToken, HostSpec

logger = structlog.get_logger(__name__)

_Key = tuple[HostSpec, int]


class HostCapacityPool:
    def __init__(self, hosts: Sequence[HostSpec]) -> None:
        hosts = tuple(hosts)
        if not hosts:
            raise PoolConfigurationError("at least one host is required")
        for h in hosts:
            if h.threads < 0:
                raise PoolConfigurationError(f"host {h.label} has negative thread count {h.threads}")
        total = sum(h.threads for h in hosts)
        if total == 0:
            raise PoolConfigurationError("configured hosts provide zero threads")

        self._hosts = hosts
        self._total = total
        self._seq = itertools.count()
        self._heap: list[tuple[int, int, CapacityToken]] = []
        self._waiters: deque[asyncio.Future[CapacityToken]] = deque()
        self._capacity: dict[_Key, int] = {}
        self._held: dict[_Key, int] = {}

        n = len(hosts)
        for idx, host in enumerate(hosts):
            priority = n - idx
            key = (host, priority)
            self._capacity[key] = host.threads
            self._held[key] = 0
            for _ in range(host.threads):
                token = CapacityToken(host=host, priority=priority)
                heapq.heappush(self._heap, (-priority, next(self._seq), token))

    @property
    def hosts(self) -> tuple[HostSpec, ...]:
        return self._hosts

    def total_capacity(self) -> int: return self._total
    def available(self) -> int: return len(self._heap)
    def in_use(self) -> int: return sum(self._held.values())
    def waiting(self) -> int: return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> CapacityToken:
        """Take the highest-priority free token, waiting for a release if there is none."""
        if self._heap:
            _, _, token = heapq.heappop(self._heap)
            self._held[(token.host, token.priority)] += 1
            logger.debug("token_acquired", host=token.host.label, available=len(self._heap))
            return token

        fut: asyncio.Future[CapacityToken] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            token = await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # handed a token after cancellation was requested: give it to the next in line
                self.release(fut.result())
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise
        logger.debug("token_acquired_after_wait", host=token.host.label)
        return token

    def release(self, token: CapacityToken | None) -> None:
        """Return a token. None is ignored; each acquired token must be released exactly once."""
        if token is None:
            return
        key = (token.host, token.priority)
        if key not in self._capacity:
            raise TokenReleaseError(f"token for {token.host.label} does not belong to this pool")
        if self._held[key] <= 0:
            raise TokenReleaseError(f"token for {token.host.label} released more often than acquired")
        self._held[key] -= 1

        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            waiter.set_result(token)
            self._held[key] += 1
            logger.debug("token_handed_off", host=token.host.label, waiting=self.waiting())
            return
        heapq.heappush(self._heap, (-token.priority, next(self._seq), token))
        logger.debug("token_released", host=token.host.label, available=len(self._heap))

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[CapacityToken]:
        token = await self.acquire()
        try:
            yield token
        finally:
            self.release(token)
