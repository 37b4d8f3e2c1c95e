"""
Base strategy abstraction and the storage-failure policy shared by all lanes.

Storage failures never break the request path: a failed read is a miss,
a failed write is skipped. Both are logged.
"""
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import httpx

from ..cache import CachedResponse, StoreRole
from ..exceptions import CacheStorageError
from ..network import FetchRequest

if TYPE_CHECKING:
    from ..context import WorkerContext

logger = logging.getLogger("caseworker.strategies")


class Strategy(ABC):
    """One caching lane: a small state machine over network and cache outcomes."""

    name = "strategy"

    @abstractmethod
    async def handle(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        """
        Produce a response for an intercepted request.

        Args:
            request: The intercepted request
            ctx: Worker context (stores, queue, network, clients)

        Returns:
            Always a response; only the lanes that document it may raise NetworkError
        """

    async def lookup(
        self,
        ctx: "WorkerContext",
        role: StoreRole,
        key: str,
        record: bool = True,
    ) -> Optional[CachedResponse]:
        """Read from a role store; storage errors count as a miss."""
        try:
            store = await ctx.store(role)
            cached = await store.match(key)
        except CacheStorageError as e:
            logger.error(f"[{self.name}] cache read failed for {key}: {e}")
            cached = None

        if record:
            if cached is None:
                ctx.metrics.record_miss()
            else:
                ctx.metrics.record_hit()
        return cached

    async def save(
        self,
        ctx: "WorkerContext",
        role: StoreRole,
        request: FetchRequest,
        response: httpx.Response,
    ) -> Optional[CachedResponse]:
        """Store a copy of a 2xx response. Returns the copy, or None if nothing was written."""
        if not response.is_success:
            return None
        cached = CachedResponse.from_response(request.url, response)
        try:
            store = await ctx.store(role)
            await store.put(request.cache_key, cached)
        except CacheStorageError as e:
            logger.error(f"[{self.name}] cache write failed for {request.url}: {e}")
            return None
        return cached
