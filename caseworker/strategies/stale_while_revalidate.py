"""
Stale-while-revalidate lane for general GET traffic.
"""
import logging
from typing import TYPE_CHECKING

import httpx

from ..cache import CachedResponse, StoreRole
from ..exceptions import NetworkError
from ..messages import DataUpdated
from ..network import FetchRequest
from .base import Strategy

if TYPE_CHECKING:
    from ..context import WorkerContext

logger = logging.getLogger("caseworker.strategies.swr")


class StaleWhileRevalidateStrategy(Strategy):
    """
    Answer from the dynamic store right away and refresh it in the background.

    The caller never waits for revalidation when a copy exists. Without a
    copy the caller waits for the network, and a transport failure
    propagates as NetworkError.
    """

    name = "stale-while-revalidate"

    async def handle(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        cached = await self.lookup(ctx, StoreRole.DYNAMIC, request.cache_key)

        if cached is None:
            logger.debug(f"CACHE MISS (dynamic): {request.url}")
            response = await ctx.network.fetch(request)
            await self.save(ctx, StoreRole.DYNAMIC, request, response)
            return response

        logger.debug(f"CACHE HIT (dynamic, revalidating): {request.url}")
        self._trigger_background_revalidate(request, cached, ctx)
        return cached.to_response()

    def _trigger_background_revalidate(
        self,
        request: FetchRequest,
        cached: CachedResponse,
        ctx: "WorkerContext",
    ) -> None:
        """Refresh without blocking; one refresh per URL at a time."""
        key = f"revalidate:{request.cache_key}"
        if ctx.coalescer.is_running(key):
            logger.debug(f"Already revalidating: {request.url}")
            return

        async def do_revalidate():
            try:
                response = await ctx.network.fetch(request)
            except NetworkError as e:
                logger.debug(f"Background revalidation dropped: {request.url} - {e}")
                return
            fresh = await self.save(ctx, StoreRole.DYNAMIC, request, response)
            if fresh is not None and fresh.body != cached.body:
                logger.info(f"Revalidated with new content: {request.url}")
                ctx.clients.broadcast(DataUpdated(url=request.url).to_message())

        ctx.spawn(ctx.coalescer.get_or_run(key, do_revalidate), name=key)
