"""
Cache-first lane for the app shell and static assets.
"""
import logging
from typing import TYPE_CHECKING

import httpx

from ..cache import StoreRole
from ..exceptions import NetworkError
from ..network import FetchRequest, ResponseSource, timeout_response
from .base import Strategy

if TYPE_CHECKING:
    from ..context import WorkerContext

logger = logging.getLogger("caseworker.strategies.cache_first")


class CacheFirstStrategy(Strategy):
    """
    Serve the stored copy without touching the network; fetch and store on a miss.

    Never raises: a failed navigation gets the app shell, anything else a
    synthetic 408.
    """

    name = "cache-first"

    async def handle(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        cached = await self.lookup(ctx, StoreRole.STATIC, request.cache_key)
        if cached is not None:
            logger.debug(f"CACHE HIT (static): {request.url}")
            return cached.to_response()

        logger.debug(f"CACHE MISS (static): {request.url}")
        try:
            response = await ctx.network.fetch(request)
        except NetworkError:
            return await self._offline_fallback(request, ctx)

        await self.save(ctx, StoreRole.STATIC, request, response)
        return response

    async def _offline_fallback(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        if request.is_navigation:
            shell = await self.lookup(ctx, StoreRole.STATIC, ctx.app_shell_url, record=False)
            if shell is not None:
                logger.info(f"Offline navigation to {request.url}, serving app shell")
                return shell.to_response(ResponseSource.FALLBACK)
            logger.warning(f"Offline navigation to {request.url} and no app shell cached")
        return timeout_response()
