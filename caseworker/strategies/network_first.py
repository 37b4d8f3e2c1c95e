"""
Network-first lane for API reads.
"""
import logging
from typing import TYPE_CHECKING

import httpx

from ..cache import StoreRole
from ..exceptions import NetworkError
from ..network import FetchRequest, offline_api_response
from .base import Strategy

if TYPE_CHECKING:
    from ..context import WorkerContext

logger = logging.getLogger("caseworker.strategies.network_first")


class NetworkFirstStrategy(Strategy):
    """
    Live data when reachable, the last good copy when not.

    Only transport failure falls back; an HTTP error status from the API is
    returned as-is. A missing copy yields 503 with offline=true so callers
    can tell "no data" from "stale data".
    """

    name = "network-first"

    async def handle(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        try:
            response = await ctx.network.fetch(request)
        except NetworkError:
            cached = await self.lookup(ctx, StoreRole.API, request.cache_key)
            if cached is not None:
                logger.info(f"Offline, serving cached API response: {request.url}")
                return cached.to_response()
            logger.info(f"Offline and nothing cached for {request.url}")
            return offline_api_response()

        await self.save(ctx, StoreRole.API, request, response)
        return response
