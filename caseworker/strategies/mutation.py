"""
Mutation lane: writes go straight to the network and are queued when it is down.
"""
import logging
from typing import TYPE_CHECKING

import httpx

from ..exceptions import NetworkError, QueueStorageError
from ..network import FetchRequest, ResponseSource, json_response
from .base import Strategy

if TYPE_CHECKING:
    from ..context import WorkerContext

logger = logging.getLogger("caseworker.strategies.mutation")

# Only these are captured for replay; HEAD, OPTIONS and the like are not writes
QUEUEABLE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class MutationStrategy(Strategy):
    """
    Pass writes through; on transport failure queue them and answer 200.

    Other non-GET methods get no offline answer: their NetworkError propagates.

    The optimistic 200 means the page cannot know yet whether the write will
    eventually land. The Sync Coordinator replays it on the next trigger.
    """

    name = "mutation"

    async def handle(self, request: FetchRequest, ctx: "WorkerContext") -> httpx.Response:
        try:
            return await ctx.network.fetch(request)
        except NetworkError:
            if request.method not in QUEUEABLE_METHODS:
                raise
            logger.info(f"Offline {request.method} {request.url}, queuing for sync")

        payload = {
            "offline": True,
            "queued": False,
            "message": "Request saved and will be sent when the connection returns",
        }
        try:
            mutation = await ctx.queue.enqueue(
                url=request.url,
                method=request.method,
                headers=request.headers,
                body=request.body,
            )
        except QueueStorageError as e:
            logger.error(f"Could not queue {request.method} {request.url}: {e}")
            payload["message"] = "Offline and the request could not be saved"
        else:
            payload["queued"] = True
            payload["id"] = mutation.id

        ctx.sync_registry.register(ctx.sync_tag)
        return json_response(200, payload, ResponseSource.QUEUED)
