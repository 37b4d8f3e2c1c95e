"""
Background-sync registration and the queue drain that replays offline writes.
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Set

from .exceptions import NetworkError, QueueStorageError
from .messages import SyncComplete

if TYPE_CHECKING:
    from .context import WorkerContext

logger = logging.getLogger("caseworker.sync")

DRAIN_KEY = "sync:drain"


class SyncRegistry:
    """Sync tags registered while offline, fired when connectivity returns."""

    def __init__(self):
        self._pending: Set[str] = set()

    def register(self, tag: str) -> None:
        if tag not in self._pending:
            logger.debug(f"Registered background sync: {tag}")
        self._pending.add(tag)

    def pending(self) -> List[str]:
        return sorted(self._pending)

    def take(self) -> List[str]:
        """Return and clear the registered tags."""
        tags = sorted(self._pending)
        self._pending.clear()
        return tags


@dataclass
class SyncReport:
    """Outcome of one drain pass."""
    attempted: int = 0
    replayed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    remaining: int = 0
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "replayed": self.replayed,
            "failed": self.failed,
            "remaining": self.remaining,
            "timestamp": self.timestamp,
        }


class SyncCoordinator:
    """
    Drains the durable queue.

    Entries are replayed in id order with their captured method, headers and
    body. A 2xx reply deletes the entry; anything else leaves it for the next
    trigger. Every pass ends with SYNC_COMPLETE to all controlled clients,
    even a partial one, so pages can refresh.
    """

    def __init__(self, ctx: "WorkerContext"):
        self.ctx = ctx

    async def drain(self) -> SyncReport:
        """Run a drain, or join the one already running."""
        return await self.ctx.coalescer.get_or_run(DRAIN_KEY, self._drain_once)

    async def _drain_once(self) -> SyncReport:
        report = SyncReport()
        queue = self.ctx.queue

        try:
            entries = await queue.all()
        except QueueStorageError as e:
            logger.error(f"Sync could not read the queue: {e}")
            entries = []

        logger.info(f"Syncing {len(entries)} queued mutations")
        for mutation in entries:
            report.attempted += 1
            try:
                response = await self.ctx.network.fetch(mutation.to_request())
            except NetworkError as e:
                logger.warning(f"Sync failed for {mutation.method} {mutation.url}: {e}")
                report.failed.append(mutation.id)
                continue
            except Exception as e:
                # Later entries are still replayed
                logger.error(f"Sync error for mutation {mutation.id}: {e!r}", exc_info=True)
                report.failed.append(mutation.id)
                continue

            if not response.is_success:
                logger.warning(
                    f"Sync got {response.status_code} for {mutation.method} {mutation.url}, "
                    f"keeping mutation {mutation.id}"
                )
                report.failed.append(mutation.id)
                continue

            try:
                await queue.delete(mutation.id)
            except QueueStorageError as e:
                logger.error(f"Replayed mutation {mutation.id} but could not remove it: {e}")
                report.failed.append(mutation.id)
                continue
            report.replayed.append(mutation.id)
            logger.info(f"Synced: {mutation.method} {mutation.url}")

        try:
            report.remaining = await queue.count()
        except QueueStorageError as e:
            logger.error(f"Sync could not count the queue: {e}")
            report.remaining = len(report.failed)

        if report.remaining:
            # Left-over entries stay eligible for the next connectivity trigger
            self.ctx.sync_registry.register(self.ctx.sync_tag)

        notification = SyncComplete()
        report.timestamp = notification.timestamp
        self.ctx.clients.broadcast(notification.to_message())
        return report
