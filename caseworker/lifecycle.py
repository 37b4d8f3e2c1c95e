"""
Install / activate / version cutover.
"""
import logging
from enum import Enum
from typing import TYPE_CHECKING, List

from .cache import StoreRole
from .exceptions import CacheStorageError, InstallError, PrecacheError

if TYPE_CHECKING:
    from .context import WorkerContext

logger = logging.getLogger("caseworker.lifecycle")


class WorkerState(Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"       # Waiting to activate
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"       # Install failed; never activates


class LifecycleManager:
    """
    Governs which cache generation is current.

    - install: pre-warm the static store, all-or-nothing
    - activate: delete every store outside the current generation, then
      claim open clients
    """

    def __init__(self, ctx: "WorkerContext"):
        self.ctx = ctx
        self.state = WorkerState.PARSED

    @property
    def is_active(self) -> bool:
        return self.state == WorkerState.ACTIVATED

    @property
    def is_waiting(self) -> bool:
        return self.state == WorkerState.INSTALLED

    async def install(self) -> None:
        """
        Populate the current static store with the precache list.

        Raises:
            InstallError: If any asset could not be fetched or stored
        """
        self.state = WorkerState.INSTALLING
        logger.info(f"Installing generation {self.ctx.version}")
        try:
            store = await self.ctx.store(StoreRole.STATIC)
            await store.add_all(self.ctx.precache_urls, self.ctx.network)
        except (PrecacheError, CacheStorageError) as e:
            self.state = WorkerState.REDUNDANT
            logger.error(f"Install of {self.ctx.version} failed: {e}")
            raise InstallError(f"Install of {self.ctx.version} failed: {e.message}") from e

        self.state = WorkerState.INSTALLED
        logger.info(f"Installed generation {self.ctx.version} ({len(self.ctx.precache_urls)} assets)")

    async def activate(self) -> List[str]:
        """
        Make this generation current. Returns the names of the deleted stores.
        """
        if self.state == WorkerState.REDUNDANT:
            raise InstallError("Cannot activate a worker whose install failed")
        if self.state == WorkerState.ACTIVATED:
            return []

        self.state = WorkerState.ACTIVATING
        logger.info(f"Activating generation {self.ctx.version}")
        deleted = await self.delete_stale_stores()
        self.ctx.clients.claim()
        self.state = WorkerState.ACTIVATED
        return deleted

    async def skip_waiting(self) -> bool:
        """Activate now if installed and waiting. Returns True if it activated."""
        if not self.is_waiting:
            return False
        await self.activate()
        return True

    async def delete_stale_stores(self) -> List[str]:
        """Delete every store whose name is not one of the current generation's names."""
        deleted = []
        for name in await self.ctx.caches.keys():
            if self.ctx.generation.is_current(name):
                continue
            logger.info(f"Removing old cache {name}")
            if await self.ctx.caches.delete(name):
                deleted.append(name)
        return deleted
