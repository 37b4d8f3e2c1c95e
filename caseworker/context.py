"""
Worker-wide state, built once per worker lifecycle and passed explicitly
to every strategy, the lifecycle manager and the sync coordinator.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional, Set

import httpx

from .cache import CacheGeneration, CacheStorage, CacheStore, StoreRole
from .clients import ClientRegistry
from .coalescer import RequestCoalescer
from .metrics import PerformanceMonitor
from .mutations import MutationQueue
from .network import Network
from .router import RequestRouter, resolve_url
from .sync import SyncRegistry

logger = logging.getLogger("caseworker.context")


@dataclass
class WorkerContext:
    """
    Everything a handler needs: stores, queue, transport, clients, counters.

    Stores and the queue are shared by every concurrent request; writes to
    the same cache key are last-write-wins.
    """
    generation: CacheGeneration
    caches: CacheStorage
    queue: MutationQueue
    network: Network
    router: RequestRouter
    origin: str
    precache_urls: List[str]
    app_shell_url: str
    sync_tag: str = "background-sync"
    periodic_sync_tag: str = "case-periodic-sync"
    skip_waiting_on_install: bool = True
    clients: ClientRegistry = field(default_factory=ClientRegistry)
    metrics: PerformanceMonitor = field(default_factory=PerformanceMonitor)
    sync_registry: SyncRegistry = field(default_factory=SyncRegistry)
    coalescer: RequestCoalescer = field(default_factory=RequestCoalescer)
    _stores: Dict[StoreRole, CacheStore] = field(default_factory=dict, init=False, repr=False)
    _tasks: Set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    @classmethod
    def from_settings(
        cls,
        settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "WorkerContext":
        """
        Build a context from Settings.

        Args:
            settings: config.settings.Settings (or a compatible object)
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        origin = settings.origin
        precache_urls = [resolve_url(origin, url) for url in settings.precache_urls]
        return cls(
            generation=CacheGeneration(settings.cache_version, settings.cache_prefix),
            caches=CacheStorage(settings.cache_database_url),
            queue=MutationQueue(Path(settings.queue_db_path)),
            network=Network.create(settings.network_timeout_seconds, transport),
            router=RequestRouter(
                origin,
                static_assets=precache_urls,
                api_prefix=settings.api_prefix,
                static_extensions=settings.static_extensions,
            ),
            origin=origin,
            precache_urls=precache_urls,
            app_shell_url=resolve_url(origin, settings.app_shell_path),
            sync_tag=settings.sync_tag,
            periodic_sync_tag=settings.periodic_sync_tag,
            skip_waiting_on_install=settings.skip_waiting_on_install,
        )

    @property
    def version(self) -> str:
        return self.generation.version

    def resolve(self, url: str) -> str:
        return resolve_url(self.origin, url)

    async def store(self, role: StoreRole) -> CacheStore:
        """The current generation's store for a role, opened on first use."""
        store = self._stores.get(role)
        if store is None:
            store = await self.caches.open(self.generation.name_for(role))
            self._stores[role] = store
        return store

    async def generation_size(self) -> int:
        """Body bytes held by the current generation's stores."""
        total = 0
        for role in StoreRole:
            total += await (await self.store(role)).size()
        return total

    # =========================================================================
    # Detached background work
    # =========================================================================

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine detached from the caller; failures are logged, not raised."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Background task {task.get_name()} failed: {task.exception()!r}")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_for_background(self) -> None:
        """Wait until every detached task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.network.aclose()
        self.caches.close()
