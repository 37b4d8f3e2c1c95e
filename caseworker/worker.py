"""
The offline worker: a dispatch table from event kind to handler coroutine.

The host awaits dispatch() before it considers an event resolved, which
keeps the event alive until its work (precaching, replay, ...) is done.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel

from .cache import StoreRole
from .clients import PageClient
from .context import WorkerContext
from .exceptions import CacheStorageError, PrecacheError, QueueStorageError
from .lifecycle import LifecycleManager, WorkerState
from .messages import (
    CacheUrls,
    ClearCache,
    GetVersion,
    PerformanceData,
    SkipWaiting,
    VersionInfo,
    parse_command,
)
from .network import FetchRequest
from .router import Lane
from .strategies import Strategy, default_strategies
from .sync import SyncCoordinator, SyncReport

logger = logging.getLogger("caseworker.worker")


class EventType(Enum):
    INSTALL = "install"
    ACTIVATE = "activate"
    FETCH = "fetch"
    MESSAGE = "message"
    SYNC = "sync"
    PERIODIC_SYNC = "periodicsync"


@dataclass
class WorkerEvent:
    type: EventType


@dataclass
class FetchEvent(WorkerEvent):
    request: Optional[FetchRequest] = None
    type: EventType = EventType.FETCH


@dataclass
class MessageEvent(WorkerEvent):
    data: Union[dict, BaseModel] = field(default_factory=dict)
    source: Optional[PageClient] = None
    type: EventType = EventType.MESSAGE


@dataclass
class SyncEvent(WorkerEvent):
    tag: str = ""
    type: EventType = EventType.SYNC


@dataclass
class PeriodicSyncEvent(WorkerEvent):
    tag: str = ""
    type: EventType = EventType.PERIODIC_SYNC


class ServiceWorker:
    """
    Intercepts page traffic and routes it to a caching lane.

    Usage:
        worker = ServiceWorker(WorkerContext.from_settings(settings))
        await worker.start()
        response = await worker.fetch(FetchRequest.get("http://.../api/cases"))
    """

    def __init__(
        self,
        context: WorkerContext,
        strategies: Optional[Dict[Lane, Strategy]] = None,
    ):
        self.context = context
        self.lifecycle = LifecycleManager(context)
        self.sync_coordinator = SyncCoordinator(context)
        self.strategies = strategies or default_strategies()
        self._handlers: Dict[EventType, Callable[[Any], Awaitable[Any]]] = {
            EventType.INSTALL: self._on_install,
            EventType.ACTIVATE: self._on_activate,
            EventType.FETCH: self._on_fetch,
            EventType.MESSAGE: self._on_message,
            EventType.SYNC: self._on_sync,
            EventType.PERIODIC_SYNC: self._on_periodic_sync,
        }

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    @property
    def version(self) -> str:
        return self.context.version

    async def dispatch(self, event: WorkerEvent) -> Any:
        """Run the handler for an event and return its result."""
        handler = self._handlers[event.type]
        return await handler(event)

    # =========================================================================
    # Convenience entry points
    # =========================================================================

    async def start(self) -> None:
        """Install, then activate right away unless configured to wait."""
        try:
            await self.dispatch(WorkerEvent(EventType.INSTALL))
            if self.context.skip_waiting_on_install:
                await self.dispatch(WorkerEvent(EventType.ACTIVATE))
        finally:
            await self._register_leftover_sync()

    async def _register_leftover_sync(self) -> None:
        """Mutations queued before a restart wait for the next connectivity trigger."""
        try:
            queued = await self.context.queue.count()
        except QueueStorageError as e:
            logger.error(f"Could not read the mutation queue at startup: {e}")
            return
        if queued:
            logger.info(f"{queued} mutations left from a previous run, sync registered")
            self.context.sync_registry.register(self.context.sync_tag)

    async def fetch(self, request: FetchRequest) -> httpx.Response:
        return await self.dispatch(FetchEvent(request=request))

    async def post_message(
        self,
        data: Union[dict, BaseModel],
        source: Optional[PageClient] = None,
    ) -> Optional[dict]:
        return await self.dispatch(MessageEvent(data=data, source=source))

    async def sync(self, tag: Optional[str] = None) -> Optional[SyncReport]:
        return await self.dispatch(SyncEvent(tag=tag or self.context.sync_tag))

    async def periodic_sync(self, tag: Optional[str] = None) -> Optional[SyncReport]:
        return await self.dispatch(PeriodicSyncEvent(tag=tag or self.context.periodic_sync_tag))

    async def connectivity_restored(self) -> List[SyncReport]:
        """Fire a sync event for every tag registered while offline."""
        reports = []
        for tag in self.context.sync_registry.take():
            report = await self.dispatch(SyncEvent(tag=tag))
            if report is not None:
                reports.append(report)
        return reports

    async def report_performance(self) -> dict:
        """Broadcast PERFORMANCE_DATA to every controlled client."""
        try:
            cache_size = await self.context.generation_size()
        except CacheStorageError as e:
            logger.error(f"Could not measure cache size: {e}")
            cache_size = 0
        message = PerformanceData(
            cache_hit_rate=self.context.metrics.hit_rate,
            cache_size=cache_size,
        ).to_message()
        self.context.clients.broadcast(message)
        return message

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_install(self, event: WorkerEvent) -> None:
        await self.lifecycle.install()

    async def _on_activate(self, event: WorkerEvent) -> List[str]:
        return await self.lifecycle.activate()

    async def _on_fetch(self, event: FetchEvent) -> httpx.Response:
        request = event.request
        if not self.lifecycle.is_active:
            # Not controlling pages yet
            return await self.context.network.fetch(request)

        lane = self.context.router.route(request)
        logger.debug(f"{request.method} {request.url} -> {lane.value}")
        return await self.strategies[lane].handle(request, self.context)

    async def _on_message(self, event: MessageEvent) -> Optional[dict]:
        command = event.data
        if not isinstance(command, BaseModel):
            command = parse_command(command)
        if command is None:
            logger.warning(f"Ignoring unknown message: {event.data!r}")
            return None

        logger.info(f"Message received: {command.type}")

        if isinstance(command, SkipWaiting):
            await self.lifecycle.skip_waiting()
            return None

        if isinstance(command, CacheUrls):
            urls = [self.context.resolve(url) for url in command.urls]
            try:
                store = await self.context.store(StoreRole.STATIC)
                await store.add_all(urls, self.context.network)
            except (PrecacheError, CacheStorageError) as e:
                logger.warning(f"CACHE_URLS failed: {e}")
                return None
            self.context.router.add_static_assets(urls)
            return None

        if isinstance(command, ClearCache):
            try:
                for name in await self.context.caches.keys():
                    await self.context.caches.delete(name)
            except CacheStorageError as e:
                logger.error(f"CLEAR_CACHE failed: {e}")
                return None
            logger.info("Cleared all caches")
            return None

        if isinstance(command, GetVersion):
            return VersionInfo(version=self.version).model_dump()

        return None

    async def _on_sync(self, event: SyncEvent) -> Optional[SyncReport]:
        logger.info(f"Background sync: {event.tag}")
        if event.tag != self.context.sync_tag:
            logger.info(f"Ignoring sync for unknown tag {event.tag}")
            return None
        return await self.sync_coordinator.drain()

    async def _on_periodic_sync(self, event: PeriodicSyncEvent) -> Optional[SyncReport]:
        if event.tag != self.context.periodic_sync_tag:
            logger.info(f"Ignoring periodic sync for unknown tag {event.tag}")
            return None
        return await self.sync_coordinator.drain()
