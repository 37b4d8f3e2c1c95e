"""
FastAPI host for the offline worker.

Pages point at this app instead of the case tracker API. Every request is
turned into a fetch event; the WebSocket channel carries worker commands
from pages and notifications back to them.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from config.settings import settings

from . import __version__
from .context import WorkerContext
from .exceptions import InstallError, NetworkError
from .messages import parse_command
from .network import Destination, FetchRequest, response_source
from .worker import ServiceWorker

logger = logging.getLogger("caseworker.host")

# Not forwarded in either direction
HOP_BY_HOP_HEADERS = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade", "host", "content-length",
    "content-encoding",
}

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _filter_headers(headers) -> Dict[str, str]:
    return {
        name: value for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    }


async def _run_every(seconds: int, job: Callable[[], Awaitable[object]], name: str) -> None:
    """Run a job forever at a fixed interval; a failed run is logged and skipped."""
    while True:
        await asyncio.sleep(seconds)
        try:
            await job()
        except Exception as e:
            logger.error(f"Periodic {name} failed: {e}", exc_info=True)


def create_app(
    worker: Optional[ServiceWorker] = None,
    periodic_sync_interval: Optional[int] = None,
    performance_interval: Optional[int] = None,
) -> FastAPI:
    """
    Build the host application.

    Args:
        worker: Worker to host (built from settings when omitted)
        periodic_sync_interval: Seconds between periodic syncs (0 disables)
        performance_interval: Seconds between PERFORMANCE_DATA reports (0 disables)
    """
    if worker is None:
        worker = ServiceWorker(WorkerContext.from_settings(settings))
    if periodic_sync_interval is None:
        periodic_sync_interval = settings.periodic_sync_interval_seconds
    if performance_interval is None:
        performance_interval = settings.performance_report_interval_seconds

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await worker.start()
        except InstallError as e:
            # Keep serving as a plain pass-through proxy
            logger.error(f"Worker not installed, passing requests through: {e}")

        loops = []
        if periodic_sync_interval > 0:
            loops.append(asyncio.create_task(
                _run_every(periodic_sync_interval, worker.periodic_sync, "sync")
            ))
        if performance_interval > 0:
            loops.append(asyncio.create_task(
                _run_every(performance_interval, worker.report_performance, "performance report")
            ))
        try:
            yield
        finally:
            for task in loops:
                task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)
            await worker.context.aclose()

    app = FastAPI(
        title="Case Tracker Offline Worker",
        description="Offline caching and sync layer for the case tracker",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.worker = worker

    @app.exception_handler(NetworkError)
    async def network_error_handler(request: Request, exc: NetworkError):
        return JSONResponse(status_code=502, content={"error": exc.message, "offline": True})

    @app.get("/__worker__/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "state": worker.state.value, "version": worker.version}

    @app.get("/__worker__/stats")
    async def worker_stats():
        """Cache and queue statistics."""
        ctx = worker.context
        return {
            "state": worker.state.value,
            "version": worker.version,
            "caches": await ctx.caches.keys(),
            "queued": await ctx.queue.count(),
            "pending_sync_tags": ctx.sync_registry.pending(),
            "clients": len(ctx.clients),
            "metrics": ctx.metrics.get_stats(),
            "coalescer": ctx.coalescer.get_stats(),
            "background_tasks": ctx.pending_tasks,
        }

    @app.get("/__worker__/queue")
    async def queued_mutations():
        """Mutations waiting for the next sync, oldest first."""
        return [mutation.to_dict() for mutation in await worker.context.queue.all()]

    @app.post("/__worker__/messages")
    async def post_message(payload: Dict[str, Any] = Body(...)):
        """Send a command to the worker; replies are returned inline."""
        command = parse_command(payload)
        if command is None:
            raise HTTPException(status_code=422, detail=f"Unknown or malformed command: {payload.get('type')}")
        reply = await worker.post_message(command)
        return reply if reply is not None else {"status": "ok"}

    @app.post("/__worker__/connectivity")
    async def connectivity_restored():
        """Signal that the network is back; runs every registered sync."""
        reports = await worker.connectivity_restored()
        return {"syncs": [report.to_dict() for report in reports]}

    @app.post("/__worker__/sync")
    async def run_sync():
        """Drain the mutation queue now."""
        report = await worker.sync()
        return report.to_dict()

    @app.websocket("/__worker__/clients")
    async def client_channel(websocket: WebSocket):
        await websocket.accept()
        page_url = websocket.query_params.get("url", "/")
        client = worker.context.clients.connect(page_url, controlled=worker.lifecycle.is_active)

        async def pump():
            while True:
                message = await client.next_message()
                await websocket.send_json(message)

        pump_task = asyncio.create_task(pump())
        try:
            while True:
                data = await websocket.receive_json()
                reply = await worker.post_message(data, source=client)
                if reply is not None:
                    client.post_message(reply)
        except WebSocketDisconnect:
            pass
        finally:
            pump_task.cancel()
            worker.context.clients.disconnect(client.id)

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def intercept(request: Request, path: str):
        """Every other request is a fetch event."""
        url = worker.context.resolve("/" + path.lstrip("/"))
        if request.url.query:
            url = f"{url}?{request.url.query}"
        body = await request.body()
        fetch_request = FetchRequest(
            method=request.method,
            url=url,
            headers=_filter_headers(request.headers),
            body=body or None,
            destination=Destination.from_header(request.headers.get("sec-fetch-dest")),
        )

        response = await worker.fetch(fetch_request)
        headers = _filter_headers(response.headers)
        source = response_source(response)
        if source is not None:
            headers["X-Worker-Source"] = source.value
        return Response(content=response.content, status_code=response.status_code, headers=headers)

    return app
