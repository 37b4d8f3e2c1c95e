"""
Shared fixtures: a scriptable fake case tracker API and worker contexts wired to it.
"""
import json
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest

from config.settings import Settings
from caseworker.context import WorkerContext
from caseworker.worker import ServiceWorker

ORIGIN = "http://casetrack.test"

SHELL_ASSETS = {
    "/": b"<html>home</html>",
    "/index.html": b"<html>index</html>",
    "/offline.html": b"<html>app shell</html>",
    "/app.js": b"console.log('app');",
}


def url(path: str) -> str:
    return f"{ORIGIN}{path}"


class CorruptGzipStream(httpx.AsyncByteStream):
    """Body that claims gzip encoding but is not; reading it raises httpx.DecodingError."""

    async def __aiter__(self):
        yield b"not gzip"


class FakeUpstream:
    """
    Stand-in for the case tracker API behind an httpx.MockTransport.

    Flip `online` to simulate losing the network; `fail_urls` drops single URLs
    and `corrupt_urls` answer with an undecodable gzip body.
    """

    def __init__(self):
        self.online = True
        self.fail_urls: Set[str] = set()
        self.corrupt_urls: Set[str] = set()
        self.routes: Dict[Tuple[str, str], Tuple[int, bytes, Dict[str, str]]] = {}
        self.calls: List[httpx.Request] = []

    def set(
        self,
        path_or_url: str,
        body=b"",
        status: int = 200,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        target = path_or_url if path_or_url.startswith("http") else url(path_or_url)
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
            headers = {"Content-Type": "application/json", **(headers or {})}
        self.routes[(method, str(httpx.URL(target)))] = (status, body, headers or {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        target = str(request.url)
        if not self.online or target in self.fail_urls:
            raise httpx.ConnectError("Network is unreachable", request=request)
        if target in self.corrupt_urls:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, stream=CorruptGzipStream())

        route = self.routes.get((request.method, target))
        if route is None:
            if request.method in ("POST", "PUT", "DELETE"):
                return httpx.Response(201, json={"id": len(self.calls)})
            return httpx.Response(404, json={"error": "Not found"})
        status, body, headers = route
        return httpx.Response(status, content=body, headers=headers)

    def calls_to(self, path_or_url: str, method: str = "GET") -> List[httpx.Request]:
        target = path_or_url if path_or_url.startswith("http") else url(path_or_url)
        return [
            call for call in self.calls
            if call.method == method and str(call.url) == str(httpx.URL(target))
        ]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def upstream():
    """Fake API serving the shell assets."""
    fake = FakeUpstream()
    for path, body in SHELL_ASSETS.items():
        fake.set(path, body, headers={"Content-Type": "text/html"})
    return fake


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at the fake API with throwaway storage."""
    return Settings(
        origin=ORIGIN,
        cache_version="v1",
        cache_prefix="",
        cache_database_url="sqlite://",
        queue_db_path=tmp_path / "queue.db",
        precache_urls=list(SHELL_ASSETS),
        app_shell_path="/offline.html",
        periodic_sync_interval_seconds=0,
        performance_report_interval_seconds=0,
    )


@pytest.fixture
async def context(settings, upstream):
    ctx = WorkerContext.from_settings(settings, transport=httpx.MockTransport(upstream.handler))
    yield ctx
    await ctx.aclose()


@pytest.fixture
async def worker(context):
    """Installed and activated worker."""
    sw = ServiceWorker(context)
    await sw.start()
    return sw
