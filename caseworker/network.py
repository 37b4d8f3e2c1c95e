"""
Intercepted request model and the async transport the strategies fetch with.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from .exceptions import NetworkError

logger = logging.getLogger("caseworker.network")


class Destination(Enum):
    """What the page intends to do with the response (Sec-Fetch-Dest)."""
    DOCUMENT = "document"
    SCRIPT = "script"
    STYLE = "style"
    IMAGE = "image"
    FONT = "font"
    MANIFEST = "manifest"
    EMPTY = ""

    @classmethod
    def from_header(cls, value: Optional[str]) -> "Destination":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.EMPTY


class ResponseSource(Enum):
    """Where a response handed back to the page came from."""
    NETWORK = "network"      # Live upstream response
    CACHE = "cache"          # Stored copy of this exact request
    FALLBACK = "fallback"    # App shell served in place of a failed navigation
    SYNTHETIC = "synthetic"  # Built locally (timeout / offline bodies)
    QUEUED = "queued"        # Mutation accepted into the durable queue


@dataclass
class FetchRequest:
    """A request intercepted on its way from a page to the network."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    destination: Destination = Destination.EMPTY

    def __post_init__(self):
        self.method = self.method.upper()
        self.url = str(httpx.URL(self.url))

    @classmethod
    def get(cls, url: str, destination: Destination = Destination.EMPTY) -> "FetchRequest":
        return cls(method="GET", url=url, destination=destination)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def is_navigation(self) -> bool:
        return self.destination == Destination.DOCUMENT

    @property
    def cache_key(self) -> str:
        """Request identity used as the cache key."""
        if self.method == "GET":
            return self.url
        return f"{self.method} {self.url}"


def tag_source(response: httpx.Response, source: ResponseSource) -> httpx.Response:
    """Record where a response came from."""
    response.extensions["source"] = source
    return response


def response_source(response: httpx.Response) -> Optional[ResponseSource]:
    return response.extensions.get("source")


def json_response(status_code: int, payload: Dict[str, Any], source: ResponseSource) -> httpx.Response:
    """Build a locally generated JSON response."""
    response = httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
    return tag_source(response, source)


def timeout_response() -> httpx.Response:
    """Synthetic response for a static request with no network and no copy."""
    response = httpx.Response(
        408,
        content=b"Request timeout",
        headers={"Content-Type": "text/plain"},
    )
    return tag_source(response, ResponseSource.SYNTHETIC)


def offline_api_response() -> httpx.Response:
    """Synthetic response for an API read with no network and no copy."""
    return json_response(
        503,
        {"error": "Network unavailable", "offline": True},
        ResponseSource.SYNTHETIC,
    )


class Network:
    """
    Thin async wrapper over httpx.

    Any httpx.RequestError becomes NetworkError, an undecodable body included.
    HTTP error statuses are returned untouched, they are the caller's business.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def create(
        cls,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Network":
        kwargs: Dict[str, Any] = {"follow_redirects": True}
        if timeout is not None:
            kwargs["timeout"] = timeout
        if transport is not None:
            kwargs["transport"] = transport
        return cls(httpx.AsyncClient(**kwargs))

    async def fetch(self, request: FetchRequest) -> httpx.Response:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
            )
        except httpx.RequestError as e:
            logger.info(f"Network failure: {request.method} {request.url} ({type(e).__name__})")
            raise NetworkError(f"{type(e).__name__}: {e}", url=request.url) from e
        return tag_source(response, ResponseSource.NETWORK)

    async def aclose(self) -> None:
        await self._client.aclose()
