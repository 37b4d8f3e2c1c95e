"""
Request classification: which caching lane handles an intercepted request.
"""
from enum import Enum
from typing import Iterable, Sequence
from urllib.parse import urljoin, urlsplit

import httpx

from .network import FetchRequest


class Lane(Enum):
    """Handling lanes, one strategy each."""
    CACHE_FIRST = "cache_first"                        # Static shell assets
    NETWORK_FIRST = "network_first"                    # API reads
    STALE_WHILE_REVALIDATE = "stale_while_revalidate"  # Everything else that is a GET
    MUTATION = "mutation"                              # Writes, queued when offline


def resolve_url(origin: str, url: str) -> str:
    """Make a same-origin path absolute; absolute URLs pass through canonicalized."""
    return str(httpx.URL(urljoin(origin.rstrip("/") + "/", url)))


def _origin_of(url: str) -> tuple:
    parts = urlsplit(url)
    return (parts.scheme, parts.netloc.lower())


class RequestRouter:
    """
    Pure dispatch from (method, URL) to a Lane.

    Order of checks:
    1. Non-GET -> MUTATION
    2. Known static asset (precache list) -> CACHE_FIRST
    3. Same-origin path under the API prefix -> NETWORK_FIRST
    4. Same-origin path with a static file extension -> CACHE_FIRST
    5. Any other GET -> STALE_WHILE_REVALIDATE
    """

    def __init__(
        self,
        origin: str,
        static_assets: Iterable[str] = (),
        api_prefix: str = "/api/",
        static_extensions: Sequence[str] = (),
    ):
        self.origin = origin
        self.api_prefix = api_prefix
        self._origin_key = _origin_of(resolve_url(origin, "/"))
        self._static_urls = {resolve_url(origin, asset) for asset in static_assets}
        self._static_extensions = tuple(ext.lower() for ext in static_extensions)

    def add_static_assets(self, assets: Iterable[str]) -> None:
        """Extend the known asset set (e.g. after a CACHE_URLS command)."""
        self._static_urls.update(resolve_url(self.origin, asset) for asset in assets)

    def is_static_asset(self, url: str) -> bool:
        return url.split("#", 1)[0] in self._static_urls

    def is_same_origin(self, url: str) -> bool:
        return _origin_of(url) == self._origin_key

    def route(self, request: FetchRequest) -> Lane:
        if request.method != "GET":
            return Lane.MUTATION

        if self.is_static_asset(request.url):
            return Lane.CACHE_FIRST

        if self.is_same_origin(request.url):
            path = request.path
            if path.startswith(self.api_prefix):
                return Lane.NETWORK_FIRST
            if self._static_extensions and path.lower().endswith(self._static_extensions):
                return Lane.CACHE_FIRST

        return Lane.STALE_WHILE_REVALIDATE
