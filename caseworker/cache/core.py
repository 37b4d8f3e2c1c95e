"""
Core cache data structures.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Tuple

import httpx

from ..network import ResponseSource, tag_source

# Bodies are stored decoded, so these no longer describe what we hold
_DROPPED_HEADERS = {"content-encoding", "content-length", "transfer-encoding"}


class StoreRole(Enum):
    """Logical stores that make up one cache generation."""
    STATIC = "static"     # App shell and assets, cache-first
    DYNAMIC = "dynamic"   # Other GETs, stale-while-revalidate
    API = "api"           # API reads, network-first


@dataclass(frozen=True)
class CacheGeneration:
    """
    A versioned set of role stores.

    The version tag embedded in the store names is the only thing that tells
    generations apart; bumping it is the way to evict old stores.
    """
    version: str
    prefix: str = ""

    def name_for(self, role: StoreRole) -> str:
        parts = [self.prefix, role.value, self.version]
        return "-".join(p for p in parts if p)

    @property
    def names(self) -> List[str]:
        return [self.name_for(role) for role in StoreRole]

    def is_current(self, store_name: str) -> bool:
        return store_name in self.names


@dataclass
class CachedResponse:
    """
    A stored copy of a response, keyed by request identity inside a store.
    """
    url: str
    status: int
    body: bytes
    headers: List[Tuple[str, str]] = field(default_factory=list)
    reason: str = ""
    stored_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_response(cls, url: str, response: httpx.Response) -> "CachedResponse":
        """Copy a live response. The body must already be read."""
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in _DROPPED_HEADERS
        ]
        return cls(
            url=url,
            status=response.status_code,
            body=response.content,
            headers=headers,
            reason=response.reason_phrase,
        )

    def to_response(self, source: ResponseSource = ResponseSource.CACHE) -> httpx.Response:
        """Materialize a fresh response object for the caller."""
        response = httpx.Response(self.status, headers=self.headers, content=self.body)
        return tag_source(response, source)
