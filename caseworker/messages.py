"""
Pydantic schemas for the page <-> worker message channel.

Commands flow from pages to the worker, notifications from the worker to
every controlled page. Field names on the wire follow the page script
(camelCase), hence the serialization aliases.
"""
import time
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError


def now_ms() -> int:
    """Epoch milliseconds, the timestamp unit pages expect."""
    return int(time.time() * 1000)


# ===== COMMANDS =====

class SkipWaiting(BaseModel):
    """Activate a waiting worker now"""
    type: Literal["SKIP_WAITING"] = "SKIP_WAITING"


class CacheUrls(BaseModel):
    """Add URLs to the static store (all-or-nothing)"""
    type: Literal["CACHE_URLS"] = "CACHE_URLS"
    # Older page scripts send the list as "payload"
    urls: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("urls", "payload"),
    )


class ClearCache(BaseModel):
    """Delete every cache store"""
    type: Literal["CLEAR_CACHE"] = "CLEAR_CACHE"


class GetVersion(BaseModel):
    """Ask for the current cache generation version"""
    type: Literal["GET_VERSION"] = "GET_VERSION"


WorkerCommand = Annotated[
    Union[SkipWaiting, CacheUrls, ClearCache, GetVersion],
    Field(discriminator="type"),
]

_command_adapter = TypeAdapter(WorkerCommand)


def parse_command(data: dict) -> Optional[BaseModel]:
    """Validate a raw message. Returns None for anything malformed or unknown."""
    try:
        return _command_adapter.validate_python(data)
    except ValidationError:
        return None


# ===== NOTIFICATIONS & REPLIES =====

class Notification(BaseModel):
    """Base notification"""
    timestamp: int = Field(default_factory=now_ms)

    def to_message(self) -> dict:
        return self.model_dump(by_alias=True)


class SyncComplete(Notification):
    type: Literal["SYNC_COMPLETE"] = "SYNC_COMPLETE"


class DataUpdated(Notification):
    type: Literal["DATA_UPDATED"] = "DATA_UPDATED"
    url: Optional[str] = None


class PerformanceData(Notification):
    type: Literal["PERFORMANCE_DATA"] = "PERFORMANCE_DATA"
    cache_hit_rate: float = Field(serialization_alias="cacheHitRate")
    cache_size: int = Field(serialization_alias="cacheSize")


class VersionInfo(BaseModel):
    """Reply to GET_VERSION"""
    type: Literal["VERSION"] = "VERSION"
    version: str
