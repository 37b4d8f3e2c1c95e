"""
Exception hierarchy for the offline worker.

Transport failures and storage failures are separate types because the
strategies treat them differently: transport failures trigger cache fallback
or queuing, storage failures degrade to a miss or a no-op.
"""
from typing import Any, Dict, List, Optional


class CaseWorkerError(Exception):
    """Base class for all worker errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        context_str = f" - Context: {self.context}" if self.context else ""
        return f"{self.message}{context_str}"


class NetworkError(CaseWorkerError):
    """The request never produced a response (no connectivity, DNS, timeout)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, {"url": url} if url else None)
        self.url = url


class CacheStorageError(CaseWorkerError):
    """Reading or writing a cache store failed."""


class QueueStorageError(CaseWorkerError):
    """Reading or writing the durable mutation queue failed."""


class PrecacheError(CaseWorkerError):
    """One or more URLs of an all-or-nothing precache batch could not be fetched."""

    def __init__(self, message: str, failed_urls: List[str]):
        super().__init__(message, {"failed_urls": failed_urls})
        self.failed_urls = failed_urls


class InstallError(CaseWorkerError):
    """Install aborted; the new cache generation must not be activated."""
