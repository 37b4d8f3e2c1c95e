"""
Data model for mutations waiting to be replayed.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from ..network import FetchRequest


@dataclass(frozen=True)
class QueuedMutation:
    """
    A write request that failed for lack of connectivity.

    Immutable once queued; the queue owns it until a successful replay deletes it.
    """
    id: int
    url: str
    method: str
    enqueued_at: datetime
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def to_request(self) -> FetchRequest:
        """Rebuild the exact captured request for replay."""
        return FetchRequest(
            method=self.method,
            url=self.url,
            headers=dict(self.headers),
            body=self.body,
        )

    def to_dict(self) -> dict:
        """Summary for JSON responses (body omitted)."""
        return {
            "id": self.id,
            "url": self.url,
            "method": self.method,
            "enqueuedAt": self.enqueued_at.isoformat(),
        }
