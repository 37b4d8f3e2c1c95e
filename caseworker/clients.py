"""
Open page contexts and notification broadcast.

Clients are ephemeral: discovered at dispatch time, never persisted.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("caseworker.clients")


@dataclass
class PageClient:
    """One open page. Messages posted to it wait in its inbox until read."""
    url: str
    controlled: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    inbox: asyncio.Queue = field(default_factory=asyncio.Queue)

    def post_message(self, message: Dict[str, Any]) -> None:
        self.inbox.put_nowait(message)

    async def next_message(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await asyncio.wait_for(self.inbox.get(), timeout)


class ClientRegistry:
    """Tracks open page clients and which of them the worker controls."""

    def __init__(self):
        self._clients: Dict[str, PageClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def connect(self, url: str = "/", controlled: bool = False) -> PageClient:
        client = PageClient(url=url, controlled=controlled)
        self._clients[client.id] = client
        logger.debug(f"Client connected: {client.id} ({url}, controlled={controlled})")
        return client

    def disconnect(self, client_id: str) -> bool:
        client = self._clients.pop(client_id, None)
        if client is not None:
            logger.debug(f"Client disconnected: {client_id}")
        return client is not None

    def get(self, client_id: str) -> Optional[PageClient]:
        return self._clients.get(client_id)

    def match_all(self, include_uncontrolled: bool = False) -> List[PageClient]:
        return [
            client for client in self._clients.values()
            if include_uncontrolled or client.controlled
        ]

    def claim(self) -> int:
        """Take control of every open client. Returns how many changed hands."""
        claimed = 0
        for client in self._clients.values():
            if not client.controlled:
                client.controlled = True
                claimed += 1
        if claimed:
            logger.info(f"Claimed {claimed} open clients")
        return claimed

    def broadcast(self, message: Dict[str, Any]) -> int:
        """Post a message to every controlled client. Returns the recipient count."""
        recipients = self.match_all()
        for client in recipients:
            client.post_message(message)
        logger.debug(f"Broadcast {message.get('type')} to {len(recipients)} clients")
        return len(recipients)
