"""
Desktop-style alert sinks for the notification engine.

A sink surfaces a transient alert for a notification. Delivery is
best-effort: the persisted notification log is the source of truth, and the
engine works the same with no sink at all.

Sinks:
- NtfySink: push through an ntfy.sh (or self-hosted ntfy) topic
- MemorySink: records alerts in a list, used by tests and dry runs
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import httpx
from loguru import logger

from ..core.config import NtfyConfig


class NotificationPriority(str, Enum):
    """Notification priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    NotificationPriority.LOW: 0,
    NotificationPriority.MEDIUM: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.URGENT: 3,
}

# ntfy priorities run from 1 (min) to 5 (max)
NTFY_PRIORITY = {
    NotificationPriority.LOW: 2,
    NotificationPriority.MEDIUM: 3,
    NotificationPriority.HIGH: 4,
    NotificationPriority.URGENT: 5,
}


class NotificationSink(ABC):
    """Capability to show a transient alert."""

    @property
    def available(self) -> bool:
        """Whether alerts can currently be shown (e.g. permission granted)."""
        return True

    @abstractmethod
    async def show(self, title: str, body: str, urgency: NotificationPriority) -> None:
        """Show one alert. May raise; the engine logs and moves on."""


@dataclass
class MemorySink(NotificationSink):
    """Collects alerts instead of showing them."""
    enabled: bool = True

    def __post_init__(self):
        self.shown: List[Tuple[str, str, NotificationPriority]] = []

    @property
    def available(self) -> bool:
        return self.enabled

    async def show(self, title: str, body: str, urgency: NotificationPriority) -> None:
        self.shown.append((title, body, urgency))


class NtfySink(NotificationSink):
    """
    Push alerts through ntfy.

    ntfy.sh is a simple HTTP-based pub-sub notification service.
    - Free to use (or self-host)
    - No account required
    - Works on desktop, iOS and Android

    Usage:
        sink = NtfySink(NtfyConfig(enabled=True, topic="classroom-u1"))
        engine = NotificationEngine(store, "u1", sink=sink)
    """

    def __init__(self, config: Optional[NtfyConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or NtfyConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        return self.config.enabled and bool(self.config.topic)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def show(self, title: str, body: str, urgency: NotificationPriority) -> None:
        client = await self._get_client()
        headers = {
            "Title": title,
            "Priority": str(NTFY_PRIORITY[urgency]),
            "Tags": "rotating_light" if urgency == NotificationPriority.URGENT else "books",
        }
        url = f"{self.config.server_url.rstrip('/')}/{self.config.topic}"

        response = await client.post(url, content=body.encode("utf-8"), headers=headers)
        response.raise_for_status()
        logger.debug(f"Alert sent to {self.config.topic}: {title}")
