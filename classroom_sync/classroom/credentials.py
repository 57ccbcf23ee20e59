"""
Credential Store for Classroom Sync.

Persists one opaque access token per (user, provider). The authorization
handshake writes it; the API client reads it before every call and clears it
when the remote side rejects it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..core.storage import KeyValueStore

DEFAULT_PROVIDER = "google_classroom"


@dataclass
class Credential:
    """A stored access token."""
    token: str
    expires_at: Optional[float] = None  # epoch seconds, None = no known expiry
    stored_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "expires_at": self.expires_at,
            "stored_at": self.stored_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            token=data["token"],
            expires_at=data.get("expires_at"),
            stored_at=data.get("stored_at", 0.0),
        )


@dataclass
class ConnectionInfo:
    """Connection status summary for a user."""
    is_connected: bool
    has_token: bool
    expired: bool

    @property
    def status(self) -> str:
        return "connected" if self.is_connected else "disconnected"


class CredentialStore:
    """
    Token persistence keyed by (user id, provider).

    Usage:
        store = CredentialStore(SQLiteKeyValueStore(path))
        store.set("user-1", "google_classroom", token, expires_in=3600)
        token = store.get("user-1", "google_classroom")
    """

    def __init__(self, kv: KeyValueStore, clock: Optional[Callable[[], float]] = None):
        self._kv = kv
        self._clock = clock or time.time

    @staticmethod
    def _key(user_id: str, provider: str) -> str:
        return f"credential:{provider}:{user_id}"

    def _load(self, user_id: str, provider: str) -> Optional[Credential]:
        data = self._kv.get_json(self._key(user_id, provider))
        if not data or "token" not in data:
            return None
        return Credential.from_dict(data)

    def get(self, user_id: str, provider: str = DEFAULT_PROVIDER) -> Optional[str]:
        """Return the token, or None when absent or expired."""
        if not user_id:
            return None
        credential = self._load(user_id, provider)
        if credential is None:
            return None
        if credential.is_expired(self._clock()):
            logger.info(f"Stored {provider} token for {user_id} has expired")
            return None
        return credential.token

    def set(
        self,
        user_id: str,
        provider: str,
        token: str,
        expires_in: Optional[float] = None,
    ) -> None:
        """
        Store a token.

        Args:
            user_id: Portal user id
            provider: Provider name (e.g. "google_classroom")
            token: Access token
            expires_in: Seconds until the token expires, if known
        """
        if not user_id or not token:
            raise ValueError("user_id and token are required")
        now = self._clock()
        credential = Credential(
            token=token,
            expires_at=now + expires_in if expires_in is not None else None,
            stored_at=now,
        )
        self._kv.set_json(self._key(user_id, provider), credential.to_dict())
        logger.debug(f"Stored {provider} token for {user_id}")

    def clear(self, user_id: str, provider: str = DEFAULT_PROVIDER) -> bool:
        """Delete the token. Safe to call repeatedly."""
        removed = self._kv.remove(self._key(user_id, provider))
        if removed:
            logger.info(f"Cleared {provider} token for {user_id}")
        return removed

    def connection_info(self, user_id: str, provider: str = DEFAULT_PROVIDER) -> ConnectionInfo:
        if not user_id:
            return ConnectionInfo(is_connected=False, has_token=False, expired=False)
        credential = self._load(user_id, provider)
        has_token = credential is not None
        expired = bool(credential and credential.is_expired(self._clock()))
        return ConnectionInfo(
            is_connected=has_token and not expired,
            has_token=has_token,
            expired=expired,
        )
