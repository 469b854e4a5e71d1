"""
Kestrel Sessions - Session capability contract.

The core never owns session storage. It only calls through the Session
protocol; concrete stores decide how data is kept and when a session is
considered live.

MemorySession is an in-process reference implementation for development
and testing. It is NOT persistent.
"""

from __future__ import annotations

import base64
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .faults import SessionExpiredFault, SessionKeyNotFoundFault


logger = logging.getLogger("kestrel.sessions")


# ============================================================================
# Session Protocol
# ============================================================================

@runtime_checkable
class Session(Protocol):
    """
    Pluggable key/value store scoped to one client.

    Stores may consult ``is_expired()`` before honoring get/set/delete.
    """

    @property
    def session_id(self) -> str:
        """Opaque identifier, stable for the session's lifetime."""
        ...

    def get(self, key: str) -> Any:
        """
        Get a value.

        Raises:
            SessionKeyNotFoundFault: Key is not present
            SessionStorageFault: Backend failure
        """
        ...

    def set(self, key: str, value: Any) -> None:
        """
        Store a value.

        Raises:
            SessionStorageFault: Backend failure
        """
        ...

    def delete(self, key: str) -> None:
        """
        Remove a value.

        Raises:
            SessionStorageFault: Backend failure
        """
        ...

    def is_expired(self) -> bool:
        ...


def new_session_id() -> str:
    """Cryptographically random, URL-safe identifier (``sess_`` prefix)."""
    raw = secrets.token_bytes(32)
    return f"sess_{base64.urlsafe_b64encode(raw).decode().rstrip('=')}"


# ============================================================================
# MemorySession
# ============================================================================

class MemorySession:
    """
    In-memory session for development and testing.

    Example:
        >>> session = MemorySession(ttl=timedelta(minutes=30))
        >>> session.set("cart_items", 3)
        >>> session.get("cart_items")
        3
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        *,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ):
        self._id = session_id or new_session_id()
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.created_at = now or datetime.now(timezone.utc)
        self.expires_at: Optional[datetime] = self.created_at + ttl if ttl else None

    @property
    def session_id(self) -> str:
        return self._id

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        return now >= self.expires_at

    def _ensure_live(self) -> None:
        if self.is_expired():
            logger.debug("Rejected access to expired session %s...", self._id[:12])
            raise SessionExpiredFault(metadata={"expires_at": self.expires_at.isoformat()})

    def get(self, key: str) -> Any:
        self._ensure_live()
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise SessionKeyNotFoundFault(key) from None

    def set(self, key: str, value: Any) -> None:
        self._ensure_live()
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        self._ensure_live()
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        self._ensure_live()
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        self._ensure_live()
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"MemorySession({self._id[:16]}...)"
