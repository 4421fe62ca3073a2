#!/usr/bin/env python3
"""In-memory session store with inactivity expiry and per-session turn locks."""

from __future__ import annotations

import asyncio
import secrets
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from vaultmind_core.classes import Message, ParsedAction, Role, Session
from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value

logging = get_logger(name="core.session_store")

PLATFORMS = frozenset({"web", "telegram", "discord", "mcp"})


@dataclass
class _Entry:
    session: Session
    expires_at: float


class SessionStore:
    """Own every live session and the lock that serializes its turns.

    Writes (creation, appends, wallet and scope binding) refresh the
    inactivity window. Reads through :meth:`get` do not. Expired entries are
    evicted lazily on access and in bulk by :meth:`purge_expired`.
    :meth:`get_or_create` also sweeps at most once per `sweep_interval` seconds.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        *,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the session store."""
        if ttl_seconds is None:
            ttl_seconds = get_config_value("session", "ttl_seconds", default=86400)
        self.ttl_seconds = float(ttl_seconds)
        self.sweep_interval = float(sweep_interval)
        self._clock = clock
        self._last_sweep = clock()
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._turn_locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired_locked()
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.get(session_id) is not None

    def create_session(self, platform: str = "web") -> Session:
        """Create a session with a fresh random identifier."""
        session_id = secrets.token_hex(16)
        return self.get_or_create(session_id, platform=platform)

    def get_or_create(self, session_id: str, platform: str = "web") -> Session:
        """Return the live session, creating it when absent or expired."""
        if not session_id:
            raise ValueError("session_id must be a non-empty string.")
        with self._lock:
            self._maybe_sweep_locked()
            entry = self._live_entry_locked(session_id)
            if entry is None:
                session = Session(id=session_id, platform=_normalize_platform(platform))
                entry = _Entry(session=session, expires_at=0.0)
                self._entries[session_id] = entry
                logging.debug("Created session {} ({})", session_id, session.platform)
            self._touch_locked(entry)
            return entry.session

    def get(self, session_id: str) -> Session | None:
        """Return the live session without refreshing its expiry."""
        with self._lock:
            entry = self._live_entry_locked(session_id)
            return entry.session if entry else None

    def set_wallet(self, session_id: str, wallet_address: str) -> bool:
        """Bind a wallet address to the session. Returns False when absent."""
        with self._lock:
            entry = self._live_entry_locked(session_id)
            if entry is None:
                return False
            entry.session.wallet_address = wallet_address
            self._touch_locked(entry)
            return True

    def bind_scopes(self, session_id: str, scopes: Iterable[str]) -> frozenset[str] | None:
        """Bind the scope set once. Later binds return the existing set."""
        with self._lock:
            entry = self._live_entry_locked(session_id)
            if entry is None:
                return None
            if entry.session.scopes is None:
                entry.session.scopes = frozenset(scopes)
            self._touch_locked(entry)
            return entry.session.scopes

    def append(
        self,
        session_id: str,
        role: Role | str,
        content: str,
        action: ParsedAction | None = None,
    ) -> Message | None:
        """Append a message to the session transcript."""
        role = Role(role)
        if action is not None and role is not Role.ASSISTANT:
            raise ValueError("Only assistant messages may carry an action.")
        with self._lock:
            entry = self._live_entry_locked(session_id)
            if entry is None:
                logging.warning("Dropped message for missing session {}", session_id)
                return None
            message = Message(role=role, content=content, action=action)
            entry.session.messages.append(message)
            self._touch_locked(entry)
            return message

    def turn_lock(self, session_id: str) -> asyncio.Lock:
        """Return the lock that serializes turns for a session."""
        with self._lock:
            lock = self._turn_locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._turn_locks[session_id] = lock
            return lock

    def purge_expired(self) -> int:
        """Drop every expired session and return how many were removed."""
        with self._lock:
            return self._evict_expired_locked()

    def _touch_locked(self, entry: _Entry) -> None:
        entry.expires_at = self._clock() + self.ttl_seconds

    def _live_entry_locked(self, session_id: str) -> _Entry | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._drop_locked(session_id)
            return None
        return entry

    def _maybe_sweep_locked(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self.sweep_interval:
            return
        removed = self._evict_expired_locked()
        if removed:
            logging.debug("Swept {} expired sessions", removed)

    def _evict_expired_locked(self) -> int:
        now = self._clock()
        self._last_sweep = now
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for session_id in expired:
            self._drop_locked(session_id)
        return len(expired)

    def _drop_locked(self, session_id: str) -> None:
        self._entries.pop(session_id, None)
        lock = self._turn_locks.get(session_id)
        if lock is not None and not lock.locked():
            self._turn_locks.pop(session_id, None)
        logging.debug("Expired session {}", session_id)


def _normalize_platform(platform: str | None) -> str:
    normalized = (platform or "web").strip().lower()
    return normalized if normalized in PLATFORMS else "web"


__all__ = ["PLATFORMS", "SessionStore"]
