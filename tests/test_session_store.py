"""Tests for the in-memory session store."""

import asyncio

import pytest

from vaultmind_core.classes import Intent, ParsedAction, Role
from vaultmind_core.config import set_config_override
from vaultmind_core.session_store import SessionStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        """Initialize the clock."""
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_create_session_generates_unique_ids():
    """Create sessions with distinct random identifiers."""
    store = SessionStore(ttl_seconds=60)
    first = store.create_session()
    second = store.create_session(platform="telegram")
    assert first.id != second.id
    assert len(first.id) == 32
    assert second.platform == "telegram"
    assert len(store) == 2


def test_get_or_create_rejects_empty_id():
    """Refuse to create a session without an identifier."""
    store = SessionStore(ttl_seconds=60)
    with pytest.raises(ValueError):
        store.get_or_create("")


def test_unknown_platform_falls_back_to_web():
    """Normalize unsupported platforms to web."""
    store = SessionStore(ttl_seconds=60)
    assert store.get_or_create("s1", platform="carrier-pigeon").platform == "web"


def test_ttl_defaults_to_config():
    """Read the inactivity window from config when not given."""
    set_config_override({"session": {"ttl_seconds": 120}})
    assert SessionStore().ttl_seconds == 120


def test_append_preserves_order_and_refreshes_expiry():
    """Keep messages in order and extend the inactivity window on writes."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=10, clock=clock)
    store.get_or_create("s1")
    clock.advance(8)
    store.append("s1", Role.USER, "first")
    clock.advance(8)
    store.append("s1", "assistant", "second")
    clock.advance(8)
    session = store.get("s1")
    assert session is not None
    assert [message.content for message in session.history()] == ["first", "second"]
    assert [message.role for message in session.history()] == [Role.USER, Role.ASSISTANT]


def test_get_does_not_refresh_expiry():
    """Expire sessions that are only read, never written."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=10, clock=clock)
    store.get_or_create("s1")
    clock.advance(6)
    assert store.get("s1") is not None
    clock.advance(6)
    assert store.get("s1") is None
    assert "s1" not in store


def test_expired_session_is_recreated_empty():
    """Start a fresh transcript after expiry."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=5, clock=clock)
    store.get_or_create("s1")
    store.append("s1", Role.USER, "hello")
    clock.advance(6)
    session = store.get_or_create("s1")
    assert session.messages == []


def test_purge_expired_counts_removed_sessions():
    """Drop only sessions past their expiry."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=10, clock=clock)
    store.get_or_create("old")
    clock.advance(5)
    store.get_or_create("new")
    clock.advance(6)
    assert store.purge_expired() == 1
    assert "new" in store
    assert "old" not in store


def test_get_or_create_sweeps_expired_sessions_on_interval():
    """Evict abandoned sessions once the sweep interval elapses."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=10, sweep_interval=15, clock=clock)
    for index in range(100):
        store.get_or_create(f"abandoned-{index}")
    clock.advance(11)
    store.get_or_create("early")
    assert len(store._entries) == 101

    clock.advance(5)
    store.get_or_create("late")
    assert set(store._entries) == {"early", "late"}


def test_append_to_missing_session_returns_none():
    """Ignore appends for sessions that do not exist."""
    store = SessionStore(ttl_seconds=10)
    assert store.append("ghost", Role.USER, "hi") is None


def test_only_assistant_messages_carry_actions():
    """Reject actions attached to user messages."""
    store = SessionStore(ttl_seconds=10)
    store.get_or_create("s1")
    action = ParsedAction(intent=Intent.BALANCE)
    with pytest.raises(ValueError):
        store.append("s1", Role.USER, "balance?", action=action)
    message = store.append("s1", Role.ASSISTANT, "You have 1 ETH", action=action)
    assert message is not None
    assert message.to_dict()["action"]["intent"] == "balance"


def test_bind_scopes_keeps_first_binding():
    """Bind the scope set once for the lifetime of the session."""
    store = SessionStore(ttl_seconds=10)
    store.get_or_create("s1")
    assert store.bind_scopes("s1", {"wallet:read"}) == frozenset({"wallet:read"})
    assert store.bind_scopes("s1", {"tokens:manage"}) == frozenset({"wallet:read"})
    assert store.bind_scopes("ghost", {"wallet:read"}) is None


def test_set_wallet_binds_address():
    """Attach a wallet address to a live session."""
    store = SessionStore(ttl_seconds=10)
    store.get_or_create("s1")
    assert store.set_wallet("s1", "0xabc") is True
    assert store.get("s1").wallet_address == "0xabc"
    assert store.set_wallet("ghost", "0xabc") is False


def test_turn_lock_serializes_turns_per_session():
    """Run turns for one session strictly one after another."""
    store = SessionStore(ttl_seconds=60)
    events: list[str] = []

    async def turn(session_id: str, label: str) -> None:
        async with store.turn_lock(session_id):
            events.append(f"start-{label}")
            await asyncio.sleep(0.01)
            events.append(f"end-{label}")

    async def main() -> None:
        await asyncio.gather(turn("s1", "a"), turn("s1", "b"))

    asyncio.run(main())
    assert events == ["start-a", "end-a", "start-b", "end-b"]


def test_turn_locks_are_independent_across_sessions():
    """Let different sessions overlap."""
    store = SessionStore(ttl_seconds=60)
    events: list[str] = []

    async def turn(session_id: str) -> None:
        async with store.turn_lock(session_id):
            events.append(f"start-{session_id}")
            await asyncio.sleep(0.01)
            events.append(f"end-{session_id}")

    async def main() -> None:
        await asyncio.gather(turn("s1"), turn("s2"))

    asyncio.run(main())
    assert events[:2] == ["start-s1", "start-s2"]
    assert store.turn_lock("s1") is store.turn_lock("s1")
