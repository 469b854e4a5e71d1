"""
Tests for the Session capability contract and MemorySession.
"""

from datetime import datetime, timedelta, timezone

import pytest

from kestrel.faults import (
    SessionExpiredFault,
    SessionKeyNotFoundFault,
    SessionStorageFault,
)
from kestrel.sessions import MemorySession, Session, new_session_id


class TestSessionID:
    def test_prefixed_and_random(self):
        a, b = new_session_id(), new_session_id()
        assert a.startswith("sess_")
        assert a != b

    def test_stable_for_lifetime(self):
        session = MemorySession()
        sid = session.session_id
        session.set("k", 1)
        session.delete("k")
        assert session.session_id == sid

    def test_explicit_id(self):
        assert MemorySession("sess_fixed").session_id == "sess_fixed"


class TestMemorySession:
    def test_satisfies_protocol(self):
        assert isinstance(MemorySession(), Session)

    def test_set_get(self):
        session = MemorySession()
        session.set("cart", ["apple", "pear"])
        assert session.get("cart") == ["apple", "pear"]
        assert "cart" in session
        assert len(session) == 1

    def test_missing_key(self):
        session = MemorySession()
        with pytest.raises(SessionKeyNotFoundFault) as exc_info:
            session.get("nope")
        assert exc_info.value.key == "nope"
        assert exc_info.value.code == "SESSION_KEY_NOT_FOUND"

    def test_delete(self):
        session = MemorySession()
        session.set("k", "v")
        session.delete("k")
        with pytest.raises(SessionKeyNotFoundFault):
            session.get("k")

    def test_delete_missing_is_noop(self):
        MemorySession().delete("never-set")

    def test_no_ttl_never_expires(self):
        session = MemorySession()
        far_future = datetime.now(timezone.utc) + timedelta(days=3650)
        assert session.is_expired(far_future) is False

    def test_ttl_expiry(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        session = MemorySession(ttl=timedelta(minutes=30), now=start)
        assert session.is_expired(start + timedelta(minutes=29)) is False
        assert session.is_expired(start + timedelta(minutes=30)) is True

    def test_expired_session_rejects_access(self):
        session = MemorySession(ttl=timedelta(seconds=-1))
        assert session.is_expired()

        with pytest.raises(SessionExpiredFault):
            session.set("k", "v")
        with pytest.raises(SessionStorageFault):
            session.get("k")
        with pytest.raises(SessionExpiredFault):
            session.delete("k")
        with pytest.raises(SessionExpiredFault):
            "k" in session
        with pytest.raises(SessionExpiredFault):
            len(session)
