"""Tests for the maintenance advisory lock"""
import pytest

from cmsmaint.errors import LockUnavailableError
from cmsmaint.services.advisory_lock import AdvisoryLock


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_second_holder_is_rejected(conn):
    clock = FakeClock()
    first = AdvisoryLock(conn, "search:reindex", ttl_seconds=60, owner="a", time_source=clock)
    second = AdvisoryLock(conn, "search:reindex", ttl_seconds=60, owner="b", time_source=clock)

    with first:
        assert first.holder() == "a"
        with pytest.raises(LockUnavailableError):
            second.acquire()

    assert first.holder() is None
    second.acquire()
    assert second.holder() == "b"


def test_expired_lease_is_taken_over(conn):
    clock = FakeClock()
    AdvisoryLock(conn, "search:reindex", ttl_seconds=60, owner="crashed", time_source=clock).acquire()

    clock.now += 61
    taker = AdvisoryLock(conn, "search:reindex", ttl_seconds=60, owner="new", time_source=clock)
    taker.acquire()

    assert taker.holder() == "new"


def test_release_leaves_other_owner_alone(conn):
    clock = FakeClock()
    holder = AdvisoryLock(conn, "search:reindex", owner="a", time_source=clock)
    holder.acquire()
    stranger = AdvisoryLock(conn, "search:reindex", owner="b", time_source=clock)

    stranger.release()

    assert holder.holder() == "a"


def test_names_are_independent(conn):
    with AdvisoryLock(conn, "search:reindex", owner="a"):
        with AdvisoryLock(conn, "search:analytics-cleanup", owner="b") as other:
            assert other.held


def test_disabled_lock_never_touches_table(conn):
    with AdvisoryLock(conn, "search:reindex", enabled=False):
        pass
    assert conn.execute("SELECT COUNT(*) FROM maintenance_locks").fetchone()[0] == 0


def test_released_on_error(conn):
    lock = AdvisoryLock(conn, "search:reindex", owner="a")
    with pytest.raises(RuntimeError):
        with lock:
            raise RuntimeError("boom")
    assert lock.holder() is None
