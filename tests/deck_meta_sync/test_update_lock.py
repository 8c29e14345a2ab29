from datetime import datetime, timedelta, timezone

import pytest

from src.functions.deck_meta_sync.core.db.memory_store import InMemoryDatasetStore
from src.functions.deck_meta_sync.core.db.update_lock import UpdateLock
from src.functions.deck_meta_sync.core.errors import LockContentionError


class Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


START = datetime(2024, 5, 1, 4, 0, tzinfo=timezone.utc)


def test_lock_row_is_created_lazily_on_first_acquire():
    store = InMemoryDatasetStore()
    lock = UpdateLock(store)

    assert store.read_lock() is None
    assert lock.state().is_updating is False

    lock.acquire("run-1")

    assert store.read_lock()["id"] == 1


def test_acquire_and_release_bracket_a_run():
    clock = Clock(START)
    lock = UpdateLock(InMemoryDatasetStore(), clock=clock)

    held = lock.acquire("run-1")
    clock.advance(minutes=5)
    released = lock.release()

    assert held.is_updating is True
    assert held.holder == "run-1"
    assert released.is_updating is False
    assert released.holder is None
    assert released.locked_at == START
    assert released.unlocked_at >= released.locked_at


def test_second_acquire_is_rejected_without_touching_locked_at():
    clock = Clock(START)
    lock = UpdateLock(InMemoryDatasetStore(), clock=clock)
    lock.acquire("run-1")
    clock.advance(minutes=1)

    with pytest.raises(LockContentionError) as excinfo:
        lock.acquire("run-2")

    state = lock.state()
    assert state.locked_at == START
    assert state.holder == "run-1"
    assert excinfo.value.locked_at == START.isoformat()


def test_stale_lock_can_be_taken_over():
    clock = Clock(START)
    lock = UpdateLock(InMemoryDatasetStore(), stale_after=timedelta(minutes=30), clock=clock)
    lock.acquire("crashed-run")

    clock.advance(minutes=10)
    with pytest.raises(LockContentionError):
        lock.acquire("too-early")

    clock.advance(minutes=25)
    state = lock.acquire("rescuer")

    assert state.holder == "rescuer"
    assert state.locked_at == START + timedelta(minutes=35)


def test_takeover_is_disabled_without_stale_after():
    clock = Clock(START)
    lock = UpdateLock(InMemoryDatasetStore(), clock=clock)
    lock.acquire("crashed-run")
    clock.advance(days=3)

    with pytest.raises(LockContentionError):
        lock.acquire("rescuer")


def test_promotion_journal_survives_release():
    lock = UpdateLock(InMemoryDatasetStore())
    lock.acquire("run-1")

    lock.record_pending(["rank_stats", "decks", "matchups"])
    lock.complete_pending("rank_stats")
    lock.release()

    assert lock.pending() == ["decks", "matchups"]
    assert lock.state().is_updating is False


def test_release_after_takeover_keeps_the_new_holder():
    clock = Clock(START)
    lock = UpdateLock(InMemoryDatasetStore(), stale_after=timedelta(hours=6), clock=clock)
    lock.acquire("slow-run")
    clock.advance(hours=7)
    lock.acquire("rescuer")

    state = lock.release("slow-run")

    assert state.is_updating is True
    assert state.holder == "rescuer"
    with pytest.raises(LockContentionError):
        lock.acquire("third-run")

    released = lock.release("rescuer")
    assert released.is_updating is False


def test_release_without_holder_clears_any_lock():
    lock = UpdateLock(InMemoryDatasetStore())
    lock.acquire("stuck-run")

    assert lock.release().is_updating is False
