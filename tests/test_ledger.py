import threading

from tripdraw.models import Identity
from tripdraw.services.ledger import DedupLedger, GuestSessionStore

from conftest import FakeClock, FakeDrawStore


def test_guest_entries_expire_after_ttl(guest_store, clock):
    guest_store.append("guest:Taipei", ["a", "b"])
    clock.advance(1799)
    assert guest_store.get("guest:Taipei") == ["a", "b"]
    clock.advance(1)
    assert guest_store.get("guest:Taipei") == []
    assert len(guest_store) == 0


def test_append_refreshes_ttl_and_trims_to_limit(clock):
    store = GuestSessionStore(ttl_seconds=60, limit=3, clock=clock)
    store.append("k", ["a", "b"])
    clock.advance(50)
    assert store.append("k", ["c", "d"]) == ["b", "c", "d"]
    clock.advance(50)
    assert store.get("k") == ["b", "c", "d"]


def test_append_after_expiry_starts_fresh(guest_store, clock):
    guest_store.append("k", ["a"])
    clock.advance(3600)
    assert guest_store.append("k", ["b"]) == ["b"]


def test_sweep_removes_only_expired(clock):
    store = GuestSessionStore(ttl_seconds=60, limit=10, clock=clock)
    store.append("old", ["a"])
    clock.advance(30)
    store.append("new", ["b"])
    clock.advance(40)
    assert store.sweep() == 1
    assert store.get("new") == ["b"]


def test_sweeper_thread_starts_and_stops():
    store = GuestSessionStore(ttl_seconds=0, limit=10, sweep_interval=0.01)
    store.append("k", ["a"])
    store.start()
    try:
        for _ in range(200):
            if len(store) == 0:
                break
            threading.Event().wait(0.01)
        assert len(store) == 0
    finally:
        store.close()
    assert store._sweeper is None


def test_concurrent_appends_do_not_lose_updates():
    store = GuestSessionStore(ttl_seconds=60, limit=1000, clock=FakeClock())

    def worker(n):
        for i in range(50):
            store.append("k", [f"{n}-{i}"])

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store.get("k")) == 400


def test_guest_second_draw_excludes_first(guest_store):
    ledger = DedupLedger(FakeDrawStore(), guest_store, limit=36)
    guest = Identity(key="guest", is_guest=True)
    ledger.record(guest, "Taipei", ["a", "b", "c"])
    assert ledger.recent_ids(guest, "Taipei") == {"a", "b", "c"}
    assert ledger.recent_ids(guest, "Tainan") == set()
    assert DedupLedger.guest_key(guest, "Taipei") == "guest:Taipei"


def test_guest_sessions_are_isolated(guest_store):
    ledger = DedupLedger(FakeDrawStore(), guest_store, limit=36)
    ledger.record(Identity(key="guest:s1", is_guest=True), "Taipei", ["a"])
    assert ledger.recent_ids(Identity(key="guest:s2", is_guest=True), "Taipei") == set()


def test_authenticated_history_comes_from_store(guest_store):
    store = FakeDrawStore()
    ledger = DedupLedger(store, guest_store, limit=2)
    user = Identity(key="u1")
    ledger.record(user, "Taipei", ["a", "b", "c"], rationale="r", session_id="s")
    assert ledger.recent_ids(user, "Taipei") == {"b", "c"}
    assert len(guest_store) == 0
