# tripdraw/services/ledger.py
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from tripdraw.models import Identity

logger = logging.getLogger(__name__)


class GuestSessionStore:
    """
    In-process map of guest ledger key -> recently drawn place ids.

    Every entry expires ttl_seconds after its last update. Expired entries are
    dropped when read and by a periodic sweep. One lock covers both the
    read-modify-write in append() and the sweep. Contents are lost on restart.
    """

    def __init__(
        self,
        ttl_seconds: float,
        limit: int,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.limit = limit
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, Tuple[List[str], float]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def _expired(self, touched_at: float, now: float) -> bool:
        return now - touched_at >= self.ttl_seconds

    def get(self, key: str) -> List[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return []
            ids, touched_at = entry
            if self._expired(touched_at, self._clock()):
                del self._entries[key]
                return []
            return list(ids)

    def append(self, key: str, place_ids: Iterable[str]) -> List[str]:
        """Add ids, keep the newest `limit`, refresh the timestamp."""
        with self._lock:
            now = self._clock()
            existing: List[str] = []
            entry = self._entries.get(key)
            if entry is not None and not self._expired(entry[1], now):
                existing = entry[0]
            merged = existing + list(place_ids)
            if self.limit > 0:
                merged = merged[-self.limit:]
            self._entries[key] = (merged, now)
            return list(merged)

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, (_, t) in self._entries.items() if self._expired(t, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info(f"Guest ledger sweep removed {len(stale)} expired entries")
        return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _sweep_loop(self):
        while not self._stop.wait(self.sweep_interval):
            self.sweep()

    def start(self):
        if not self.sweep_interval or self._sweeper is not None:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="guest-ledger-sweeper", daemon=True)
        self._sweeper.start()

    def close(self):
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
        self.clear()


class DedupLedger:
    """Recently served place ids per identity, used to avoid repeats across draws."""

    def __init__(self, store, guest_store: GuestSessionStore, limit: int):
        self.store = store
        self.guest_store = guest_store
        self.limit = limit

    @staticmethod
    def guest_key(identity: Identity, city: str) -> str:
        return f"{identity.key}:{city}"

    def recent_ids(self, identity: Identity, city: str) -> Set[str]:
        if identity.is_guest:
            return set(self.guest_store.get(self.guest_key(identity, city)))
        # Authenticated history is not scoped by city.
        return set(self.store.recent_place_ids(identity.key, self.limit))

    def record(
        self,
        identity: Identity,
        city: str,
        place_ids: List[str],
        rationale: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        if identity.is_guest:
            kept = self.guest_store.append(self.guest_key(identity, city), place_ids)
            logger.info(f"Guest ledger {self.guest_key(identity, city)} now holds {len(kept)} places")
            return
        self.store.record_draw(identity.key, place_ids, rationale, session_id)
