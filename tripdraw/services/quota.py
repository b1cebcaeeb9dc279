# tripdraw/services/quota.py
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Tuple

from dateutil import tz

from tripdraw.errors import DrawRejected, ReasonCode
from tripdraw.models import Identity

logger = logging.getLogger(__name__)


@dataclass
class QuotaReservation:
    identity: Identity
    day: str
    requested: int
    ceiling: int
    current_count: int
    exempt: bool = False
    settled: bool = False


class QuotaGovernor:
    """
    Per-identity daily draw ceiling.

    check_and_reserve() and commit() for one identity are serialised by a
    per-identity lock; the reserved amount stays pending in-process until the
    draw commits (durable increment by the actual count) or is released.
    Guests and allow-listed identities are exempt.
    """

    def __init__(
        self,
        store,
        ceiling: int,
        exempt_identities: Iterable[str] = (),
        timezone: str = "UTC",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.ceiling = ceiling
        self.exempt_identities = frozenset(exempt_identities)
        self.tzinfo = tz.gettz(timezone) or tz.UTC
        self._now = now or (lambda: datetime.now(self.tzinfo))
        # identity key -> [lock, number of threads holding or waiting on it]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()
        self._pending: Dict[Tuple[str, str], int] = {}

    def today(self) -> str:
        return self._now().astimezone(self.tzinfo).date().isoformat()

    def is_exempt(self, identity: Identity) -> bool:
        if identity.is_guest:
            return True
        return any(k in self.exempt_identities for k in identity.exemption_keys)

    @contextmanager
    def _identity_lock(self, key: str):
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def check_and_reserve(
        self,
        identity: Identity,
        requested: int,
        day: Optional[str] = None,
        ceiling: Optional[int] = None,
    ) -> QuotaReservation:
        day = day or self.today()
        ceiling = self.ceiling if ceiling is None else ceiling

        if self.is_exempt(identity):
            if not identity.is_guest:
                logger.info(f"Quota exempt identity: {identity.key}")
            return QuotaReservation(identity, day, requested, ceiling, 0, exempt=True)

        with self._identity_lock(identity.key):
            durable = self.store.daily_draw_count(identity.key, day)
            current = durable + self._pending.get((identity.key, day), 0)
            remaining = ceiling - current

            if remaining <= 0:
                raise DrawRejected(
                    ReasonCode.DAILY_LIMIT_EXCEEDED,
                    "Daily draw limit reached, please come back tomorrow.",
                    daily_limit=ceiling,
                    current_count=current,
                    remaining_quota=0,
                )
            if requested > remaining:
                raise DrawRejected(
                    ReasonCode.EXCEEDS_REMAINING_QUOTA,
                    f"Only {remaining} draws left today, please reduce the count.",
                    daily_limit=ceiling,
                    current_count=current,
                    remaining_quota=remaining,
                )

            self._pending[(identity.key, day)] = self._pending.get((identity.key, day), 0) + requested
            return QuotaReservation(identity, day, requested, ceiling, current)

    def _drop_pending(self, reservation: QuotaReservation):
        key = (reservation.identity.key, reservation.day)
        left = self._pending.get(key, 0) - reservation.requested
        if left > 0:
            self._pending[key] = left
        else:
            self._pending.pop(key, None)

    def commit(self, reservation: QuotaReservation, actual: int) -> int:
        """Durably add the actual drawn count. Returns the new daily count (0 when exempt)."""
        if reservation.exempt or reservation.settled:
            return 0
        with self._identity_lock(reservation.identity.key):
            try:
                new_count = self.store.increment_daily_draw_count(
                    reservation.identity.key, reservation.day, actual
                )
            finally:
                self._drop_pending(reservation)
                reservation.settled = True
        logger.info(f"Daily draw count for {reservation.identity.key} on {reservation.day}: {new_count}")
        return new_count

    def release(self, reservation: QuotaReservation):
        if reservation.exempt or reservation.settled:
            return
        with self._identity_lock(reservation.identity.key):
            self._drop_pending(reservation)
            reservation.settled = True

    def status(self, identity: Identity, day: Optional[str] = None) -> Dict:
        day = day or self.today()
        exempt = self.is_exempt(identity)
        count = 0 if identity.is_guest else self.store.daily_draw_count(identity.key, day)
        return {
            "dailyLimit": self.ceiling,
            "dailyDrawCount": count,
            "remainingQuota": None if exempt else max(self.ceiling - count, 0),
            "exempt": exempt,
        }
