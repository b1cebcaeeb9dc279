# draw_store.py
import logging
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from tripdraw.firebase.firestore_paths import collections_col, draw_logs_col, quota_day_doc

logger = logging.getLogger(__name__)


@firestore.transactional
def _increment_in_transaction(transaction, doc_ref, identity: str, day: str, by: int) -> int:
    snap = doc_ref.get(transaction=transaction)
    current = (snap.to_dict() or {}).get("drawn_count", 0) if snap.exists else 0
    new_count = current + by
    transaction.set(doc_ref, {
        "identity": identity,
        "date": day,
        "drawn_count": new_count,
        "updated_at": firestore.SERVER_TIMESTAMP,
    }, merge=True)
    return new_count


class FirestoreDrawStore:
    """Durable ledger history, daily quota counters and draw logs."""

    def __init__(self, db):
        self.db = db

    # --- Ledger ---
    def recent_place_ids(self, identity: str, limit: int) -> List[str]:
        query = (
            collections_col(self.db, identity)
            .order_by("collected_at", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        ids = []
        for doc in query.stream():
            place_id = (doc.to_dict() or {}).get("place_id")
            if place_id and place_id not in ids:
                ids.append(place_id)
        return ids

    def record_draw(self, identity: str, place_ids: List[str], rationale: Optional[str], session_id: Optional[str]):
        col = collections_col(self.db, identity)
        batch = self.db.batch()
        for position, place_id in enumerate(place_ids):
            batch.set(col.document(), {
                "place_id": place_id,
                "session_id": session_id,
                "position": position,
                "rationale": rationale,
                "collected_at": firestore.SERVER_TIMESTAMP,
            })
        batch.commit()
        logger.info(f"Recorded {len(place_ids)} places in collections for {identity}")

    # --- Quota ---
    def daily_draw_count(self, identity: str, day: str) -> int:
        snap = quota_day_doc(self.db, identity, day).get()
        if not snap.exists:
            return 0
        return int((snap.to_dict() or {}).get("drawn_count", 0))

    def increment_daily_draw_count(self, identity: str, day: str, by: int) -> int:
        """Atomically add `by` to the day's counter and return the new value."""
        doc_ref = quota_day_doc(self.db, identity, day)
        return _increment_in_transaction(self.db.transaction(), doc_ref, identity, day, by)

    # --- Draw logs ---
    def has_published_trip(self, signature: str) -> bool:
        query = (
            draw_logs_col(self.db)
            .where("trip_signature", "==", signature)
            .where("is_published", "==", True)
            .limit(1)
        )
        return any(True for _ in query.stream())

    def save_draw_log(self, log: Dict[str, Any]):
        data = dict(log)
        data["created_at"] = firestore.SERVER_TIMESTAMP
        draw_logs_col(self.db).document(log["session_id"]).set(data)
