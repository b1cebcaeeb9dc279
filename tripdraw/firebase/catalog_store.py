# catalog_store.py
import logging
from typing import List, Optional

from google.api_core.exceptions import DeadlineExceeded, ServiceUnavailable

from tripdraw.firebase.firestore_paths import places_col, region_doc
from tripdraw.models import Place
from tripdraw.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

PUBLISHED_STATUS = "verified"


def catalog_retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=2, base_delay=0.5, retry_on=(ServiceUnavailable, DeadlineExceeded))


class FirestoreCatalog:
    """
    Read-only view of the verified places in /places.
    Each document carries city, district, status and the fields Place.from_dict reads.
    """

    def __init__(self, db, retry_policy: Optional[RetryPolicy] = None):
        self.db = db
        self.retry_policy = retry_policy or catalog_retry_policy()

    def _fetch(self, query) -> List[Place]:
        docs = self.retry_policy.call(lambda: list(query.stream()))
        return [Place.from_dict(doc.id, doc.to_dict() or {}) for doc in docs]

    def places_by_city(self, city: str, limit: int) -> List[Place]:
        query = (
            places_col(self.db)
            .where("city", "==", city)
            .where("status", "==", PUBLISHED_STATUS)
            .limit(limit)
        )
        return self._fetch(query)

    def places_by_district(self, city: str, district: str, limit: int) -> List[Place]:
        query = (
            places_col(self.db)
            .where("city", "==", city)
            .where("district", "==", district)
            .where("status", "==", PUBLISHED_STATUS)
            .limit(limit)
        )
        return self._fetch(query)

    def resolve_region(self, region_id) -> Optional[str]:
        """Return the city name for a region id, or None when unknown."""
        snap = self.retry_policy.call(region_doc(self.db, region_id).get)
        if not snap.exists:
            logger.info(f"Region {region_id} not found")
            return None
        return (snap.to_dict() or {}).get("city")
