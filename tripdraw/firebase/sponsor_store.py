# sponsor_store.py
import logging
from typing import List, Optional

from firebase_admin import firestore

from tripdraw.firebase.firestore_paths import reward_grants_col, sponsor_links_col, sponsor_reward_doc, sponsor_rewards_col
from tripdraw.models import Reward, SponsorLink

logger = logging.getLogger(__name__)


class FirestoreSponsorStore:
    def __init__(self, db):
        self.db = db

    def reward_link_for_place(self, place_id: str) -> Optional[SponsorLink]:
        """The approved sponsor link for a place, if any."""
        query = (
            sponsor_links_col(self.db)
            .where("place_id", "==", place_id)
            .where("status", "==", "approved")
            .limit(1)
        )
        for doc in query.stream():
            data = doc.to_dict() or {}
            rate = data.get("drop_rate")
            return SponsorLink(
                id=doc.id,
                place_id=place_id,
                sponsor_id=data.get("sponsor_id", ""),
                drop_rate=float(rate) if rate is not None else None,
            )
        return None

    def active_rewards(self, link: SponsorLink) -> List[Reward]:
        query = (
            sponsor_rewards_col(self.db)
            .where("place_id", "==", link.place_id)
            .where("is_active", "==", True)
            .where("archived", "==", False)
        )
        rewards = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            remaining = data.get("remaining_quantity")
            # Firestore can't combine this inequality with the filters above.
            if remaining is not None and remaining <= 0:
                continue
            rewards.append(Reward(
                id=doc.id,
                sponsor_id=data.get("sponsor_id", link.sponsor_id),
                title=data.get("title", ""),
                description=data.get("description"),
                remaining_quantity=remaining,
            ))
        return rewards

    def grant_reward(self, holder: str, reward: Reward, session_id: str):
        """Record the grant and move one unit of stock from remaining to issued."""
        stock = {"issued_quantity": firestore.Increment(1)}
        if reward.remaining_quantity is not None:  # None means unlimited
            stock["remaining_quantity"] = firestore.Increment(-1)

        batch = self.db.batch()
        batch.update(sponsor_reward_doc(self.db, reward.id), stock)
        batch.set(reward_grants_col(self.db, holder).document(), {
            "reward_id": reward.id,
            "sponsor_id": reward.sponsor_id,
            "place_id": reward.place_id,
            "title": reward.title,
            "session_id": session_id,
            "status": "active",
            "granted_at": firestore.SERVER_TIMESTAMP,
        })
        batch.commit()
        logger.info(f"Granted reward {reward.id} to {holder}")
