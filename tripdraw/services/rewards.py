# tripdraw/services/rewards.py
import logging
import random
from typing import Optional

from tripdraw.models import Identity, Place, Reward

logger = logging.getLogger(__name__)


class RewardRoller:
    """Independent sponsor-reward roll per finalised place."""

    def __init__(self, sponsor_store, default_drop_rate: float, rng: Optional[random.Random] = None):
        self.sponsor_store = sponsor_store
        self.default_drop_rate = default_drop_rate
        self.rng = rng or random.Random()

    def roll_reward(self, place: Place) -> Optional[Reward]:
        link = self.sponsor_store.reward_link_for_place(place.id)
        if link is None:
            return None

        drop_rate = link.drop_rate if link.drop_rate is not None else self.default_drop_rate
        if self.rng.random() >= drop_rate:
            return None

        catalog = self.sponsor_store.active_rewards(link)
        if not catalog:
            logger.info(f"Reward rolled for {place.id} but sponsor {link.sponsor_id} has no active stock")
            return None
        reward = self.rng.choice(catalog)
        logger.info(f"Reward won at {place.id}: {reward.id} ({reward.title})")
        return Reward(
            id=reward.id,
            sponsor_id=reward.sponsor_id,
            title=reward.title,
            description=reward.description,
            remaining_quantity=reward.remaining_quantity,
            place_id=place.id,
        )

    def grant(self, identity: Identity, reward: Reward, session_id: str):
        """Persist a won reward. Failures propagate; earlier grants are not undone."""
        self.sponsor_store.grant_reward(identity.key, reward, session_id)
