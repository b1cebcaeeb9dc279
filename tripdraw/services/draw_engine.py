# tripdraw/services/draw_engine.py
import logging
import random
import time
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from tripdraw.config import CATEGORY_COLORS, DEFAULT_CATEGORY_COLOR, DrawRules, SlotRules
from tripdraw.errors import DrawRejected, ReasonCode
from tripdraw.models import DraftItem, DrawResult, Identity, Place, Reward
from tripdraw.services import selector, sequencer
from tripdraw.services.ledger import DedupLedger
from tripdraw.services.quota import QuotaGovernor
from tripdraw.services.reorder_adapter import ReorderAdapter
from tripdraw.services.rewards import RewardRoller
from tripdraw.utils.time_slots import infer_slot

logger = logging.getLogger(__name__)

AUTO_PUBLISH_MIN_PLACES = 3


def trip_signature(place_ids: List[str]) -> str:
    """Order-independent key for a set of places."""
    return ",".join(sorted(place_ids))


class DrawEngine:
    """
    Runs one draw end to end:
    quota gate -> selection -> sequencing -> advisory reorder -> rewards ->
    ledger, draw log and quota writes.
    """

    def __init__(
        self,
        catalog,
        draw_store,
        ledger: DedupLedger,
        quota: QuotaGovernor,
        reorder_adapter: ReorderAdapter,
        reward_roller: RewardRoller,
        draw_rules: Optional[DrawRules] = None,
        slot_rules: Optional[SlotRules] = None,
        catalog_limit: int = 200,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.draw_store = draw_store
        self.ledger = ledger
        self.quota = quota
        self.reorder_adapter = reorder_adapter
        self.reward_roller = reward_roller
        self.draw_rules = draw_rules or DrawRules()
        self.slot_rules = slot_rules or SlotRules()
        self.catalog_limit = catalog_limit
        self.rng = rng or random.Random()

    # -----------------------------
    # Request validation
    # -----------------------------
    def resolve_count_and_pace(self, target_count: Any, pace: Optional[str]) -> Tuple[int, str]:
        rules = self.draw_rules
        if pace is not None and pace not in rules.pace_counts:
            raise DrawRejected(
                ReasonCode.INVALID_PARAMS,
                f"pace must be one of {sorted(rules.pace_counts)}",
            )
        if target_count is not None:
            if isinstance(target_count, bool) or not isinstance(target_count, int):
                raise DrawRejected(ReasonCode.INVALID_PARAMS, "count must be an integer")
            if not rules.min_target <= target_count <= rules.max_target:
                raise DrawRejected(
                    ReasonCode.INVALID_PARAMS,
                    f"count must be between {rules.min_target} and {rules.max_target}",
                )
            return target_count, pace or rules.pace_for_count(target_count)
        if pace is not None:
            return rules.count_for_pace(pace), pace
        return rules.default_target, rules.pace_for_count(rules.default_target)

    def resolve_city(self, city: Optional[str], region_id: Optional[str]) -> str:
        if region_id and not city:
            city = self.catalog.resolve_region(region_id)
            if not city:
                raise DrawRejected(ReasonCode.REGION_NOT_FOUND, "Region not found.", region_id=region_id)
            logger.info(f"Resolved region {region_id} to city {city}")
        if not city:
            raise DrawRejected(ReasonCode.CITY_REQUIRED, "A city or regionId is required.")
        return city

    def _load_pool(self, city: str, district: Optional[str]) -> Tuple[List[Place], Optional[str]]:
        if district:
            pool = self.catalog.places_by_district(city, district, self.catalog_limit)
            logger.info(f"Found {len(pool)} places in {city}/{district}")
            if pool:
                return pool, district
            logger.info(f"District {district} is empty, falling back to all of {city}")
        pool = self.catalog.places_by_city(city, self.catalog_limit)
        logger.info(f"Found {len(pool)} places in {city}")
        if not pool:
            raise DrawRejected(
                ReasonCode.NO_PLACES_AVAILABLE,
                f"{city} has no places available yet.",
                city=city,
                district=None,
            )
        return pool, None

    # -----------------------------
    # Draw
    # -----------------------------
    def draw(
        self,
        identity: Identity,
        city: Optional[str] = None,
        district: Optional[str] = None,
        target_count: Optional[int] = None,
        pace: Optional[str] = None,
        region_id: Optional[str] = None,
    ) -> DrawResult:
        started = time.monotonic()
        session_id = str(uuid.uuid4())

        target_count, pace = self.resolve_count_and_pace(target_count, pace)
        city = self.resolve_city(city, region_id)
        logger.info(
            f"Draw {session_id}: identity={identity.key} city={city} district={district} "
            f"count={target_count} pace={pace}"
        )

        reservation = self.quota.check_and_reserve(identity, target_count)
        try:
            result = self._run(identity, city, district, target_count, pace, session_id, started, reservation)
        except BaseException:
            self.quota.release(reservation)
            raise
        return result

    def _run(self, identity, city, district, target_count, pace, session_id, started, reservation) -> DrawResult:
        pool, district = self._load_pool(city, district)
        excluded = self.ledger.recent_ids(identity, city)
        logger.info(f"Ledger excludes {len(excluded)} places for {identity.key}")

        wider_loader = None
        if district:
            wider_loader = lambda: self.catalog.places_by_city(city, self.catalog_limit)  # noqa: E731

        selection = selector.select(
            pool, target_count, self.draw_rules, excluded, rng=self.rng, wider_pool_loader=wider_loader
        )
        if selection.relaxations:
            logger.info(f"Selection relaxations applied: {selection.relaxations}")

        ordered = sequencer.sequence(selection.places, self.slot_rules)
        reorder = self.reorder_adapter.propose_order(ordered)
        logger.info(f"Reorder outcome: {reorder.status} ({len(reorder.rejected)} rejected)")

        final_places = reorder.places
        items: List[DraftItem] = []
        rewards_won: List[Reward] = []
        for idx, place in enumerate(final_places):
            reward = self.reward_roller.roll_reward(place)
            if reward is not None:
                self.reward_roller.grant(identity, reward, session_id)
                rewards_won.append(reward)
            items.append(DraftItem(
                place=place,
                time_slot=infer_slot(place, self.slot_rules),
                sequence_index=idx,
                reward=reward,
            ))
        if rewards_won:
            logger.info(f"Rewards won: {[r.id for r in rewards_won]}")

        place_ids = [p.id for p in final_places]
        self.ledger.record(identity, city, place_ids, reorder.rationale, session_id)

        distribution = dict(Counter(p.category for p in final_places))
        is_shortfall = len(final_places) < target_count

        if not identity.is_guest and final_places:
            self._save_draw_log({
                "session_id": session_id,
                "identity": identity.key,
                "city": city,
                "district": district,
                "requested_count": target_count,
                "ordered_place_ids": place_ids,
                "rejected_place_ids": [p.id for p in reorder.rejected],
                "rationale": reorder.rationale,
                "model": getattr(self.reorder_adapter, "model", None),
                "reorder_outcome": reorder.status,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "category_distribution": distribution,
                "is_shortfall": is_shortfall,
            })

        daily_count = self.quota.commit(reservation, len(final_places))
        remaining = None if reservation.exempt else max(reservation.ceiling - daily_count, 0)

        shortfall_message = None
        if is_shortfall:
            shortfall_message = (
                f"{district or city} currently has only {len(final_places)} places available. "
                f"More are on the way!"
            )

        meta = {
            "sessionId": session_id,
            "city": city,
            "district": district,
            "pace": pace,
            "requestedCount": target_count,
            "returnedCount": len(final_places),
            "isShortfall": is_shortfall,
            "shortfallMessage": shortfall_message,
            "relaxations": selection.relaxations,
            "reorderOutcome": reorder.status,
            "rationale": reorder.rationale,
            "rejectedPlaceIds": [p.id for p in reorder.rejected],
            "categoryDistribution": distribution,
            "totalRewardsWon": len(rewards_won),
            "dailyLimit": reservation.ceiling,
            "dailyDrawCount": daily_count,
            "remainingQuota": remaining,
        }
        logger.info(
            f"Draw {session_id} done: {len(final_places)}/{target_count} places, "
            f"{len(rewards_won)} rewards, daily count {daily_count}"
        )
        return DrawResult(items=items, rewards_won=rewards_won, meta=meta)

    def _save_draw_log(self, log: Dict[str, Any]):
        """Analytics only: failures are logged and swallowed."""
        try:
            signature = trip_signature(log["ordered_place_ids"])
            publish = (
                len(log["ordered_place_ids"]) >= AUTO_PUBLISH_MIN_PLACES
                and not self.draw_store.has_published_trip(signature)
            )
            log["trip_signature"] = signature
            log["is_published"] = publish
            self.draw_store.save_draw_log(log)
            logger.info(f"Draw log saved: {log['session_id']} (published={publish})")
        except Exception as e:
            logger.error(f"Failed to save draw log {log.get('session_id')}: {e}", exc_info=True)

    def quota_status(self, identity: Identity) -> Dict[str, Any]:
        return self.quota.status(identity)

    @staticmethod
    def category_color(category: str) -> str:
        return CATEGORY_COLORS.get(category, DEFAULT_CATEGORY_COLOR)

    def to_response(self, result: DrawResult) -> Dict[str, Any]:
        return {
            "success": True,
            "items": [item.to_dict(self.category_color(item.place.category)) for item in result.items],
            "rewardsWon": [r.to_dict() for r in result.rewards_won],
            "meta": result.meta,
        }
