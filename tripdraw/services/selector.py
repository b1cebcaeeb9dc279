# tripdraw/services/selector.py
import logging
import random
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from tripdraw.config import DrawRules
from tripdraw.models import Place, SelectionOutcome

logger = logging.getLogger(__name__)

RELAX_IGNORE_LEDGER = "ignore_ledger"
RELAX_WIDEN_TO_CITY = "widen_to_city"
RELAX_ANY_CATEGORY = "any_category"


class _Selection:
    """Running state of one draw's picks."""

    def __init__(self, target_count: int, rules: DrawRules, rng: random.Random):
        self.target_count = target_count
        self.rules = rules
        self.rng = rng
        self.places: List[Place] = []
        self.ids: Set[str] = set()
        self.counts: Counter = Counter()

    @property
    def remaining(self) -> int:
        return self.target_count - len(self.places)

    def add(self, place: Place):
        self.places.append(place)
        self.ids.add(place.id)
        self.counts[place.category] += 1

    def available(self, candidates: Sequence[Place], category: Optional[str] = None) -> List[Place]:
        return [
            p for p in candidates
            if p.id not in self.ids and (category is None or p.category == category)
        ]

    def pick_from(self, candidates: Sequence[Place], category: str, count: int) -> int:
        """Sample up to `count` places of one category without replacement."""
        pool = self.available(candidates, category)
        self.rng.shuffle(pool)
        taken = 0
        for place in pool:
            if taken >= count or self.remaining <= 0:
                break
            self.add(place)
            taken += 1
        return taken


def _dedupe(places: Iterable[Place]) -> List[Place]:
    seen, out = set(), []
    for p in places:
        if p.id not in seen:
            seen.add(p.id)
            out.append(p)
    return out


def _fill_floor(
    state: _Selection,
    category: str,
    wanted: int,
    candidates: Sequence[Place],
    fallback: Optional[Sequence[Place]],
) -> bool:
    """Top a category up to `wanted`. Returns True when fallback places were needed."""
    missing = wanted - state.counts[category]
    if missing > 0:
        missing -= state.pick_from(candidates, category, missing)
    if missing > 0 and fallback is not None:
        return state.pick_from(fallback, category, missing) > 0
    return False


def _fill_by_rules(
    state: _Selection,
    candidates: Sequence[Place],
    fallback: Optional[Sequence[Place]] = None,
) -> bool:
    """
    Fill the food minimum, the lodging slot, then spin the roulette.

    The two floors may reach into `fallback` (the pool before ledger
    exclusions) when `candidates` cannot meet them; the roulette never does.
    Returns True when a fallback place was taken.
    """
    rules = state.rules
    target = state.target_count
    cap = rules.soft_cap(target)

    # 1. food minimum
    used_fallback = _fill_floor(state, rules.food_category, rules.food_minimum(target), candidates, fallback)

    # 2. lodging slot
    if _fill_floor(state, rules.lodging_category, rules.lodging_slots(target), candidates, fallback):
        used_fallback = True

    # 3. one roulette spin per remaining slot
    weights: Dict[str, float] = {}
    for category in rules.roulette_categories:
        if state.available(candidates, category):
            weights[category] = rules.category_weights.get(category, 1.0)

    while state.remaining > 0:
        live = [c for c, w in weights.items() if w > 0]
        if not live:
            break
        category = state.rng.choices(live, weights=[weights[c] for c in live])[0]
        if state.counts[category] >= cap:
            weights[category] = 0
            continue
        if not state.pick_from(candidates, category, 1):
            weights[category] = 0

    return used_fallback


def _fill_any_category(state: _Selection, candidates: Sequence[Place]):
    lodging = state.rules.lodging_category
    pool = state.available(candidates)
    state.rng.shuffle(pool)
    for place in pool:
        if state.remaining <= 0:
            break
        if place.category == lodging and state.counts[lodging] >= 1:
            continue
        state.add(place)


def select(
    pool: Sequence[Place],
    target_count: int,
    rules: DrawRules,
    excluded_ids: Iterable[str] = (),
    rng: Optional[random.Random] = None,
    wider_pool_loader: Optional[Callable[[], Sequence[Place]]] = None,
) -> SelectionOutcome:
    """
    Draw up to target_count places from the pool.

    The food minimum is filled first, then the lodging slot (large trips
    only), then one equal-weight category spin per remaining slot, with no
    category allowed past half of the trip. The two minimums may reuse
    ledger-excluded places when the fresh pool cannot meet them. When the pool runs short the
    rules are relaxed in a fixed order: ledger exclusions are ignored, the
    pool is widened to the whole city (when wider_pool_loader is given),
    and finally any category is accepted. Whatever is still missing is
    reported as a shortfall, never padded.
    """
    rng = rng or random.Random()
    state = _Selection(target_count, rules, rng)
    pool = _dedupe(pool)
    excluded = set(excluded_ids)
    relaxations: List[str] = []

    def note(relaxation: str):
        if relaxation not in relaxations:
            relaxations.append(relaxation)

    fresh = [p for p in pool if p.id not in excluded]
    if _fill_by_rules(state, fresh, fallback=pool):
        note(RELAX_IGNORE_LEDGER)
        logger.info("Selector took ledger-excluded places to meet the food or lodging minimum")

    candidates = pool
    if state.remaining > 0 and len(fresh) < len(pool):
        note(RELAX_IGNORE_LEDGER)
        logger.info(f"Selector short by {state.remaining}; ignoring {len(excluded)} ledger exclusions")
        _fill_by_rules(state, candidates)

    if state.remaining > 0 and wider_pool_loader is not None:
        relaxations.append(RELAX_WIDEN_TO_CITY)
        wider = list(wider_pool_loader())
        logger.info(f"Selector short by {state.remaining}; widening pool to {len(wider)} city places")
        fresh_wider = [p for p in wider if p.id not in excluded]
        candidates = _dedupe(list(pool) + fresh_wider + wider)
        _fill_by_rules(state, _dedupe(fresh + fresh_wider))
        if state.remaining > 0:
            _fill_by_rules(state, candidates)

    if state.remaining > 0:
        relaxations.append(RELAX_ANY_CATEGORY)
        logger.info(f"Selector short by {state.remaining}; accepting any category")
        _fill_any_category(state, candidates)

    shortfall = state.remaining > 0
    if shortfall:
        logger.warning(f"Selector shortfall: {len(state.places)}/{target_count} places available")

    return SelectionOutcome(places=state.places, shortfall=shortfall, relaxations=relaxations)
