# tripdraw/services/sequencer.py
import math
from typing import List, Sequence, Tuple

from tripdraw.config import SlotRules
from tripdraw.models import Place
from tripdraw.utils.time_slots import DEFAULT_SLOT_RULES, infer_slot


# -----------------------------
# Distance utilities
# -----------------------------
def euclidean(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def build_distance_matrix(coords: List[Tuple[float, float]]) -> List[List[float]]:
    n = len(coords)
    dist = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            d = euclidean(coords[i], coords[j])
            dist[i][j] = d
            dist[j][i] = d
    return dist


def nearest_neighbor_order(dist: List[List[float]], start_idx: int = 0) -> List[int]:
    """Greedy path; ties go to the lower index so the result is stable."""
    n = len(dist)
    unvisited = set(range(n))
    order = [start_idx]
    unvisited.remove(start_idx)
    while unvisited:
        last = order[-1]
        nxt = min(unvisited, key=lambda j: (dist[last][j], j))
        order.append(nxt)
        unvisited.remove(nxt)
    return order


def _choose_start_index(coords: List[Tuple[float, float]]) -> int:
    """Northernmost point (largest latitude); first one wins ties."""
    best_idx = 0
    for i, (lat, _) in enumerate(coords):
        if lat > coords[best_idx][0]:
            best_idx = i
    return best_idx


# -----------------------------
# Ordering
# -----------------------------
def order_by_proximity(places: Sequence[Place]) -> List[Place]:
    with_coords = [p for p in places if p.coordinates is not None]
    without_coords = [p for p in places if p.coordinates is None]
    if len(with_coords) <= 1:
        return with_coords + without_coords

    coords = [p.coordinates for p in with_coords]
    dist = build_distance_matrix(coords)
    order = nearest_neighbor_order(dist, start_idx=_choose_start_index(coords))
    return [with_coords[i] for i in order] + without_coords


def order_by_time_slot(places: Sequence[Place], rules: SlotRules = DEFAULT_SLOT_RULES) -> List[Place]:
    """Stable sort by slot priority; lodging goes after every band."""
    last_band = max(priority for priority, _ in rules.bands.values()) + 1

    def key(place: Place) -> int:
        if place.category == rules.lodging_category:
            return last_band
        return infer_slot(place, rules).priority

    return sorted(places, key=key)


def sequence(places: Sequence[Place], rules: SlotRules = DEFAULT_SLOT_RULES) -> List[Place]:
    """Nearest-neighbour walk from the northernmost stop, then time-of-day bands."""
    return order_by_time_slot(order_by_proximity(places), rules)
