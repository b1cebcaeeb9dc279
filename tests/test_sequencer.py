from tripdraw.services.sequencer import (
    build_distance_matrix, nearest_neighbor_order, order_by_proximity, sequence,
)

from conftest import make_place


def test_nearest_neighbor_from_start():
    coords = [(0.0, 0.0), (0.0, 3.0), (0.0, 1.0), (0.0, 2.0)]
    assert nearest_neighbor_order(build_distance_matrix(coords), 0) == [0, 2, 3, 1]


def test_starts_at_northernmost_and_walks_greedily():
    south = make_place("s", "scenery", 25.00, 121.50)
    middle = make_place("m", "scenery", 25.05, 121.50)
    north = make_place("n", "scenery", 25.10, 121.50)
    assert [p.id for p in order_by_proximity([south, middle, north])] == ["n", "m", "s"]


def test_coordinate_less_places_go_last():
    a = make_place("a", "scenery", 25.0, 121.0)
    b = make_place("b", "scenery")
    c = make_place("c", "scenery", 25.1, 121.0)
    assert [p.id for p in order_by_proximity([b, a, c])] == ["c", "a", "b"]


def test_single_coordinate_passes_through():
    a = make_place("a", "scenery")
    b = make_place("b", "scenery", 25.0, 121.0)
    c = make_place("c", "scenery")
    assert [p.id for p in order_by_proximity([a, b, c])] == ["b", "a", "c"]


def test_time_slot_sort_is_stable_and_lodging_last():
    hotel = make_place("hotel", "lodging", 25.20, 121.5)
    breakfast = make_place("bk", "food", 25.00, 121.5, sub_category="breakfast")
    bar = make_place("bar", "food", 25.15, 121.5, sub_category="bar")
    park = make_place("park", "scenery", 25.10, 121.5)
    museum = make_place("museum", "education", 25.05, 121.5)
    mall = make_place("mall", "shopping", 25.12, 121.5)

    ordered = [p.id for p in sequence([hotel, breakfast, bar, park, museum, mall])]
    # morning: museum, bk (geographic order north->south); flexible/afternoon share priority 3
    assert ordered[:2] == ["museum", "bk"]
    assert ordered[2:4] == ["mall", "park"]
    assert ordered[4:] == ["bar", "hotel"]
