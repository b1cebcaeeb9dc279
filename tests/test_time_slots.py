import pytest

from tripdraw.utils.time_slots import hour_to_slot, infer_slot, parse_opening_hour, slot_from_hours

from conftest import make_place


@pytest.mark.parametrize("text,hour", [
    ("Monday: 09:00 – 21:00", 9),
    ("Monday: 9:30 AM – 5:00 PM", 9),
    ("Monday: 6 PM – 2 AM", 18),
    ("Monday: 12 AM – 6 AM", 0),
    ("Monday: 12 PM – 3 PM", 12),
    ("Monday: 5:00 PM – 11:00 PM", 17),
    ("Monday: 12:30 PM – 9:00 PM", 12),
    ("Monday: 12:00 AM – 4:00 AM", 0),
    ("Monday: 5:00 pm – 11:00 pm", 17),
    ("Closed", None),
])
def test_parse_opening_hour(text, hour):
    assert parse_opening_hour(text) == hour


@pytest.mark.parametrize("hour,slot", [
    (5, "morning"), (10, "morning"), (11, "noon"), (13, "noon"),
    (14, "afternoon"), (18, "evening"), (21, "evening"), (22, "night"), (3, "night"),
])
def test_hour_bands(hour, slot):
    assert hour_to_slot(hour) == slot


def test_hours_formats_only_read_first_entry():
    assert slot_from_hours(["Monday: 07:00 – 11:00", "Tuesday: 19:00 – 23:00"]) == "morning"
    assert slot_from_hours({"weekday_text": ["Monday: 18:00 – 23:00"]}) == "evening"
    assert slot_from_hours("Monday: 2 PM – 8 PM") == "afternoon"
    assert slot_from_hours(["Monday: 5:00 PM – 11:00 PM"]) == "afternoon"
    assert slot_from_hours(["Monday: 7:30 PM – 1:00 AM"]) == "evening"
    assert slot_from_hours("Monday: Open 24 hours") == "flexible"
    assert slot_from_hours(["星期一: 全天"]) == "flexible"
    assert slot_from_hours([]) is None
    assert slot_from_hours("Closed") is None


def test_precedence_hours_then_sub_category_then_category():
    hours_win = make_place("a", "food", sub_category="breakfast", opening_hours=["Monday: 18:00 – 23:00"])
    assert infer_slot(hours_win).slot == "evening"

    sub_win = make_place("b", "food", sub_category="Breakfast")
    assert infer_slot(sub_win).slot == "morning"
    assert infer_slot(sub_win).priority == 1

    category_default = make_place("c", "shopping", sub_category="unknown")
    assert infer_slot(category_default).slot == "afternoon"

    neutral = make_place("d", "mystery")
    info = infer_slot(neutral)
    assert (info.slot, info.priority) == ("flexible", 3)


def test_lodging_is_always_night():
    hotel = make_place("h", "lodging", opening_hours=["Monday: 08:00 – 10:00"], sub_category="breakfast")
    assert infer_slot(hotel).slot == "night"
    assert infer_slot(hotel).priority == 5
