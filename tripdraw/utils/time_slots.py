# tripdraw/utils/time_slots.py
import re
from typing import Any, List, Optional

from tripdraw.config import SlotRules
from tripdraw.models import Place, TimeSlotInfo

DEFAULT_SLOT_RULES = SlotRules()

_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)?", re.IGNORECASE)
_MERIDIEM_RE = re.compile(r"(\d{1,2})\s*(AM|PM)", re.IGNORECASE)
_ALL_DAY_RE = re.compile(r"(open\s+)?24\s*(hours|hrs|h\b)|全天", re.IGNORECASE)


def _hours_entries(hours: Any) -> List[str]:
    """Normalise the hours hint to a list of strings (Google-style weekday text)."""
    if not hours:
        return []
    if isinstance(hours, str):
        return [hours]
    if isinstance(hours, dict):
        entries = hours.get("weekday_text") or []
        return [e for e in entries if isinstance(e, str)]
    if isinstance(hours, (list, tuple)):
        return [e for e in hours if isinstance(e, str)]
    return []


def _to_24h(hour: int, meridiem: Optional[str]) -> int:
    if not meridiem:
        return hour
    meridiem = meridiem.upper()
    if meridiem == "PM" and hour != 12:
        return hour + 12
    if meridiem == "AM" and hour == 12:
        return 0
    return hour


def parse_opening_hour(text: str) -> Optional[int]:
    """
    Returns the opening hour (0-23) found in an hours string such as
    "Monday: 09:00 – 21:00" or "Monday: 9 AM – 9 PM", or None.
    """
    match = _CLOCK_RE.search(text)
    if match:
        return _to_24h(int(match.group(1)), match.group(3))
    match = _MERIDIEM_RE.search(text)
    if match:
        return _to_24h(int(match.group(1)), match.group(2))
    return None


def hour_to_slot(hour: int, rules: SlotRules = DEFAULT_SLOT_RULES) -> str:
    for start, end, slot in rules.hour_bands:
        if start <= hour < end:
            return slot
    return "night"


def slot_from_hours(hours: Any, rules: SlotRules = DEFAULT_SLOT_RULES) -> Optional[str]:
    entries = _hours_entries(hours)
    if not entries:
        return None
    first = entries[0]
    if _ALL_DAY_RE.search(first):
        return rules.default_slot
    hour = parse_opening_hour(first)
    if hour is None:
        return None
    return hour_to_slot(hour, rules)


def slot_info(slot: str, rules: SlotRules = DEFAULT_SLOT_RULES) -> TimeSlotInfo:
    priority, label = rules.bands.get(slot, rules.bands[rules.default_slot])
    return TimeSlotInfo(slot=slot, priority=priority, label=label)


def infer_slot(place: Place, rules: SlotRules = DEFAULT_SLOT_RULES) -> TimeSlotInfo:
    """
    Best time of day to visit a place.
    Precedence: opening hours > sub-category > category > flexible.
    Lodging always lands in the night band.
    """
    if place.category == rules.lodging_category:
        return slot_info(rules.lodging_slot, rules)

    slot = slot_from_hours(place.opening_hours, rules)
    if slot is None and place.sub_category:
        slot = rules.sub_category_slots.get(place.sub_category.strip().lower())
    if slot is None:
        slot = rules.category_slots.get(place.category)
    return slot_info(slot or rules.default_slot, rules)
