# tripdraw/config.py
import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _env_set(name: str) -> FrozenSet[str]:
    raw = os.environ.get(name, "")
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


# --- Quota / ledger ---
DAILY_DRAW_LIMIT = _env_int("DAILY_DRAW_LIMIT", 36)
DRAW_DEDUP_LIMIT = _env_int("DRAW_DEDUP_LIMIT", 36)
GUEST_LEDGER_TTL_SECONDS = _env_int("GUEST_LEDGER_TTL_SECONDS", 30 * 60)
GUEST_SWEEP_INTERVAL_SECONDS = _env_int("GUEST_SWEEP_INTERVAL_SECONDS", 5 * 60)
DRAW_EXEMPT_IDENTITIES = _env_set("DRAW_EXEMPT_IDENTITIES")
QUOTA_TIMEZONE = os.environ.get("QUOTA_TIMEZONE", "UTC")

# --- Catalog / sponsors ---
CATALOG_FETCH_LIMIT = _env_int("CATALOG_FETCH_LIMIT", 200)
DEFAULT_REWARD_DROP_RATE = _env_float("DEFAULT_REWARD_DROP_RATE", 0.1)

# --- Advisory (reorder) service ---
REORDER_BASE_URL = os.environ.get(
    "REORDER_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
REORDER_API_KEY = os.environ.get("REORDER_API_KEY")
REORDER_MODEL = os.environ.get("REORDER_MODEL", "gemini-1.5-flash")
REORDER_TIMEOUT_SECONDS = _env_float("REORDER_TIMEOUT_SECONDS", 20.0)
REORDER_MAX_ATTEMPTS = _env_int("REORDER_MAX_ATTEMPTS", 2)

# --- Firebase ---
FIREBASE_SERVICE_ACCOUNT_CONTENT = os.environ.get("FIREBASE_SERVICE_ACCOUNT_CONTENT")
FIREBASE_SERVICE_ACCOUNT_PATH = os.environ.get(
    "FIREBASE_SERVICE_ACCOUNT_PATH", "credentials/firebase-service-account.json"
)


# Category codes used by the catalog.
FOOD = "food"
LODGING = "lodging"
SCENERY = "scenery"
SHOPPING = "shopping"
ENTERTAINMENT = "entertainment"
EDUCATION = "education"
EXPERIENCE = "experience"

CATEGORY_COLORS = {
    FOOD: "#FF6B6B",
    LODGING: "#4ECDC4",
    EDUCATION: "#45B7D1",
    ENTERTAINMENT: "#FFEAA7",
    SCENERY: "#DDA0DD",
    SHOPPING: "#FFB347",
    EXPERIENCE: "#96CEB4",
}
DEFAULT_CATEGORY_COLOR = "#6366f1"


@dataclass(frozen=True)
class DrawRules:
    """Selection rules for one market. Swap an instance in to vary them."""

    roulette_categories: Tuple[str, ...] = (
        FOOD, SCENERY, SHOPPING, ENTERTAINMENT, EDUCATION, EXPERIENCE,
    )
    # relative roulette weight per category; missing categories weigh 1.0
    category_weights: Dict[str, float] = field(default_factory=dict)
    food_category: str = FOOD
    lodging_category: str = LODGING
    # (lowest targetCount the tier applies to, food minimum), ascending
    food_minimum_tiers: Tuple[Tuple[int, int], ...] = ((0, 2), (7, 3), (9, 3))
    lodging_threshold: int = 9
    category_share_cap: float = 0.5
    min_target: int = 5
    max_target: int = 12
    default_target: int = 7
    pace_counts: Dict[str, int] = field(
        default_factory=lambda: {"relaxed": 5, "moderate": 7, "packed": 10}
    )

    def soft_cap(self, target_count: int) -> int:
        return max(1, int(target_count * self.category_share_cap))

    def food_minimum(self, target_count: int) -> int:
        minimum = 0
        for lowest, count in self.food_minimum_tiers:
            if target_count >= lowest:
                minimum = count
        return min(minimum, self.soft_cap(target_count))

    def lodging_slots(self, target_count: int) -> int:
        return 1 if target_count >= self.lodging_threshold else 0

    def pace_for_count(self, target_count: int) -> str:
        if target_count <= 5:
            return "relaxed"
        if target_count <= 7:
            return "moderate"
        return "packed"

    def count_for_pace(self, pace: Optional[str]) -> int:
        return self.pace_counts.get(pace or "", self.default_target)


@dataclass(frozen=True)
class SlotRules:
    """Time-of-day tables read by the slot inferrer."""

    # slot -> (priority, label)
    bands: Dict[str, Tuple[int, str]] = field(default_factory=lambda: {
        "morning": (1, "Morning (06:00-11:00)"),
        "noon": (2, "Noon (11:00-14:00)"),
        "afternoon": (3, "Afternoon (14:00-18:00)"),
        "evening": (4, "Evening (18:00-22:00)"),
        "night": (5, "Night (22:00-04:00)"),
        "flexible": (3, "Flexible"),
    })
    sub_category_slots: Dict[str, str] = field(default_factory=lambda: {
        "breakfast": "morning",
        "brunch": "morning",
        "traditional breakfast": "morning",
        "soy milk shop": "morning",
        "hiking trail": "morning",
        "hiking": "morning",
        "sunrise": "morning",
        "afternoon tea": "afternoon",
        "cafe": "afternoon",
        "dessert": "afternoon",
        "shaved ice": "afternoon",
        "bubble tea": "afternoon",
        "barbecue": "evening",
        "stir fry": "evening",
        "spa": "evening",
        "hot spring": "evening",
        "night market": "evening",
        "late-night snacks": "night",
        "izakaya": "night",
        "bar": "night",
        "night view": "night",
    })
    category_slots: Dict[str, str] = field(default_factory=lambda: {
        FOOD: "noon",
        LODGING: "night",
        SCENERY: "flexible",
        SHOPPING: "afternoon",
        ENTERTAINMENT: "afternoon",
        EDUCATION: "morning",
        EXPERIENCE: "flexible",
    })
    # (start hour inclusive, end hour exclusive, slot); anything else is night
    hour_bands: Tuple[Tuple[int, int, str], ...] = (
        (5, 11, "morning"),
        (11, 14, "noon"),
        (14, 18, "afternoon"),
        (18, 22, "evening"),
    )
    default_slot: str = "flexible"
    lodging_category: str = LODGING
    lodging_slot: str = "night"
