# tripdraw/models.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Place:
    id: str
    name: str
    category: str
    sub_category: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None  # (lat, lng)
    rating: Optional[float] = None
    opening_hours: Any = None
    description: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    sponsor_link_id: Optional[str] = None

    @classmethod
    def from_dict(cls, place_id: str, data: Dict[str, Any]) -> "Place":
        """Build a Place from a catalog document, tolerating missing fields."""
        coords = None
        lat, lng = data.get("latitude"), data.get("longitude")
        loc = data.get("coordinates") or data.get("location")
        if lat is None and isinstance(loc, dict):
            lat, lng = loc.get("lat"), loc.get("lng")
        if lat is not None and lng is not None:
            coords = (float(lat), float(lng))
        rating = data.get("rating")
        return cls(
            id=place_id,
            name=data.get("name", ""),
            category=data.get("category", ""),
            sub_category=data.get("sub_category"),
            coordinates=coords,
            rating=float(rating) if rating is not None else None,
            opening_hours=data.get("opening_hours"),
            description=data.get("description"),
            city=data.get("city"),
            district=data.get("district"),
            sponsor_link_id=data.get("sponsor_link_id"),
        )


@dataclass(frozen=True)
class Identity:
    """Who is drawing. Guests carry a session key instead of a uid."""

    key: str
    is_guest: bool = False
    email: Optional[str] = None

    @property
    def exemption_keys(self) -> Tuple[str, ...]:
        return tuple(k for k in (self.key, self.email) if k)


@dataclass(frozen=True)
class TimeSlotInfo:
    slot: str
    priority: int
    label: str


@dataclass(frozen=True)
class SponsorLink:
    id: str
    place_id: str
    sponsor_id: str
    drop_rate: Optional[float] = None


@dataclass(frozen=True)
class Reward:
    id: str
    sponsor_id: str
    title: str
    description: Optional[str] = None
    remaining_quantity: Optional[int] = None
    place_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rewardId": self.id,
            "sponsorId": self.sponsor_id,
            "title": self.title,
            "description": self.description,
            "placeId": self.place_id,
        }


@dataclass
class DraftItem:
    place: Place
    time_slot: TimeSlotInfo
    sequence_index: int
    reward: Optional[Reward] = None

    def to_dict(self, category_color: str) -> Dict[str, Any]:
        p = self.place
        return {
            "placeId": p.id,
            "name": p.name,
            "category": p.category,
            "categoryColor": category_color,
            "subCategory": p.sub_category,
            "rating": p.rating,
            "latitude": p.coordinates[0] if p.coordinates else None,
            "longitude": p.coordinates[1] if p.coordinates else None,
            "description": p.description,
            "timeSlot": self.time_slot.slot,
            "timeSlotLabel": self.time_slot.label,
            "sequenceIndex": self.sequence_index,
            "reward": self.reward.to_dict() if self.reward else None,
        }


@dataclass
class SelectionOutcome:
    places: List[Place]
    shortfall: bool
    relaxations: List[str] = field(default_factory=list)


@dataclass
class ReorderOutcome:
    places: List[Place]
    status: str
    rationale: Optional[str] = None
    rejected: List[Place] = field(default_factory=list)


@dataclass
class DrawResult:
    items: List[DraftItem]
    rewards_won: List[Reward]
    meta: Dict[str, Any]
