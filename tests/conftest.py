import random
from collections import defaultdict

import pytest

from tripdraw.config import DrawRules, SlotRules
from tripdraw.models import Identity, Place, Reward, SponsorLink
from tripdraw.services.draw_engine import DrawEngine
from tripdraw.services.ledger import DedupLedger, GuestSessionStore
from tripdraw.services.quota import QuotaGovernor
from tripdraw.services.reorder_adapter import ReorderAdapter
from tripdraw.services.rewards import RewardRoller

TODAY = "2026-10-18"


def make_place(place_id, category, lat=None, lng=None, **kwargs):
    coords = (lat, lng) if lat is not None and lng is not None else None
    return Place(id=place_id, name=kwargs.pop("name", f"Place {place_id}"), category=category,
                 coordinates=coords, **kwargs)


def make_pool(counts, district="Daan", city="Taipei", prefix=None):
    """counts: {category: n} -> list of places with simple distinct coordinates."""
    places = []
    i = 0
    for category, n in counts.items():
        for k in range(n):
            pid = f"{prefix}-{category}-{k}" if prefix else f"{category}-{k}"
            places.append(make_place(pid, category, lat=25.0 + i * 0.01, lng=121.5 + (i % 3) * 0.01,
                                     city=city, district=district))
            i += 1
    return places


class FakeCatalog:
    def __init__(self, places=(), regions=None):
        self.places = list(places)
        self.regions = regions or {}
        self.calls = []

    def places_by_city(self, city, limit):
        self.calls.append(("city", city))
        return [p for p in self.places if p.city == city][:limit]

    def places_by_district(self, city, district, limit):
        self.calls.append(("district", city, district))
        return [p for p in self.places if p.city == city and p.district == district][:limit]

    def resolve_region(self, region_id):
        return self.regions.get(region_id)


class FakeDrawStore:
    def __init__(self):
        self.history = defaultdict(list)
        self.counts = defaultdict(int)
        self.logs = []
        self.fail_log = False
        self.fail_increment = False

    def recent_place_ids(self, identity, limit):
        return list(reversed(self.history[identity]))[:limit]

    def record_draw(self, identity, place_ids, rationale, session_id):
        self.history[identity].extend(place_ids)

    def daily_draw_count(self, identity, day):
        return self.counts[(identity, day)]

    def increment_daily_draw_count(self, identity, day, by):
        if self.fail_increment:
            raise RuntimeError("quota write failed")
        self.counts[(identity, day)] += by
        return self.counts[(identity, day)]

    def has_published_trip(self, signature):
        return any(log["trip_signature"] == signature and log["is_published"] for log in self.logs)

    def save_draw_log(self, log):
        if self.fail_log:
            raise RuntimeError("log write failed")
        self.logs.append(dict(log))


class FakeSponsorStore:
    def __init__(self, links=None, rewards=None):
        self.links = links or {}
        self.rewards = rewards or {}
        self.grants = []
        self.fail_grant = False

    def reward_link_for_place(self, place_id):
        return self.links.get(place_id)

    def active_rewards(self, link):
        return list(self.rewards.get(link.place_id, []))

    def grant_reward(self, holder, reward, session_id):
        if self.fail_grant:
            raise RuntimeError("grant failed")
        self.grants.append((holder, reward.id, session_id))


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def draw_store():
    return FakeDrawStore()


@pytest.fixture
def sponsor_store():
    return FakeSponsorStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guest_store(clock):
    return GuestSessionStore(ttl_seconds=1800, limit=36, clock=clock)


@pytest.fixture
def user():
    return Identity(key="user-1", email="user1@example.com")


@pytest.fixture
def guest():
    return Identity(key="guest", is_guest=True)


@pytest.fixture
def make_engine(draw_store, sponsor_store, guest_store, rng):
    def _make(places, regions=None, adapter=None, ceiling=36, exempt=(), drop_rate=0.0):
        quota = QuotaGovernor(draw_store, ceiling=ceiling, exempt_identities=exempt)
        quota.today = lambda: TODAY
        return DrawEngine(
            catalog=FakeCatalog(places, regions),
            draw_store=draw_store,
            ledger=DedupLedger(draw_store, guest_store, limit=36),
            quota=quota,
            reorder_adapter=adapter or ReorderAdapter(api_key=None),
            reward_roller=RewardRoller(sponsor_store, drop_rate, rng=random.Random(7)),
            draw_rules=DrawRules(),
            slot_rules=SlotRules(),
            rng=rng,
        )
    return _make


def sponsor_link(place_id, rate=1.0):
    return SponsorLink(id=f"link-{place_id}", place_id=place_id, sponsor_id="sponsor-1", drop_rate=rate)


def reward(reward_id, remaining=10):
    return Reward(id=reward_id, sponsor_id="sponsor-1", title=f"Reward {reward_id}", remaining_quantity=remaining)
