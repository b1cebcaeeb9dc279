# tripdraw/services/reorder_adapter.py
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

import requests

from tripdraw import config
from tripdraw.config import LODGING
from tripdraw.models import Place, ReorderOutcome
from tripdraw.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

STATUS_SKIPPED = "skipped"
STATUS_REORDERED = "reordered"
STATUS_REORDERED_WITH_REJECTIONS = "reordered_with_rejections"
STATUS_UNAVAILABLE = "unavailable"
STATUS_PARSE_FAILED = "parse_failed"

DESCRIPTION_LIMIT = 80
HOURS_ENTRIES = 2

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")
_ORDER_RE = re.compile(r'"order"\s*:\s*\[([^\]]+)\]')
_REJECT_RE = re.compile(r'"reject"\s*:\s*\[([^\]]*)\]')


# -----------------------------
# Parsed response variants
# -----------------------------
@dataclass(frozen=True)
class Structured:
    order: List[Any]
    reject: List[Any] = field(default_factory=list)
    rationale: Optional[str] = None


@dataclass(frozen=True)
class PartiallyStructured:
    """Lists recovered by pattern matching from otherwise broken JSON."""
    order: List[int]
    reject: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class Unparseable:
    raw: str


ParsedResponse = Union[Structured, PartiallyStructured, Unparseable]


@dataclass(frozen=True)
class VettedOrder:
    """0-based indices into the input, or order=None when the output is discarded."""
    order: Optional[List[int]]
    rejected: List[int]
    rationale: Optional[str] = None


def _int_list(raw: str) -> List[int]:
    out = []
    for part in raw.split(","):
        part = part.strip()
        try:
            out.append(int(part))
        except ValueError:
            continue
    return out


def strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text))
    return text


def parse_response(text: Optional[str]) -> ParsedResponse:
    if not text or not text.strip():
        return Unparseable(raw=text or "")
    body = strip_code_fence(text)

    try:
        data = json.loads(body)
    except ValueError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("order"), list):
        reject = data.get("reject")
        reason = data.get("reason")
        return Structured(
            order=data["order"],
            reject=reject if isinstance(reject, list) else [],
            rationale=reason if isinstance(reason, str) else None,
        )

    order_match = _ORDER_RE.search(body)
    if order_match:
        reject_match = _REJECT_RE.search(body)
        return PartiallyStructured(
            order=_int_list(order_match.group(1)),
            reject=_int_list(reject_match.group(1)) if reject_match else [],
        )
    return Unparseable(raw=body)


def _as_index(value: Any, count: int) -> Optional[int]:
    """1-based wire index -> 0-based, or None when it is not a valid position."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if 1 <= value <= count:
        return value - 1
    return None


def validate(parsed: ParsedResponse, count: int) -> VettedOrder:
    """
    Turn a parsed response into a full permutation of the non-rejected inputs.
    Rejected and out-of-range indices are dropped, duplicates keep their first
    occurrence and any input the model left out is appended in input order.
    Fewer than two surviving indices discards the whole response.
    """
    if isinstance(parsed, Unparseable):
        return VettedOrder(order=None, rejected=[])

    rejected: List[int] = []
    for value in parsed.reject:
        idx = _as_index(value, count)
        if idx is not None and idx not in rejected:
            rejected.append(idx)

    order: List[int] = []
    for value in parsed.order:
        idx = _as_index(value, count)
        if idx is None or idx in rejected or idx in order:
            continue
        order.append(idx)

    if len(order) < 2:
        return VettedOrder(order=None, rejected=[])

    for idx in range(count):
        if idx not in order and idx not in rejected:
            order.append(idx)

    rationale = parsed.rationale if isinstance(parsed, Structured) else None
    return VettedOrder(order=order, rejected=rejected, rationale=rationale)


def lodging_last(places: Sequence[Place], lodging_category: str = LODGING) -> List[Place]:
    others = [p for p in places if p.category != lodging_category]
    stays = [p for p in places if p.category == lodging_category]
    return others + stays


def _format_hours(hours: Any) -> str:
    if isinstance(hours, dict):
        hours = hours.get("weekday_text")
    if isinstance(hours, str):
        return hours
    if isinstance(hours, (list, tuple)) and hours:
        return "; ".join(str(h) for h in hours[:HOURS_ENTRIES])
    return "not provided"


def build_prompt(places: Sequence[Place]) -> str:
    lines = []
    for idx, p in enumerate(places, start=1):
        desc = (p.description or "")[:DESCRIPTION_LIMIT] or "no description"
        lines.append(
            f"{idx}. {p.name} | {p.category}/{p.sub_category or 'general'} | {desc} | hours: {_format_hours(p.opening_hours)}"
        )
    listing = "\n".join(lines)
    return f"""You are an expert at ordering one-day trip itineraries. Arrange the places below in the best visiting order.

Places:
{listing}

Ordering rules, in priority order:
1. Time of day: breakfast/cafe -> morning sights -> lunch -> afternoon activities -> dinner/night market -> late-night snacks/bars -> lodging (lodging must be last)
2. Geographic flow: avoid backtracking, keep nearby places next to each other
3. Category mix: avoid 3 consecutive places of the same category (food inside a night market is fine)
4. Reject unsuitable entries: permanently closed, not a tourist destination, duplicate sites in the same park (keep the most representative one)

Output exactly one line of JSON (no line breaks, no markdown):
{{"order":[3,1,5,2,4],"reason":"breakfast first, then sights","reject":[]}}"""


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, requests.exceptions.HTTPError):
        response = exc.response
        return response is not None and (response.status_code == 429 or response.status_code >= 500)
    return True


class ReorderAdapter:
    """Asks the text-generation service for a better order. Never raises."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = config.REORDER_BASE_URL,
        model: str = config.REORDER_MODEL,
        timeout: float = config.REORDER_TIMEOUT_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        lodging_category: str = LODGING,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        # 4xx other than 429 is never retried, whatever policy is injected
        self.retry_policy = (retry_policy or RetryPolicy(
            max_attempts=config.REORDER_MAX_ATTEMPTS,
            base_delay=0.5,
            retry_on=(requests.exceptions.RequestException,),
        )).with_veto(_is_retryable)
        self.session = session or requests.Session()
        self.lodging_category = lodging_category

    def _request(self, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": 8192, "temperature": 0.1},
        }
        response = self.session.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key or ""},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            logger.warning(f"Reorder service returned a non-object body: {type(data).__name__}")
            return ""
        if data.get("error"):
            logger.warning(f"Reorder service returned an error: {data['error']}")
        try:
            return (data["candidates"][0]["content"]["parts"][0].get("text") or "").strip()
        except (KeyError, IndexError, TypeError, AttributeError):
            return ""

    def propose_order(self, places: Sequence[Place]) -> ReorderOutcome:
        places = list(places)
        if len(places) < 2 or not self.api_key:
            return ReorderOutcome(places=lodging_last(places, self.lodging_category), status=STATUS_SKIPPED)

        try:
            text = self.retry_policy.call(self._request, build_prompt(places))
        except Exception as e:
            logger.warning(f"Reorder service unavailable: {e}", exc_info=True)
            return ReorderOutcome(places=lodging_last(places, self.lodging_category), status=STATUS_UNAVAILABLE)

        if not text:
            logger.warning("Reorder service returned an empty response")
            return ReorderOutcome(places=lodging_last(places, self.lodging_category), status=STATUS_UNAVAILABLE)

        logger.info(f"Reorder response: {text}")
        try:
            vetted = validate(parse_response(text), len(places))
        except Exception as e:
            logger.warning(f"Could not read reorder response: {e}", exc_info=True)
            return ReorderOutcome(places=lodging_last(places, self.lodging_category), status=STATUS_PARSE_FAILED)
        if vetted.order is None:
            return ReorderOutcome(places=lodging_last(places, self.lodging_category), status=STATUS_PARSE_FAILED)

        ordered = [places[i] for i in vetted.order]
        rejected = [places[i] for i in vetted.rejected]
        status = STATUS_REORDERED_WITH_REJECTIONS if rejected else STATUS_REORDERED
        if rejected:
            logger.info(f"Reorder service rejected: {[p.id for p in rejected]}")
        return ReorderOutcome(
            places=lodging_last(ordered, self.lodging_category),
            status=status,
            rationale=vetted.rationale,
            rejected=rejected,
        )
