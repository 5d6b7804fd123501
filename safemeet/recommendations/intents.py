"""
Intent classification and the per-intent tuning table.

A free-text request ("selling my bike on marketplace", "first date
tonight") is mapped to one of four intents. Each intent carries a static
``IntentConfig``: search radius, the place kinds worth querying, how well
each kind fits the intent, and the scoring coefficients used to rank
candidates.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Intent(str, Enum):
    marketplace_sale = "marketplace_sale"
    first_date = "first_date"
    night_walk = "night_walk"
    general_meetup = "general_meetup"


class PlaceKind(str, Enum):
    police = "police"
    mall = "mall"
    mcd = "mcd"
    park = "park"
    cafe = "cafe"
    library = "library"
    parking = "parking"
    community_centre = "community_centre"
    community_hotspot = "community_hotspot"


HOTSPOT_KIND = PlaceKind.community_hotspot.value
REAL_PLACE_KINDS: tuple[str, ...] = tuple(
    k.value for k in PlaceKind if k is not PlaceKind.community_hotspot
)
ALL_PLACE_KINDS: frozenset[str] = frozenset(k.value for k in PlaceKind)


# ---------------------------------------------------------------------------
# Scoring coefficients
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoringWeights:
    """Tuned scoring coefficients. Bump ``version`` whenever a value changes."""

    version: str = "2024.11-1"

    distance_factor: float = 2.0
    camera_factor: float = 1.8
    camera_factor_hotspot: float = 1.0
    community_factor: float = 2.0
    community_factor_hotspot: float = 1.4
    camera_saturation: int = 18

    # (min count, value), checked from the top down
    yes_tiers: tuple[tuple[int, float], ...] = ((5, 1.15), (3, 0.85), (2, 0.6), (1, 0.25))
    no_tiers: tuple[tuple[int, float], ...] = ((5, 0.8), (3, 0.55), (2, 0.35), (1, 0.15))

    signage_step: float = 0.05
    signage_cap: float = 0.15

    evidence_boost: float = 0.35
    evidence_boost_hotspot: float = 0.18

    name_match_boost: float = 0.6
    name_mismatch_penalty: float = 0.25
    strong_name_similarity: float = 0.75
    borrow_name_similarity: float = 0.45

    prompt_mention_boost: float = 0.8
    prompt_token_min_len: int = 4

    type_neutral: float = 0.5
    type_factor: float = 0.6

    conflict_penalty: float = 0.55
    weak_hotspot_penalty: float = 0.45
    weak_hotspot_min_yes: int = 5

    # reason/label thresholds
    confirmed_yes: int = 5
    some_confirmation_yes: int = 2
    high_camera_density: int = 6
    some_camera_density: int = 2


DEFAULT_SCORING = ScoringWeights()


# ---------------------------------------------------------------------------
# Intent configuration table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IntentConfig:
    intent: Intent
    label: str
    search_radius_m: float
    kind_weights: Mapping[str, float]
    query_kinds: tuple[str, ...]
    scoring: ScoringWeights = field(default=DEFAULT_SCORING)

    @property
    def max_distance_m(self) -> float:
        return self.search_radius_m

    def kind_weight(self, kind: str) -> float:
        return self.kind_weights.get(kind, self.scoring.type_neutral)


def _weights(**kwargs: float) -> Mapping[str, float]:
    return MappingProxyType(dict(kwargs))


INTENT_CONFIGS: Mapping[Intent, IntentConfig] = MappingProxyType({
    Intent.marketplace_sale: IntentConfig(
        intent=Intent.marketplace_sale,
        label="Marketplace sale",
        search_radius_m=6500,
        kind_weights=_weights(
            police=1.0,
            parking=0.8,
            mall=0.75,
            community_centre=0.65,
            cafe=0.45,
            library=0.55,
            park=0.35,
            mcd=0.45,
            community_hotspot=0.55,
        ),
        query_kinds=("police", "parking", "mall", "community_centre", "library", "cafe", "mcd"),
    ),
    Intent.first_date: IntentConfig(
        intent=Intent.first_date,
        label="First date",
        search_radius_m=5000,
        kind_weights=_weights(
            cafe=1.0,
            mall=0.8,
            park=0.7,
            library=0.6,
            community_centre=0.6,
            mcd=0.5,
            police=0.25,
            parking=0.3,
            community_hotspot=0.5,
        ),
        query_kinds=("cafe", "mall", "park", "library", "community_centre", "mcd"),
    ),
    Intent.night_walk: IntentConfig(
        intent=Intent.night_walk,
        label="Night walk",
        search_radius_m=4000,
        kind_weights=_weights(
            police=1.0,
            parking=0.75,
            mall=0.6,
            cafe=0.45,
            library=0.35,
            community_centre=0.55,
            park=0.25,
            mcd=0.45,
            community_hotspot=0.55,
        ),
        query_kinds=("police", "parking", "mall", "mcd", "community_centre"),
    ),
    Intent.general_meetup: IntentConfig(
        intent=Intent.general_meetup,
        label="Safe meetup",
        search_radius_m=5500,
        kind_weights=_weights(
            police=0.75,
            mall=0.75,
            cafe=0.75,
            park=0.6,
            library=0.6,
            community_centre=0.65,
            parking=0.55,
            mcd=0.55,
            community_hotspot=0.55,
        ),
        query_kinds=(
            "police", "mall", "cafe", "park", "library", "community_centre", "parking", "mcd",
        ),
    ),
})


def get_intent_config(intent: Intent) -> IntentConfig:
    return INTENT_CONFIGS[intent]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

# Checked in order; the first group with a hit wins.
_INTENT_KEYWORDS: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    (Intent.marketplace_sale, (
        "facebook", "marketplace", "sell", "sale", "buyer", "cash", "craigslist", "offerup",
    )),
    (Intent.first_date, ("date", "dating", "tinder", "hinge", "bumble", "first time")),
    (Intent.night_walk, ("night", "tonight", "walk", "parking", "late")),
)

_NON_ALNUM_RE = re.compile(r"[\W_]+")


def normalize_text(text: str | None) -> str:
    """Lowercase, replace runs of non-alphanumerics with one space, trim."""
    return _NON_ALNUM_RE.sub(" ", str(text or "").lower()).strip()


def classify_intent(text: str | None) -> Intent:
    """Map free text to an intent. Keywords match anywhere in the normalized text."""
    normalized = normalize_text(text)
    if not normalized:
        return Intent.general_meetup
    for intent, keywords in _INTENT_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return intent
    return Intent.general_meetup
