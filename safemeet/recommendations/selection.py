"""
Deduplication and final selection.

Selection fills a bounded list in a fixed order: a capped number of
community hotspots, then places with camera or report evidence, then
everything else. Scores only order items within each tier.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from .geo import distance_m
from .models import ScoredCandidate
from .scoring import normalize_name

MAX_HOTSPOT_SLOTS = 2
MIN_EVIDENCE_CAMERAS = 1
MIN_EVIDENCE_YES = 1


def identity_key(item: ScoredCandidate) -> str:
    name = normalize_name(item.place.name)
    if name:
        return f"{item.place.kind}|name:{name}"
    return f"{item.place.kind}|cell:{item.cell_id}"


def dedupe_by_identity(items: list[ScoredCandidate]) -> list[ScoredCandidate]:
    """Keep the best-scoring member of each (kind, name or cell) group, sorted by score."""
    best: dict[str, ScoredCandidate] = {}
    for item in items:
        key = identity_key(item)
        kept = best.get(key)
        if kept is None or item.score > kept.score:
            best[key] = item
    return sorted(best.values(), key=lambda s: s.score, reverse=True)


def dedupe_nearby_names(items: list[ScoredCandidate], radius_m: float = 180.0) -> list[ScoredCandidate]:
    """Drop later items sharing a normalized name with an earlier one within ``radius_m``."""
    kept: list[ScoredCandidate] = []
    for item in items:
        name = normalize_name(item.place.name)
        duplicate = bool(name) and any(
            normalize_name(other.place.name) == name
            and distance_m(other.place.lat, other.place.lon, item.place.lat, item.place.lon) <= radius_m
            for other in kept
        )
        if not duplicate:
            kept.append(item)
    return kept


def has_evidence(item: ScoredCandidate) -> bool:
    return item.cameras_in_neighborhood >= MIN_EVIDENCE_CAMERAS or item.report_yes >= MIN_EVIDENCE_YES


def hotspot_cap(max_results: int, hotspots_enabled: bool) -> int:
    if not hotspots_enabled:
        return 0
    return min(MAX_HOTSPOT_SLOTS, math.ceil(max_results / 3))


@dataclass
class Selection:
    items: list[ScoredCandidate]
    hotspots_only: bool
    max_hotspots: int | None = None


def select(
    ranked: list[ScoredCandidate],
    max_results: int,
    hotspots_enabled: bool,
    real_kinds_available: bool,
) -> Selection:
    """
    Pick the final list from score-sorted, identity-deduped candidates.

    When every real place kind is excluded the result is hotspots only (or
    nothing when hotspots are disabled too).
    """
    hotspots = [s for s in ranked if s.is_hotspot]

    if not real_kinds_available:
        items = hotspots[:max_results] if hotspots_enabled else []
        return Selection(items=items, hotspots_only=True)

    cap = hotspot_cap(max_results, hotspots_enabled)
    places = [s for s in ranked if not s.is_hotspot]
    evidenced = [s for s in places if has_evidence(s)]
    unevidenced = [s for s in places if not has_evidence(s)]

    top: list[ScoredCandidate] = []
    used: set[str] = set()

    def take(pool: list[ScoredCandidate], limit: int) -> None:
        for item in pool:
            if len(top) >= limit:
                return
            if item.place.id in used:
                continue
            top.append(item)
            used.add(item.place.id)

    take(hotspots, min(cap, max_results))
    take(evidenced, max_results)
    take(unevidenced, max_results)

    return Selection(items=top, hotspots_only=False, max_hotspots=cap)
