"""
Candidate scoring.

Every place and hotspot inside the search radius gets one bounded score
built from independent parts: distance, camera density around its grid
cell, community reports attributed to it, how well it fits the intent, and
whether the user named it. Each part is clamped or stepped so no single
signal can run away with the ranking.
"""
from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field

from .geo import distance_m, neighborhood, point_to_cell
from .hotspots import CONFIRMED_LABEL, DISTANCE_SLACK, REPORTED_LABEL
from .intents import HOTSPOT_KIND, IntentConfig, ScoringWeights
from .models import CameraPoint, PlaceCandidate, ReportCellAggregate, ScoredCandidate

_APOSTROPHES_RE = re.compile(r"['‘’`]")
_NON_WORD_RE = re.compile(r"[\W_]+")

# Too common in place names to identify one place on their own
GENERIC_NAME_TOKENS = frozenset({
    "the", "and", "cafe", "coffee", "park", "police", "station", "department",
    "library", "public", "branch", "mall", "center", "centre", "community",
    "parking", "garage", "plaza", "shopping", "street", "avenue", "road",
    "north", "south", "east", "west", "main", "camera", "area", "confirmed",
    "reported",
})
_SYNTHETIC_NAMES = frozenset({CONFIRMED_LABEL, REPORTED_LABEL})


# ── Names ────────────────────────────────────────────────────────────────


def normalize_name(name: str | None) -> str:
    """Lowercase, drop apostrophes, turn other punctuation into spaces, collapse."""
    if not name:
        return ""
    lowered = _APOSTROPHES_RE.sub("", str(name).lower())
    return " ".join(_NON_WORD_RE.sub(" ", lowered).split())


def name_similarity(a: str | None, b: str | None) -> float:
    """
    0..1 similarity of two place names.

    Identical normalized names score 1.0, one name contained in the other
    0.9, otherwise the Jaccard overlap of their word sets.
    """
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if min(len(na), len(nb)) >= 4 and (f" {na} " in f" {nb} " or f" {nb} " in f" {na} "):
        return 0.9
    ta, tb = set(na.split()), set(nb.split())
    return len(ta & tb) / len(ta | tb)


def mentions_in_prompt(name: str | None, prompt: str, min_token_len: int = 4) -> bool:
    """True if the normalized prompt names the place or one of its distinctive words."""
    if not name or name in _SYNTHETIC_NAMES:
        return False
    name_norm = normalize_name(name)
    if not name_norm or not prompt:
        return False
    if len(name_norm) >= 3 and f" {name_norm} " in f" {prompt} ":
        return True
    prompt_tokens = set(prompt.split())
    return any(
        len(tok) >= min_token_len and tok not in GENERIC_NAME_TOKENS and tok in prompt_tokens
        for tok in name_norm.split()
    )


# ── Sub-scores ───────────────────────────────────────────────────────────


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def distance_score(distance: float, max_distance: float) -> float:
    if max_distance <= 0:
        return 0.0
    return clamp01(1.0 - distance / max_distance)


def camera_score(cameras: int, saturation: int = 18) -> float:
    return clamp01(math.log1p(cameras) / math.log(1 + saturation))


def step_value(count: int, tiers: tuple[tuple[int, float], ...]) -> float:
    for threshold, value in tiers:
        if count >= threshold:
            return value
    return 0.0


def community_score(yes: int, no: int, signage: int, weights: ScoringWeights) -> float:
    signage_bonus = min(weights.signage_cap, signage * weights.signage_step)
    return step_value(yes, weights.yes_tiers) - step_value(no, weights.no_tiers) + signage_bonus


def type_bonus(kind_weight: float, weights: ScoringWeights) -> float:
    return (kind_weight - weights.type_neutral) * weights.type_factor


# ── Context ──────────────────────────────────────────────────────────────


@dataclass
class ScoringContext:
    origin_lat: float
    origin_lon: float
    config: IntentConfig
    resolution: int
    prompt: str = ""
    excluded_kinds: frozenset[str] = frozenset()
    camera_counts: Counter = field(default_factory=Counter)
    reports: dict[str, ReportCellAggregate] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        origin_lat: float,
        origin_lon: float,
        config: IntentConfig,
        resolution: int,
        text: str,
        excluded_kinds: frozenset[str],
        cameras: list[CameraPoint],
        report_cells: list[ReportCellAggregate],
    ) -> "ScoringContext":
        camera_counts = Counter(point_to_cell(c.lat, c.lon, resolution) for c in cameras)
        reports = {c.cell_id: c for c in report_cells}
        return cls(
            origin_lat=origin_lat,
            origin_lon=origin_lon,
            config=config,
            resolution=resolution,
            prompt=normalize_name(text),
            excluded_kinds=excluded_kinds,
            camera_counts=camera_counts,
            reports=reports,
        )


def attribute_report(
    place: PlaceCandidate, cell: str, ctx: ScoringContext,
) -> tuple[ReportCellAggregate | None, bool]:
    """
    Report evidence for ``place`` and whether it was borrowed from a neighbor.

    The place's own cell wins when it has any evidence. Otherwise the
    neighbor with the largest yes+no+signage total is considered, but only
    if the place it reports on looks like this one.
    """
    own = ctx.reports.get(cell)
    if own is not None and own.evidence_weight > 0:
        return own, False

    best: ReportCellAggregate | None = None
    for neighbor in neighborhood(cell, 1):
        if neighbor == cell:
            continue
        report = ctx.reports.get(neighbor)
        if report is None or report.evidence_weight == 0:
            continue
        if best is None or report.evidence_weight > best.evidence_weight:
            best = report

    if best is None:
        return None, False

    weights = ctx.config.scoring
    same_id = best.reported_place_id is not None and best.reported_place_id == place.id
    similar = name_similarity(place.name, best.reported_place_name) >= weights.borrow_name_similarity
    if same_id or similar:
        return best, True
    return None, False


# ── Scoring ──────────────────────────────────────────────────────────────


def score_candidate(place: PlaceCandidate, ctx: ScoringContext) -> ScoredCandidate | None:
    """Score one candidate, or ``None`` if it is excluded or out of range."""
    if place.kind in ctx.excluded_kinds:
        return None

    config = ctx.config
    weights = config.scoring
    distance = distance_m(ctx.origin_lat, ctx.origin_lon, place.lat, place.lon)
    if distance > config.max_distance_m * DISTANCE_SLACK:
        return None

    is_hotspot = place.kind == HOTSPOT_KIND
    cell = point_to_cell(place.lat, place.lon, ctx.resolution)
    cams_in_cell = ctx.camera_counts.get(cell, 0)
    cams_nearby = sum(ctx.camera_counts.get(h, 0) for h in neighborhood(cell, 1))

    report, borrowed = attribute_report(place, cell, ctx)
    yes = report.yes_count if report else 0
    no = report.no_count if report else 0
    signage = report.signage_count if report else 0
    conflict = yes > 0 and no > 0

    match_reasons: list[str] = []
    adjustment = 0.0

    if mentions_in_prompt(place.name, ctx.prompt, weights.prompt_token_min_len):
        adjustment += weights.prompt_mention_boost
        match_reasons.append("Matches the place named in your request")

    if report is not None and not is_hotspot:
        same_id = report.reported_place_id is not None and report.reported_place_id == place.id
        if report.reported_place_name or same_id:
            similarity = 1.0 if same_id else name_similarity(place.name, report.reported_place_name)
            if similarity >= weights.strong_name_similarity:
                adjustment += weights.name_match_boost
                match_reasons.append("Community reports name this place")
            elif similarity < weights.borrow_name_similarity:
                adjustment -= weights.name_mismatch_penalty
                match_reasons.append("Nearby reports refer to a different place")

    if borrowed:
        match_reasons.append("Community reports from an adjacent block")

    evidence = weights.evidence_boost_hotspot if is_hotspot else weights.evidence_boost
    camera_factor = weights.camera_factor_hotspot if is_hotspot else weights.camera_factor
    community_factor = weights.community_factor_hotspot if is_hotspot else weights.community_factor

    score = (
        type_bonus(config.kind_weight(place.kind), weights)
        + distance_score(distance, config.max_distance_m) * weights.distance_factor
        + camera_score(cams_nearby, weights.camera_saturation) * camera_factor
        + community_score(yes, no, signage, weights) * community_factor
        + (evidence if cams_nearby >= 1 else 0.0)
        + (evidence if yes >= 1 else 0.0)
        + adjustment
    )
    if conflict:
        score -= weights.conflict_penalty
    if is_hotspot and cams_nearby == 0 and yes < weights.weak_hotspot_min_yes:
        score -= weights.weak_hotspot_penalty

    reasons = match_reasons
    if is_hotspot:
        reasons.append(
            "Community confirmed camera presence"
            if yes >= weights.confirmed_yes
            else "Community reports camera presence"
        )
    else:
        reasons.append(f"Type: {place.kind.replace('_', ' ')}")

    if yes >= weights.confirmed_yes:
        reasons.append("High community confidence")
    elif yes >= weights.some_confirmation_yes:
        reasons.append("Some community confirmation")

    if cams_nearby >= weights.high_camera_density:
        reasons.append("High camera marker density nearby")
    elif cams_nearby >= weights.some_camera_density:
        reasons.append("Some camera markers nearby")
    else:
        reasons.append("Camera coverage uncertain (map data can be incomplete)")

    if signage > 0:
        reasons.append("Recording signage reported")
    if conflict:
        reasons.append("Conflicting community reports")

    return ScoredCandidate(
        place=place,
        score=round(score, 4),
        distance_meters=round(distance, 1),
        cell_id=cell,
        cameras_in_neighborhood=cams_nearby,
        cameras_in_cell=cams_in_cell,
        report_yes=yes,
        report_no=no,
        report_signage=signage,
        conflict=conflict,
        reasons=reasons,
        evidence_cell_id=report.cell_id if report else None,
        evidence_borrowed=borrowed,
        reported_place_name=report.reported_place_name if report else None,
        reported_place_kind=report.reported_place_kind if report else None,
        reported_place_id=report.reported_place_id if report else None,
        reported_place_source=report.reported_place_source if report else None,
        reported_place_address=report.reported_place_address if report else None,
        reported_details=report.reported_details if report else None,
        latest_summary=report.latest_summary if report else None,
        latest_signage_text=report.latest_signage_text if report else None,
    )


def score_all(candidates: list[PlaceCandidate], ctx: ScoringContext) -> list[ScoredCandidate]:
    """Score everything in range, highest score first."""
    scored = [s for s in (score_candidate(c, ctx) for c in candidates) if s is not None]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored
