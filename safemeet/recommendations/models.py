from __future__ import annotations

import math
from typing import Any

import h3
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .intents import ALL_PLACE_KINDS

DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_CAP = 30
MAX_TEXT_CHARS = 800


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _finite(value: Any) -> float:
    try:
        number = float(value)
    except TypeError:
        raise ValueError("must be a number") from None
    if not math.isfinite(number):
        raise ValueError("must be a finite number")
    return number


def _count(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if math.isfinite(number) and number > 0 else 0


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ── Request ──────────────────────────────────────────────────────────────


class RecommendRequest(CamelModel):
    text: str = ""
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    max_results: int = DEFAULT_MAX_RESULTS
    exclude_kinds: list[str] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def _truncate_text(cls, value: Any) -> str:
        return str(value if value is not None else "")[:MAX_TEXT_CHARS]

    @field_validator("lat", "lon", mode="before")
    @classmethod
    def _finite_coordinate(cls, value: Any) -> float:
        if isinstance(value, bool):
            raise ValueError("coordinate must be a number")
        return _finite(value)

    @field_validator("max_results", mode="before")
    @classmethod
    def _clamp_max_results(cls, value: Any) -> int:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_RESULTS
        if not math.isfinite(number) or number == 0:
            return DEFAULT_MAX_RESULTS
        return max(1, min(MAX_RESULTS_CAP, int(number)))

    @field_validator("exclude_kinds", mode="before")
    @classmethod
    def _known_kinds(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return sorted({str(k) for k in value if str(k) in ALL_PLACE_KINDS})


# ── Collaborator payloads ────────────────────────────────────────────────


class PlaceCandidate(CamelModel):
    id: str = Field(..., min_length=1)
    kind: str
    name: str | None = None
    lat: float
    lon: float

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        if value not in ALL_PLACE_KINDS:
            raise ValueError(f"unknown place kind: {value}")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _clean_name(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("lat", "lon", mode="before")
    @classmethod
    def _finite_coordinate(cls, value: Any) -> float:
        return _finite(value)


class CameraPoint(CamelModel):
    lat: float
    lon: float

    @field_validator("lat", "lon", mode="before")
    @classmethod
    def _finite_coordinate(cls, value: Any) -> float:
        return _finite(value)


class ReportCellAggregate(CamelModel):
    """One populated grid cell of community reports, as served by storage."""

    cell_id: str = Field(..., min_length=1, validation_alias=AliasChoices("h3_index", "cellId", "cell_id"))
    yes_count: int = Field(0, validation_alias=AliasChoices("camera_present_count", "yesCount", "yes_count"))
    no_count: int = Field(0, validation_alias=AliasChoices("camera_absent_count", "noCount", "no_count"))
    signage_count: int = Field(0, validation_alias=AliasChoices("signage_count", "signageCount"))
    latest_summary: str | None = Field(None, validation_alias=AliasChoices("summary", "latestSummary", "latest_summary"))
    latest_signage_text: str | None = Field(
        None, validation_alias=AliasChoices("signage_text", "latestSignageText", "latest_signage_text"),
    )
    reported_place_name: str | None = Field(
        None, validation_alias=AliasChoices("reported_place_name", "reportedPlaceName"),
    )
    reported_place_kind: str | None = Field(
        None, validation_alias=AliasChoices("reported_place_kind", "reportedPlaceKind"),
    )
    reported_place_id: str | None = Field(
        None, validation_alias=AliasChoices("reported_place_id", "reportedPlaceId"),
    )
    reported_place_source: str | None = Field(
        None, validation_alias=AliasChoices("reported_place_source", "reportedPlaceSource"),
    )
    reported_place_address: str | None = Field(
        None, validation_alias=AliasChoices("reported_place_address", "reportedPlaceAddress"),
    )
    reported_details: str | None = Field(
        None, validation_alias=AliasChoices("reported_details", "reportedDetails"),
    )

    @field_validator("cell_id")
    @classmethod
    def _valid_cell(cls, value: str) -> str:
        if not h3.is_valid_cell(value):
            raise ValueError(f"not a grid cell: {value}")
        return value

    @field_validator("yes_count", "no_count", "signage_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return _count(value)

    @field_validator(
        "latest_summary",
        "latest_signage_text",
        "reported_place_name",
        "reported_place_kind",
        "reported_place_id",
        "reported_place_source",
        "reported_place_address",
        "reported_details",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @property
    def evidence_weight(self) -> int:
        return self.yes_count + self.no_count + self.signage_count


# ── Scored output ────────────────────────────────────────────────────────


class ScoredCandidate(CamelModel):
    place: PlaceCandidate
    score: float
    distance_meters: float
    cell_id: str
    cameras_in_neighborhood: int = 0
    cameras_in_cell: int = 0
    report_yes: int = 0
    report_no: int = 0
    report_signage: int = 0
    conflict: bool = False
    reasons: list[str] = Field(default_factory=list)

    # Identity of the report cell the evidence came from
    evidence_cell_id: str | None = None
    evidence_borrowed: bool = False
    reported_place_name: str | None = None
    reported_place_kind: str | None = None
    reported_place_id: str | None = None
    reported_place_source: str | None = None
    reported_place_address: str | None = None
    reported_details: str | None = None
    latest_summary: str | None = None
    latest_signage_text: str | None = None

    rerank_reason: str | None = None

    @property
    def is_hotspot(self) -> bool:
        return self.place.kind == "community_hotspot"


class RecommendMeta(CamelModel):
    places_fetched: int
    cameras_fetched: int
    report_cells_fetched: int
    hotspot_candidates: int
    scored_candidates: int
    allowed_kinds: list[str]
    community_enabled: bool
    max_hotspots: int | None = None
    reranked: bool = False
    scoring_version: str


class RecommendResponse(CamelModel):
    intent: str
    intent_label: str
    bbox: str
    results: list[ScoredCandidate]
    meta: RecommendMeta
    note: str


class RerankResult(BaseModel):
    order: list[str] = Field(default_factory=list)
    reasons: dict[str, str] = Field(default_factory=dict)
