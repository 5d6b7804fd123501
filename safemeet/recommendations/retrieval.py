"""
Recommendation pipeline.

request → intent → cache lookup → concurrent source fetch → hotspots →
scoring → identity dedupe → capped selection → nearby-name dedupe →
advisory rerank → cache store → response payload.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from .cache import ResultCache, make_cache_key
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .geo import bbox_around
from .hotspots import build_hotspots
from .intents import HOTSPOT_KIND, IntentConfig, classify_intent, get_intent_config
from .models import PlaceCandidate, RecommendMeta, RecommendRequest, RecommendResponse
from .rerank import rerank_candidates
from .scoring import ScoringContext, score_all
from .selection import dedupe_by_identity, dedupe_nearby_names, select
from .sources import fetch_candidates

logger = logging.getLogger(__name__)

NOTE_DEFAULT = (
    "Recommendations prioritize meetup-friendly places. "
    "Community hotspots are capped so they do not dominate."
)
NOTE_HOTSPOTS_ONLY = "Community-only mode: showing community hotspot candidates."
NOTE_NOTHING_ENABLED = "All place kinds excluded and community disabled, returning no results."


async def get_recommendations(
    request: RecommendRequest,
    open_client: Callable[[], httpx.AsyncClient],
    cache: ResultCache,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> dict[str, Any]:
    """
    Build the JSON-ready response for one request.

    Cached payloads are returned as stored. Unexpected errors while ranking
    come back as ``{"error": ..., "intent": ...}`` and are not cached.
    """
    start_time = time.time()
    intent = classify_intent(request.text)
    intent_config = get_intent_config(intent)
    excluded = frozenset(request.exclude_kinds)

    cache_key = make_cache_key(
        intent,
        request.lat,
        request.lon,
        request.max_results,
        excluded,
        request.text,
        decimals=config.cache_coord_decimals,
    )
    cached = cache.get(cache_key)
    if cached is not None:
        logger.info("Cache hit for %s", cache_key)
        return cached

    try:
        payload = await _recommend(request, intent_config, excluded, open_client, config, llm_config)
    except Exception as exc:
        logger.exception("Recommendation failed for intent %s", intent.value)
        return {"error": str(exc), "intent": intent.value}

    cache.set(cache_key, payload, config.cache_ttl)

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    logger.info(
        "Recommended %d of %d candidates for %s in %.1fms",
        len(payload["results"]),
        payload["meta"]["scoredCandidates"],
        intent.value,
        elapsed_ms,
    )
    return payload


async def _recommend(
    request: RecommendRequest,
    intent_config: IntentConfig,
    excluded: frozenset[str],
    open_client: Callable[[], httpx.AsyncClient],
    config: EngineConfig,
    llm_config: LLMConfig,
) -> dict[str, Any]:
    bbox = bbox_around(request.lat, request.lon, intent_config.search_radius_m)
    community_enabled = HOTSPOT_KIND not in excluded
    allowed_kinds = [k for k in intent_config.query_kinds if k not in excluded]

    # --- Fetch ---
    async with open_client() as client:
        bundle = await fetch_candidates(
            client,
            bbox,
            allowed_kinds,
            report_resolution=config.scoring_resolution,
            timeout=config.fetch_timeout,
        )

    # --- Hotspots ---
    hotspots: list[PlaceCandidate] = []
    if community_enabled:
        hotspots = build_hotspots(
            bundle.report_cells,
            request.lat,
            request.lon,
            intent_config.max_distance_m,
            parent_resolution=config.hotspot_resolution,
        )

    # --- Scoring ---
    ctx = ScoringContext.build(
        request.lat,
        request.lon,
        intent_config,
        config.scoring_resolution,
        request.text,
        excluded,
        bundle.cameras,
        bundle.report_cells,
    )
    scored = score_all(bundle.places + hotspots, ctx)

    # --- Selection ---
    ranked = dedupe_by_identity(scored)
    selection = select(
        ranked,
        request.max_results,
        hotspots_enabled=community_enabled,
        real_kinds_available=bool(allowed_kinds),
    )
    items = dedupe_nearby_names(selection.items, config.dedupe_radius_m)

    # --- Advisory rerank ---
    items, reranked = await rerank_candidates(
        items,
        request.text,
        intent_config.label,
        (request.lat, request.lon),
        max_candidates=config.rerank_max_candidates,
        config=llm_config,
    )

    if selection.hotspots_only:
        note = NOTE_HOTSPOTS_ONLY if community_enabled else NOTE_NOTHING_ENABLED
    else:
        note = NOTE_DEFAULT

    response = RecommendResponse(
        intent=intent_config.intent.value,
        intent_label=intent_config.label,
        bbox=bbox.to_param(),
        results=items,
        meta=RecommendMeta(
            places_fetched=len(bundle.places),
            cameras_fetched=len(bundle.cameras),
            report_cells_fetched=len(bundle.report_cells),
            hotspot_candidates=len(hotspots),
            scored_candidates=len(scored),
            allowed_kinds=allowed_kinds,
            community_enabled=community_enabled,
            max_hotspots=selection.max_hotspots,
            reranked=reranked,
            scoring_version=intent_config.scoring.version,
        ),
        note=note,
    )
    return response.model_dump(mode="json", by_alias=True)
