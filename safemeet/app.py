from __future__ import annotations

import json
from typing import Callable

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .recommendations.cache import ResultCache, get_cache_stats, get_result_cache
from .recommendations.config import DEFAULT_ENGINE_CONFIG
from .recommendations.models import RecommendRequest
from .recommendations.retrieval import get_recommendations

app = FastAPI(title="Safe Meetup Recommendation API", version="1.0.0")


def get_sources_client(request: Request) -> Callable[[], httpx.AsyncClient]:
    """
    Factory for the places / cameras / report sources client.

    The client is only opened when a request misses the result cache.
    """
    base_url = DEFAULT_ENGINE_CONFIG.sources_base_url or str(request.base_url)

    def open_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, timeout=DEFAULT_ENGINE_CONFIG.fetch_timeout)

    return open_client


def _bad_lat_lon() -> JSONResponse:
    return JSONResponse({"error": "bad_lat_lon"}, status_code=400)


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/recommend")
async def recommend(
    request: Request,
    open_client: Callable[[], httpx.AsyncClient] = Depends(get_sources_client),
    cache: ResultCache = Depends(get_result_cache),
) -> JSONResponse:
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_lat_lon()
    if not isinstance(raw, dict):
        return _bad_lat_lon()

    # Every field except lat/lon is coerced, so any validation error is a coordinate error
    try:
        body = RecommendRequest.model_validate(raw)
    except ValidationError:
        return _bad_lat_lon()

    payload = await get_recommendations(body, open_client=open_client, cache=cache)
    return JSONResponse(payload, status_code=200)


# ── Ops endpoints ────────────────────────────────────────────────────────


@app.get("/cache/stats")
def cache_stats() -> dict:
    return get_cache_stats()
