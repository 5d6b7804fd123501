from __future__ import annotations

import math
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from safemeet.app import app, get_sources_client
from safemeet.recommendations.cache import InMemoryResultCache, get_result_cache

ORIGIN = (39.7392, -104.9903)
METERS_PER_DEG = 6_371_000.0 * math.pi / 180


def offset(north_m: float = 0.0, east_m: float = 0.0) -> tuple[float, float]:
    lat = ORIGIN[0] + north_m / METERS_PER_DEG
    lon = ORIGIN[1] + east_m / (METERS_PER_DEG * math.cos(math.radians(ORIGIN[0])))
    return lat, lon


class FakeSources:
    """In-process stand-in for the places, cameras and report endpoints."""

    ROUTES = {"/api/places": "places", "/api/cameras": "points", "/api/report": "cells"}

    def __init__(self) -> None:
        self.places: list[dict] = []
        self.points: list[dict] = []
        self.cells: list[dict] = []
        self.failing: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.clients_opened = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = self.ROUTES.get(request.url.path)
        if key is None:
            return httpx.Response(404, json={"error": "not_found"})
        if key in self.failing:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={key: getattr(self, key)})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        self.clients_opened += 1
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            base_url="http://sources.test",
        )


@pytest.fixture
def sources() -> FakeSources:
    return FakeSources()


@pytest.fixture
def result_cache() -> InMemoryResultCache:
    return InMemoryResultCache()


@pytest.fixture
def api(sources, result_cache):
    """TestClient wired to fake sources, a private cache and no LLM rerank."""
    app.dependency_overrides[get_sources_client] = lambda: sources.client
    app.dependency_overrides[get_result_cache] = lambda: result_cache
    with patch("safemeet.recommendations.rerank.rank_and_explain", new=AsyncMock(return_value=None)):
        yield TestClient(app)
    app.dependency_overrides.clear()
