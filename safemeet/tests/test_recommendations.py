from __future__ import annotations

from unittest.mock import AsyncMock, patch

import h3
import pytest

from safemeet.recommendations.geo import distance_m
from safemeet.recommendations.intents import REAL_PLACE_KINDS
from safemeet.recommendations.retrieval import NOTE_HOTSPOTS_ONLY, NOTE_NOTHING_ENABLED
from safemeet.recommendations.scoring import normalize_name
from safemeet.tests.conftest import ORIGIN, offset

FIRST_DATE_MAX = 5000


def _place(pid, kind, name, north_m=0.0, east_m=0.0):
    lat, lon = offset(north_m=north_m, east_m=east_m)
    return {"id": pid, "kind": kind, "name": name, "lat": lat, "lon": lon}


def _seed(sources):
    sources.places = [
        _place("osm/1", "cafe", "Blue Door Cafe", north_m=200.0),
        _place("osm/2", "mall", "Blue Door Cafe", north_m=260.0),
        _place("osm/3", "library", "Central Library", east_m=1500.0),
        _place("osm/4", "park", "City Park", north_m=20000.0),
        _place("osm/5", "cafe", "Night Owl", north_m=-3000.0),
    ]
    cam_lat, cam_lon = offset(north_m=200.0)
    sources.points = [{"lat": cam_lat, "lon": cam_lon}] * 3

    parent = h3.cell_to_parent(h3.latlng_to_cell(*offset(east_m=-1000.0), 10), 9)
    first, second = sorted(h3.cell_to_children(parent, 10))[:2]
    blue_door_cell = h3.latlng_to_cell(cam_lat, cam_lon, 10)
    sources.cells = [
        {"h3_index": first, "camera_present_count": 3},
        {"h3_index": second, "camera_present_count": 3, "camera_absent_count": 1},
        {"h3_index": blue_door_cell, "camera_present_count": 1, "reported_place_name": "Blue Door Cafe"},
    ]
    return parent


def _recommend(api, **body):
    payload = {"text": "coffee date", "lat": ORIGIN[0], "lon": ORIGIN[1], **body}
    resp = api.post("/api/recommend", json=payload)
    assert resp.status_code == 200
    return resp.json()


def test_health(api):
    resp = api.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ── Request validation ───────────────────────────────────────────────────


@pytest.mark.parametrize("body", [
    {"text": "coffee"},
    {"lat": ORIGIN[0]},
    {"lat": "north", "lon": ORIGIN[1]},
    {"lat": None, "lon": ORIGIN[1]},
    {"lat": True, "lon": ORIGIN[1]},
    {"lat": 91, "lon": 0},
    {"lat": 0, "lon": -180.5},
    [ORIGIN[0], ORIGIN[1]],
])
def test_bad_coordinates_rejected(api, sources, body):
    resp = api.post("/api/recommend", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"error": "bad_lat_lon"}
    assert sources.requests == []


@pytest.mark.parametrize("content", [b"not json", b"", b'{"lat": NaN, "lon": 0}', b'{"lat": 0, "lon": Infinity}'])
def test_unparseable_or_non_finite_rejected(api, content):
    resp = api.post("/api/recommend", content=content, headers={"content-type": "application/json"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "bad_lat_lon"}


def test_numeric_strings_accepted(api):
    body = _recommend(api, lat=str(ORIGIN[0]), lon=str(ORIGIN[1]))
    assert body["intent"] == "first_date"


@pytest.mark.parametrize("max_results,expected_cap", [("lots", 5), (0, 5), (-3, 1), (500, 30)])
def test_max_results_coerced(api, sources, max_results, expected_cap):
    sources.places = [_place(f"osm/{i}", "cafe", f"Cafe {i}", north_m=50.0 * i) for i in range(40)]

    body = _recommend(api, maxResults=max_results)

    assert len(body["results"]) == expected_cap


# ── Ranking ──────────────────────────────────────────────────────────────


def test_response_shape(api, sources):
    _seed(sources)

    body = _recommend(api)

    assert body["intent"] == "first_date"
    assert body["intentLabel"] == "First date"
    assert len(body["bbox"].split(",")) == 4
    meta = body["meta"]
    assert meta["placesFetched"] == 5
    assert meta["camerasFetched"] == 3
    assert meta["reportCellsFetched"] == 3
    assert meta["hotspotCandidates"] == 1
    assert meta["communityEnabled"] is True
    assert meta["maxHotspots"] == 2
    assert meta["reranked"] is False
    assert meta["scoringVersion"]
    first = body["results"][0]
    assert {"place", "score", "distanceMeters", "cellId", "camerasInNeighborhood", "reasons"} <= set(first)


def test_result_invariants(api, sources):
    _seed(sources)

    body = _recommend(api, maxResults=10)
    results = body["results"]
    ids = [r["place"]["id"] for r in results]

    assert len(results) <= 10
    assert len(set(ids)) == len(ids)
    assert "osm/4" not in ids
    assert all(r["distanceMeters"] <= FIRST_DATE_MAX * 1.05 for r in results)
    hotspots = [r for r in results if r["place"]["kind"] == "community_hotspot"]
    assert len(hotspots) <= body["meta"]["maxHotspots"]
    for i, a in enumerate(results):
        for b in results[i + 1:]:
            if normalize_name(a["place"]["name"]) == normalize_name(b["place"]["name"]):
                pa, pb = a["place"], b["place"]
                assert distance_m(pa["lat"], pa["lon"], pb["lat"], pb["lon"]) > 180


def test_hotspot_then_evidence_order(api, sources):
    parent = _seed(sources)

    results = _recommend(api, maxResults=4)["results"]

    # osm/2 is picked, then dropped as a same-name neighbor of osm/1
    assert [r["place"]["id"] for r in results] == [f"community/{parent}", "osm/1", "osm/3"]
    blue_door = results[1]
    assert blue_door["camerasInNeighborhood"] == 3
    assert blue_door["reportYes"] == 1
    assert "Community reports name this place" in blue_door["reasons"]


def test_hotspots_only_when_real_kinds_excluded(api, sources):
    parent = _seed(sources)

    body = _recommend(api, text="meet up", excludeKinds=list(REAL_PLACE_KINDS))

    assert body["intent"] == "general_meetup"
    assert body["note"] == NOTE_HOTSPOTS_ONLY
    assert body["meta"]["allowedKinds"] == []
    assert [r["place"]["id"] for r in body["results"]] == [f"community/{parent}"]
    assert "/api/places" not in sources.paths()


def test_nothing_enabled(api, sources):
    _seed(sources)

    body = _recommend(api, excludeKinds=[*REAL_PLACE_KINDS, "community_hotspot", "not-a-kind"])

    assert body["results"] == []
    assert body["note"] == NOTE_NOTHING_ENABLED
    assert body["meta"]["communityEnabled"] is False


def test_failing_source_still_answers(api, sources):
    _seed(sources)
    sources.failing = {"points", "cells"}

    body = _recommend(api)

    assert body["meta"]["camerasFetched"] == 0
    assert body["meta"]["hotspotCandidates"] == 0
    assert body["results"]


def test_rerank_reorders_results(api, sources):
    _seed(sources)
    answer = (["osm/5", "osm/1"], {"osm/5": "Quiet late-night cafe."})

    with patch("safemeet.recommendations.rerank.rank_and_explain", new=AsyncMock(return_value=answer)):
        body = _recommend(api, maxResults=5)

    ids = [r["place"]["id"] for r in body["results"]]
    assert body["meta"]["reranked"] is True
    assert ids[:2] == ["osm/5", "osm/1"]
    assert len(ids) == 4
    assert body["results"][0]["rerankReason"] == "Quiet late-night cafe."


def test_unexpected_error_fails_open_uncached(api, sources, result_cache):
    _seed(sources)

    with patch("safemeet.recommendations.retrieval.score_all", side_effect=RuntimeError("boom")):
        body = _recommend(api)

    assert body == {"error": "boom", "intent": "first_date"}
    assert result_cache.stats()["size"] == 0
    assert "results" in _recommend(api)
