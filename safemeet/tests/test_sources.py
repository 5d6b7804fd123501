import asyncio

import h3
import httpx

from safemeet.recommendations.geo import bbox_around
from safemeet.recommendations.sources import fetch_candidates
from safemeet.tests.conftest import ORIGIN, FakeSources, offset

BBOX = bbox_around(ORIGIN[0], ORIGIN[1], 5000)
CELL = h3.latlng_to_cell(*offset(north_m=300.0), 10)


def _fetch(sources: FakeSources, kinds=("cafe", "police"), timeout=2.0):
    async def run():
        async with sources.client() as client:
            return await fetch_candidates(client, BBOX, kinds, report_resolution=10, timeout=timeout)

    return asyncio.run(run())


def _seed(sources: FakeSources) -> None:
    lat, lon = offset(north_m=200.0)
    sources.places = [
        {"id": 1, "kind": "cafe", "name": " Blue Door Cafe ", "lat": lat, "lon": lon},
        {"id": "bad-kind", "kind": "casino", "name": "Nope", "lat": lat, "lon": lon},
        {"id": "no-coords", "kind": "police", "name": "Nope"},
        "not a row",
    ]
    sources.points = [{"lat": lat, "lon": lon}, {"lat": "x", "lon": lon}]
    sources.cells = [
        {"h3_index": CELL, "camera_present_count": "3", "camera_absent_count": None, "summary": "  "},
        {"h3_index": "not-a-cell", "camera_present_count": 4},
    ]


def test_fetches_and_coerces_rows():
    sources = FakeSources()
    _seed(sources)

    bundle = _fetch(sources)

    assert [p.id for p in bundle.places] == ["1"]
    assert bundle.places[0].name == "Blue Door Cafe"
    assert len(bundle.cameras) == 1
    assert len(bundle.report_cells) == 1
    cell = bundle.report_cells[0]
    assert (cell.cell_id, cell.yes_count, cell.no_count, cell.latest_summary) == (CELL, 3, 0, None)


def test_request_parameters():
    sources = FakeSources()
    _fetch(sources, kinds=["police", "cafe"])

    by_path = {r.url.path: r.url.params for r in sources.requests}
    assert by_path["/api/places"]["kinds"] == "police,cafe"
    assert by_path["/api/places"]["bbox"] == BBOX.to_param()
    assert by_path["/api/report"]["res"] == "10"
    assert by_path["/api/cameras"]["bbox"] == BBOX.to_param()


def test_failing_source_is_empty():
    sources = FakeSources()
    _seed(sources)
    sources.failing = {"points"}

    bundle = _fetch(sources)

    assert bundle.cameras == []
    assert len(bundle.places) == 1
    assert len(bundle.report_cells) == 1


def test_places_skipped_without_kinds():
    sources = FakeSources()
    bundle = _fetch(sources, kinds=[])

    assert bundle.places == []
    assert "/api/places" not in sources.paths()


def test_slow_source_times_out():
    sources = FakeSources()
    _seed(sources)

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/cameras":
            await asyncio.sleep(5)
        return sources.handler(request)

    async def run():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport, base_url="http://sources.test") as client:
            return await fetch_candidates(client, BBOX, ["cafe"], report_resolution=10, timeout=0.2)

    bundle = asyncio.run(run())

    assert bundle.cameras == []
    assert len(bundle.places) == 1
    assert len(bundle.report_cells) == 1


def test_bbox_param_format():
    assert bbox_around(0.0, 0.0, 0.0).to_param() == "0,0,0,0"
    s, w, n, e = (float(v) for v in BBOX.to_param().split(","))
    assert s < ORIGIN[0] < n
    assert w < ORIGIN[1] < e
