"""
Candidate sources.

Three independent HTTP collaborators feed the engine: places, camera points
and report-cell aggregates. Each fetch coerces its payload into typed models
row by row and degrades to an empty list on any failure. ``fetch_candidates``
runs the three concurrently under one shared deadline.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .geo import BBox
from .models import CameraPoint, PlaceCandidate, ReportCellAggregate

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class CandidateBundle:
    places: list[PlaceCandidate] = field(default_factory=list)
    cameras: list[CameraPoint] = field(default_factory=list)
    report_cells: list[ReportCellAggregate] = field(default_factory=list)


def _coerce_rows(rows: Any, model: type[M]) -> list[M]:
    """Validate each row on its own; malformed rows are dropped."""
    if not isinstance(rows, list):
        return []
    out: list[M] = []
    dropped = 0
    for row in rows:
        if not isinstance(row, dict):
            dropped += 1
            continue
        try:
            out.append(model.model_validate(row))
        except ValidationError:
            dropped += 1
    if dropped:
        logger.debug("Dropped %d malformed %s rows", dropped, model.__name__)
    return out


async def _get_json(client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> dict:
    resp = await client.get(path, params=params)
    resp.raise_for_status()
    body = resp.json()
    return body if isinstance(body, dict) else {}


async def fetch_places(
    client: httpx.AsyncClient, bbox: BBox, kinds: Iterable[str],
) -> list[PlaceCandidate]:
    kinds = list(kinds)
    if not kinds:
        return []
    body = await _get_json(client, "/api/places", {"bbox": bbox.to_param(), "kinds": ",".join(kinds)})
    return _coerce_rows(body.get("places"), PlaceCandidate)


async def fetch_camera_points(client: httpx.AsyncClient, bbox: BBox) -> list[CameraPoint]:
    body = await _get_json(client, "/api/cameras", {"bbox": bbox.to_param()})
    return _coerce_rows(body.get("points"), CameraPoint)


async def fetch_report_cells(
    client: httpx.AsyncClient, bbox: BBox, resolution: int,
) -> list[ReportCellAggregate]:
    body = await _get_json(client, "/api/report", {"bbox": bbox.to_param(), "res": resolution})
    return _coerce_rows(body.get("cells"), ReportCellAggregate)


async def _or_empty(name: str, fetch: Callable[[], Awaitable[list]]) -> list:
    try:
        return await fetch()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.warning("Source %s failed, continuing without it", name, exc_info=True)
        return []


async def fetch_candidates(
    client: httpx.AsyncClient,
    bbox: BBox,
    kinds: Iterable[str],
    report_resolution: int,
    timeout: float,
) -> CandidateBundle:
    """
    Fan out to all three sources and wait at most ``timeout`` seconds.

    A source that errors or is still running at the deadline contributes an
    empty list. Nothing here raises for collaborator trouble.
    """
    kinds = list(kinds)
    tasks = {
        "places": asyncio.create_task(
            _or_empty("places", lambda: fetch_places(client, bbox, kinds)),
        ),
        "cameras": asyncio.create_task(
            _or_empty("cameras", lambda: fetch_camera_points(client, bbox)),
        ),
        "report_cells": asyncio.create_task(
            _or_empty("report_cells", lambda: fetch_report_cells(client, bbox, report_resolution)),
        ),
    }

    _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    results: dict[str, list] = {}
    for name, task in tasks.items():
        if task in pending:
            logger.warning("Source %s timed out after %.1fs", name, timeout)
            results[name] = []
        else:
            results[name] = task.result()

    return CandidateBundle(**results)
