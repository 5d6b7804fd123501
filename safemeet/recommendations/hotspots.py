"""
Community hotspots.

Report cells arrive at the fine scoring resolution. Cells with enough
"camera present" reports are grouped under their parent cell one level
coarser, and each group becomes one synthetic ``community_hotspot`` place.
The hotspot is pinned to the center of the group's strongest child cell so
the marker sits on the concrete evidence, and so scoring the hotspot hits
that same child cell.
"""
from __future__ import annotations

import logging

import pandas as pd

from .geo import cell_center, cell_to_parent, distance_m
from .intents import HOTSPOT_KIND
from .models import PlaceCandidate, ReportCellAggregate

logger = logging.getLogger(__name__)

MIN_HOTSPOT_YES = 2
CONFIRMED_HOTSPOT_YES = 5
DISTANCE_SLACK = 1.05

CONFIRMED_LABEL = "Community confirmed camera area"
REPORTED_LABEL = "Community reported camera area"


def hotspot_id(parent_cell: str) -> str:
    return f"community/{parent_cell}"


def build_hotspots(
    cells: list[ReportCellAggregate],
    origin_lat: float,
    origin_lon: float,
    max_distance_m: float,
    parent_resolution: int,
) -> list[PlaceCandidate]:
    """
    Merge report cells into hotspot candidates.

    Within a group the best child is the one with the highest yes count.
    Equal yes counts keep whichever child came first in ``cells``.
    """
    rows = [
        {"cell_id": c.cell_id, "yes": c.yes_count, "no": c.no_count, "name": c.reported_place_name}
        for c in cells
        if c.yes_count >= MIN_HOTSPOT_YES
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    df["parent"] = df["cell_id"].map(lambda cell: cell_to_parent(cell, parent_resolution))

    grouped = df.groupby("parent", sort=False)
    totals = grouped[["yes", "no"]].sum()
    # idxmax keeps the first row on ties
    best = df.loc[grouped["yes"].idxmax()].set_index("parent")

    hotspots: list[PlaceCandidate] = []
    for parent, total in totals.iterrows():
        child = best.loc[parent]
        lat, lon = cell_center(child["cell_id"])
        if distance_m(origin_lat, origin_lon, lat, lon) > max_distance_m * DISTANCE_SLACK:
            continue

        name = child["name"] if isinstance(child["name"], str) and child["name"] else None
        if name is None:
            name = CONFIRMED_LABEL if total["yes"] >= CONFIRMED_HOTSPOT_YES else REPORTED_LABEL

        hotspots.append(PlaceCandidate(
            id=hotspot_id(parent),
            kind=HOTSPOT_KIND,
            name=name,
            lat=lat,
            lon=lon,
        ))

    logger.debug("Built %d hotspots from %d qualifying report cells", len(hotspots), len(rows))
    return hotspots
