"""
Geometry helpers and the H3 grid adapter.

Distances are great-circle (haversine) in meters. Grid operations wrap the
``h3`` v4 API so the rest of the engine only ever sees cell id strings.
"""
from __future__ import annotations

from dataclasses import dataclass

import h3
import numpy as np

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE_LAT = 111_320.0


def haversine_meters(lat1, lon1, lat2, lon2):
    """Great-circle distance. Accepts scalars or numpy arrays (broadcast)."""
    p1 = np.radians(lat1)
    p2 = np.radians(lat2)
    dphi = p2 - p1
    dlmb = np.radians(np.asarray(lon2) - np.asarray(lon1))
    h = np.sin(dphi / 2) ** 2 + np.cos(p1) * np.cos(p2) * np.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(h)))


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return float(haversine_meters(lat1, lon1, lat2, lon2))


@dataclass(frozen=True)
class BBox:
    south: float
    west: float
    north: float
    east: float

    def to_param(self) -> str:
        """``"s,w,n,e"`` with 6 decimals, the format the sources accept."""
        return ",".join(
            f"{round(v, 6):.6f}".rstrip("0").rstrip(".")
            for v in (self.south, self.west, self.north, self.east)
        )


def bbox_around(lat: float, lon: float, radius_m: float) -> BBox:
    lat_deg = radius_m / METERS_PER_DEGREE_LAT
    lon_deg = radius_m / (METERS_PER_DEGREE_LAT * float(np.cos(np.radians(lat))))
    return BBox(
        south=lat - lat_deg,
        west=lon - lon_deg,
        north=lat + lat_deg,
        east=lon + lon_deg,
    )


# ── Grid ─────────────────────────────────────────────────────────────────


def point_to_cell(lat: float, lon: float, resolution: int) -> str:
    return h3.latlng_to_cell(lat, lon, resolution)


def cell_to_parent(cell: str, resolution: int) -> str:
    """Ancestor at ``resolution``; a cell already that coarse is its own parent."""
    if h3.get_resolution(cell) <= resolution:
        return cell
    return h3.cell_to_parent(cell, resolution)


def cell_center(cell: str) -> tuple[float, float]:
    lat, lon = h3.cell_to_latlng(cell)
    return float(lat), float(lon)


def neighborhood(cell: str, k: int = 1) -> list[str]:
    """The cell itself plus every cell within ``k`` grid steps."""
    return list(h3.grid_disk(cell, k))
