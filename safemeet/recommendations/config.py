from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime settings for the recommendation engine.

    ``sources_base_url`` points at the service that serves places, camera
    points and report cells. When empty, the base URL of the incoming
    request is used.
    """

    sources_base_url: str = os.getenv("SAFEMEET_SOURCES_URL", "")
    fetch_timeout: float = float(os.getenv("SAFEMEET_FETCH_TIMEOUT", "12"))
    cache_ttl: float = 60.0
    scoring_resolution: int = 10
    hotspot_resolution: int = 9
    rerank_max_candidates: int = 25
    dedupe_radius_m: float = 180.0
    cache_coord_decimals: int = 4


DEFAULT_ENGINE_CONFIG = EngineConfig()
