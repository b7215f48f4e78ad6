from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_SEED_DIR = Path(__file__).resolve().parent.parent / "data" / "seed"


@dataclass(frozen=True)
class SearchConfig:
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DISCOVERY_DATA_DIR") or _SEED_DIR)
    )
    cache_ttl: int = 300  # seconds
    distance_unit: str = os.getenv("DISCOVERY_DISTANCE_UNIT", "mi")
    default_limit: int = 20
    page_size: int = 12


DEFAULT_SEARCH_CONFIG = SearchConfig()
