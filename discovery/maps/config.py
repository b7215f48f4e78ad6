from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class MapsConfig:
    google_maps_api_key: str = os.getenv("GOOGLE_MAPS_API_KEY", "")


DEFAULT_MAPS_CONFIG = MapsConfig()
