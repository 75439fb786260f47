"""Runtime settings, read from NEPHROTRENDS_* environment variables."""
from __future__ import annotations

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "NEPHROTRENDS_"


class Settings(BaseModel):
    # KFRE baseline survival differs between the North American and the
    # pooled non-North American cohorts.
    kfre_region: Literal["north_american", "non_north_american"] = "north_american"
    cache_size: int = Field(default=128, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment; raises ValidationError on bad values."""
    env = os.environ if environ is None else environ
    values = {}
    for name in Settings.model_fields:
        raw = env.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None or raw == "":
            continue
        raw = raw.strip()
        values[name] = raw.upper() if name == "log_level" else raw.lower()
    return Settings(**values)
