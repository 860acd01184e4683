"""Process-level runtime settings read from the environment.

This module is the only place that reads environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

PRODUCTION = "production"
DEFAULT_DATABASE_URL = "sqlite:///payouts.db"


@dataclass(frozen=True)
class RuntimeSettings:
    environment: str = "development"
    cron_secret: str | None = None
    database_url: str = DEFAULT_DATABASE_URL
    config_dir: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION


def load_runtime_settings(environ: Mapping[str, str] | None = None) -> RuntimeSettings:
    """Build settings from ``APP_ENV``, ``CRON_SECRET``, ``DATABASE_URL``
    and ``PAYOUT_CONFIG_DIR``.  Empty values count as unset."""
    env = os.environ if environ is None else environ
    return RuntimeSettings(
        environment=(env.get("APP_ENV") or "development").strip().lower(),
        cron_secret=env.get("CRON_SECRET") or None,
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        config_dir=env.get("PAYOUT_CONFIG_DIR") or None,
    )
