"""
Runtime configuration for the analytics dashboard.

Values resolve as ``defaults <- overrides dict <- environment``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

from .models import DateRange


class TimeframeKey(str, Enum):
    LAST_30_DAYS = "30"
    LAST_60_DAYS = "60"
    LAST_90_DAYS = "90"
    ALL_TIME = "all"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Timeframe:
    key: TimeframeKey
    label: str
    days: Optional[int]


TIMEFRAMES: Dict[TimeframeKey, Timeframe] = {
    TimeframeKey.LAST_30_DAYS: Timeframe(TimeframeKey.LAST_30_DAYS, "30 Days", 30),
    TimeframeKey.LAST_60_DAYS: Timeframe(TimeframeKey.LAST_60_DAYS, "60 Days", 60),
    TimeframeKey.LAST_90_DAYS: Timeframe(TimeframeKey.LAST_90_DAYS, "90 Days", 90),
    TimeframeKey.ALL_TIME: Timeframe(TimeframeKey.ALL_TIME, "All Time", None),
    TimeframeKey.CUSTOM: Timeframe(TimeframeKey.CUSTOM, "Custom", None),
}


def resolve_date_range(
    key: TimeframeKey | str,
    custom_start: Optional[datetime] = None,
    custom_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> DateRange:
    """
    Turn a timeframe selection into concrete bounds.

    ``all`` is unbounded on both sides; ``custom`` keeps the given start and
    defaults the end to ``now``. Raises ``ValueError`` for unknown keys.
    """

    timeframe = TIMEFRAMES[TimeframeKey(key)]
    now = now or datetime.now(timezone.utc)
    if timeframe.key is TimeframeKey.CUSTOM:
        return DateRange(start=custom_start, end=custom_end or now)
    if timeframe.days is None:
        return DateRange()
    return DateRange(start=now - timedelta(days=timeframe.days), end=now)


class DatabaseConfig(BaseModel):
    url: Optional[str] = None


class ExportConfig(BaseModel):
    output_dir: str = os.path.expanduser("~/Downloads")
    company_name: str = "ConveyMed"
    filename_prefix: str = "conveymed"


class DashboardConfig(BaseModel):
    default_timeframe: TimeframeKey = TimeframeKey.LAST_30_DAYS
    top_n: int = 10
    top_posts: int = 5


class AnalyticsConfig(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    export: ExportConfig = ExportConfig()
    dashboard: DashboardConfig = DashboardConfig()
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, overrides: Optional[Mapping[str, Any]] = None) -> "AnalyticsConfig":
        configurable = dict(overrides or {})
        defaults = cls()

        db_cfg = configurable.get("database", {})
        export_cfg = configurable.get("export", {})
        dash_cfg = configurable.get("dashboard", {})

        return cls(
            database=DatabaseConfig(
                url=os.getenv("CONVEYMED_DATABASE_URL", db_cfg.get("url", defaults.database.url)),
            ),
            export=ExportConfig(
                output_dir=os.getenv(
                    "CONVEYMED_EXPORT_DIR", export_cfg.get("output_dir", defaults.export.output_dir)
                ),
                company_name=os.getenv(
                    "CONVEYMED_COMPANY_NAME", export_cfg.get("company_name", defaults.export.company_name)
                ),
                filename_prefix=export_cfg.get("filename_prefix", defaults.export.filename_prefix),
            ),
            dashboard=DashboardConfig(
                default_timeframe=os.getenv(
                    "CONVEYMED_DEFAULT_TIMEFRAME",
                    dash_cfg.get("default_timeframe", defaults.dashboard.default_timeframe),
                ),
                top_n=_env_int("CONVEYMED_TOP_N", dash_cfg.get("top_n", defaults.dashboard.top_n)),
                top_posts=dash_cfg.get("top_posts", defaults.dashboard.top_posts),
            ),
            log_level=os.getenv("CONVEYMED_LOG_LEVEL", configurable.get("log_level", defaults.log_level)),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
