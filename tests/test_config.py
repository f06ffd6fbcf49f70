from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conveymed_analytics.config import AnalyticsConfig, TimeframeKey, resolve_date_range

NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)

ENV_KEYS = (
    "CONVEYMED_DATABASE_URL",
    "CONVEYMED_EXPORT_DIR",
    "CONVEYMED_COMPANY_NAME",
    "CONVEYMED_DEFAULT_TIMEFRAME",
    "CONVEYMED_TOP_N",
    "CONVEYMED_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    cfg = AnalyticsConfig.from_env()
    assert cfg.database.url is None
    assert cfg.export.company_name == "ConveyMed"
    assert cfg.dashboard.default_timeframe is TimeframeKey.LAST_30_DAYS
    assert cfg.dashboard.top_n == 10
    assert cfg.log_level == "INFO"


def test_overrides_then_environment(monkeypatch, tmp_path):
    overrides = {
        "database": {"url": "sqlite://"},
        "export": {"output_dir": "/srv/exports", "filename_prefix": "acme"},
        "dashboard": {"top_n": 5, "top_posts": 3},
    }
    monkeypatch.setenv("CONVEYMED_EXPORT_DIR", str(tmp_path))
    monkeypatch.setenv("CONVEYMED_DEFAULT_TIMEFRAME", "90")

    cfg = AnalyticsConfig.from_env(overrides)

    assert cfg.database.url == "sqlite://"
    assert cfg.export.output_dir == str(tmp_path)
    assert cfg.export.filename_prefix == "acme"
    assert cfg.dashboard.default_timeframe is TimeframeKey.LAST_90_DAYS
    assert (cfg.dashboard.top_n, cfg.dashboard.top_posts) == (5, 3)


def test_bad_top_n_env_falls_back(monkeypatch):
    monkeypatch.setenv("CONVEYMED_TOP_N", "lots")
    assert AnalyticsConfig.from_env({"dashboard": {"top_n": 7}}).dashboard.top_n == 7
    monkeypatch.setenv("CONVEYMED_TOP_N", "3")
    assert AnalyticsConfig.from_env().dashboard.top_n == 3


@pytest.mark.parametrize("key, days", [("30", 30), ("60", 60), (TimeframeKey.LAST_90_DAYS, 90)])
def test_rolling_windows(key, days):
    window = resolve_date_range(key, now=NOW)
    assert window.end == NOW
    assert window.start == NOW - timedelta(days=days)


def test_all_time_is_unbounded():
    window = resolve_date_range("all", now=NOW)
    assert window.unbounded
    assert window.describe() == "All Time"


def test_custom_range_defaults_end_to_now():
    start = NOW - timedelta(days=3)
    window = resolve_date_range("custom", custom_start=start, now=NOW)
    assert (window.start, window.end) == (start, NOW)

    end = NOW - timedelta(days=1)
    assert resolve_date_range("custom", start, end, now=NOW).end == end


def test_unknown_timeframe():
    with pytest.raises(ValueError):
        resolve_date_range("7", now=NOW)
