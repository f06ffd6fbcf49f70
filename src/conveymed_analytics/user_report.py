"""
Flat per-user activity rows for the individual user report.

The column set is discovered from the rows of each run: one column per screen
name present in the screen views, one per active content category and one per
asset name a user touched. Two runs over different data produce different
columns.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .backend import AnalyticsBackend
from .formatting import display_name, round_half_up
from .models import Column, ColumnGroup, DateRange, Row, Scope, UserReport
from .queries import (
    fetch_active_categories,
    fetch_asset_events,
    fetch_distinct_screen_names,
    fetch_screen_views,
    fetch_sessions,
    fetch_user,
    fetch_users,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
PROFILE_COLUMNS = ("id", "first_name", "last_name", "email")
SESSION_COLUMNS = ("user_id", "duration_seconds")


def build_user_row(
    profile: Optional[Row],
    sessions: Sequence[Row],
    screen_views: Sequence[Row],
    asset_events: Sequence[Row],
    categories: Sequence[str],
    screen_names: Sequence[str],
) -> Tuple[Row, List[Tuple[str, int]]]:
    """
    Build one flat report row.

    Returns the row and the user's ``(asset_name, count)`` pairs sorted by
    name. Durations are in minutes; the average is taken over the already
    rounded total, as the dashboard displays it.
    """

    total_sessions = len(sessions)
    total_duration = sum(session.get("duration_seconds") or 0 for session in sessions)
    total_duration_min = round_half_up(total_duration / 60)
    avg_session_min = round_half_up(total_duration_min / total_sessions) if total_sessions else 0

    screen_counts: Dict[str, int] = defaultdict(int)
    for view in screen_views:
        screen_counts[view.get("screen_name")] += 1

    category_counts: Dict[str, int] = defaultdict(int)
    asset_counts: Dict[str, int] = defaultdict(int)
    for event in asset_events:
        category_counts[event.get("category") or UNCATEGORIZED] += 1
        asset_counts[event.get("asset_name") or "Unknown"] += 1
    asset_rows = sorted(asset_counts.items(), key=lambda item: item[0].casefold())

    row: Row = {
        "name": display_name(profile),
        "total_sessions": total_sessions,
        "total_duration_min": total_duration_min,
        "avg_session_min": avg_session_min,
    }
    for screen in screen_names:
        row[f"screen_{screen}"] = screen_counts.get(screen, 0)
    row["total_screen_views"] = len(screen_views)
    row["total_assets"] = len(asset_events)
    for category in categories:
        row[f"asset_{category}"] = category_counts.get(category, 0)
    for asset_name, count in asset_rows:
        row[f"assetname_{asset_name}"] = count
    return row, asset_rows


def build_report_columns(
    screen_names: Sequence[str],
    categories: Sequence[str],
    asset_names: Sequence[str] = (),
) -> List[Column]:
    columns = [
        Column("name", "Name"),
        Column("total_sessions", "Total Sessions"),
        Column("total_duration_min", "Duration (min)"),
        Column("avg_session_min", "Avg Session (min)"),
    ]
    columns.extend(Column(f"screen_{screen}", screen) for screen in screen_names)
    columns.append(Column("total_screen_views", "Screen Views Total"))
    columns.append(Column("total_assets", "Total Assets"))
    columns.extend(Column(f"asset_{category}", category) for category in categories)
    columns.extend(Column(f"assetname_{asset_name}", asset_name) for asset_name in asset_names)
    return columns


def build_report_groups(
    screen_names: Sequence[str],
    categories: Sequence[str],
    asset_names: Sequence[str] = (),
) -> List[ColumnGroup]:
    """Spans line up with :func:`build_report_columns` left to right."""

    groups = [
        ColumnGroup("Individual User Activity Report", 4),
        ColumnGroup("Screens Visited", len(screen_names) + 1),
        ColumnGroup("Categories", len(categories) + 1),
    ]
    if asset_names:
        groups.append(ColumnGroup("Asset Names", len(asset_names)))
    return groups


def fetch_user_list(backend: AnalyticsBackend, scope: Scope = None) -> List[Row]:
    """Users for the report picker, ordered by first name."""

    return fetch_users(backend, scope, columns=PROFILE_COLUMNS, order_by="first_name")


def fetch_user_report(backend: AnalyticsBackend, user_id: str, date_range: DateRange) -> Optional[Row]:
    """
    Report payload for a single user, or ``None`` when the user does not exist.

    Screen columns cover every screen name ever recorded, not only the ones
    seen in ``date_range``.
    """

    profile = fetch_user(backend, user_id)
    if profile is None:
        return None

    categories = fetch_active_categories(backend)
    screen_names = fetch_distinct_screen_names(backend)
    sessions = fetch_sessions(backend, date_range, columns=SESSION_COLUMNS, user_id=user_id)
    screen_views = fetch_screen_views(backend, date_range, columns=("screen_name",), user_id=user_id)
    asset_events = fetch_asset_events(
        backend,
        date_range,
        user_id=user_id,
        columns=("asset_name", "event_type", "category"),
    )

    row, asset_rows = build_user_row(profile, sessions, screen_views, asset_events, categories, screen_names)
    return {
        "profile": {key: profile.get(key) for key in PROFILE_COLUMNS},
        "categories": list(categories),
        "screen_names": list(screen_names),
        "total_sessions": row["total_sessions"],
        "total_duration_min": row["total_duration_min"],
        "avg_session_min": row["avg_session_min"],
        "screen_rows": [{"screen": name, "count": row[f"screen_{name}"]} for name in screen_names],
        "total_screen_views": row["total_screen_views"],
        "category_rows": [{"asset": name, "count": row[f"asset_{name}"]} for name in categories],
        "asset_name_rows": [{"asset": name, "count": count} for name, count in asset_rows],
        "total_asset_clicks": row["total_assets"],
        "flat_row": row,
    }


def _group_by_user(rows: Sequence[Row]) -> Dict[str, List[Row]]:
    grouped: Dict[str, List[Row]] = defaultdict(list)
    for row in rows:
        grouped[str(row.get("user_id"))].append(row)
    return grouped


def fetch_all_users_report(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> UserReport:
    """
    Rows for every user in ``scope`` with the column sets discovered from them.

    Screen names come from the screen views in range, so a screen nobody
    visited in the window gets no column.
    """

    categories = fetch_active_categories(backend)
    profiles = fetch_users(backend, scope, columns=PROFILE_COLUMNS, order_by="first_name")
    if not profiles:
        return UserReport(categories=categories)

    sessions = fetch_sessions(backend, date_range, scope, columns=SESSION_COLUMNS)
    screen_views = fetch_screen_views(backend, date_range, scope, columns=("user_id", "screen_name"))
    asset_events = fetch_asset_events(
        backend,
        date_range,
        scope,
        columns=("user_id", "asset_name", "event_type", "category"),
    )
    screen_names = sorted({view["screen_name"] for view in screen_views if view.get("screen_name") is not None})

    sessions_by_user = _group_by_user(sessions)
    views_by_user = _group_by_user(screen_views)
    assets_by_user = _group_by_user(asset_events)

    rows: List[Row] = []
    asset_names = set()
    for profile in profiles:
        user_id = str(profile["id"])
        row, asset_rows = build_user_row(
            profile,
            sessions_by_user.get(user_id, []),
            views_by_user.get(user_id, []),
            assets_by_user.get(user_id, []),
            categories,
            screen_names,
        )
        asset_names.update(name for name, _ in asset_rows)
        rows.append(row)

    logger.debug(
        "User report built: %s rows, %s screens, %s categories, %s assets",
        len(rows),
        len(screen_names),
        len(categories),
        len(asset_names),
    )
    return UserReport(
        rows=rows,
        categories=categories,
        screen_names=screen_names,
        asset_names=sorted(asset_names, key=str.casefold),
    )
