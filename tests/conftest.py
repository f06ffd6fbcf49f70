"""Shared fixtures: an in-memory backend seeded with a small ConveyMed dataset."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Sequence

import pytest

from conveymed_analytics.backend import AnalyticsBackend, BackendError, TableQuery
from conveymed_analytics.models import DateRange

NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


class FakeBackend(AnalyticsBackend):
    """List-backed backend that applies the same filters the SQL backend does."""

    def __init__(self, tables: Mapping[str, Sequence[Dict[str, Any]]]):
        self.tables = {name: [dict(row) for row in rows] for name, rows in tables.items()}
        self.queries: List[TableQuery] = []
        self.fail_tables: Dict[str, str] = {}

    def _rows(self, query: TableQuery) -> List[Dict[str, Any]]:
        self.queries.append(query)
        if query.table in self.fail_tables:
            raise BackendError(self.fail_tables[query.table])
        rows = self.tables.get(query.table, [])
        matched = []
        for row in rows:
            if any(row.get(name) != value for name, value in query.equals.items()):
                continue
            if any(row.get(name) not in list(values) for name, values in query.members.items()):
                continue
            if query.time_column and not _in_range(row.get(query.time_column), query.date_range):
                continue
            matched.append(row)
        if query.order_by:
            matched.sort(key=lambda row: (row.get(query.order_by) is None, row.get(query.order_by)))
        return matched

    def select(self, query: TableQuery) -> List[Dict[str, Any]]:
        rows = self._rows(query)
        if query.columns:
            return [{name: row.get(name) for name in query.columns} for row in rows]
        return [dict(row) for row in rows]

    def count(self, query: TableQuery) -> int:
        return len(self._rows(query))

    def queries_for(self, table: str) -> List[TableQuery]:
        return [query for query in self.queries if query.table == table]


def _in_range(value: Any, date_range: DateRange) -> bool:
    if date_range.unbounded:
        return True
    if value is None:
        return False
    return date_range.contains(value)


def seed_tables() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "organizations": [
            {"id": "org-n", "name": "North", "code": "N", "is_active": True},
            {"id": "org-s", "name": "South", "code": "S", "is_active": True},
            {"id": "org-x", "name": "Closed", "code": "X", "is_active": False},
        ],
        "users": [
            {"id": "u1", "first_name": "Alice", "last_name": "Smith", "email": "alice@example.com",
             "organization_id": "org-n", "created_at": days_ago(200)},
            {"id": "u2", "first_name": "Bob", "last_name": "Jones", "email": "bob@example.com",
             "organization_id": "org-n", "created_at": days_ago(45)},
            {"id": "u3", "first_name": "Carol", "last_name": None, "email": "carol@example.com",
             "organization_id": "org-s", "created_at": days_ago(10)},
            {"id": "u4", "first_name": None, "last_name": None, "email": None,
             "organization_id": "org-s", "created_at": days_ago(10)},
        ],
        "user_sessions": [
            {"user_id": "u1", "started_at": days_ago(1), "ended_at": days_ago(1), "duration_seconds": 600},
            {"user_id": "u1", "started_at": days_ago(5), "ended_at": days_ago(5), "duration_seconds": 1200},
            {"user_id": "u2", "started_at": days_ago(3), "ended_at": days_ago(3), "duration_seconds": 90},
            {"user_id": "u3", "started_at": days_ago(120), "ended_at": days_ago(120), "duration_seconds": 300},
        ],
        "screen_views": [
            {"user_id": "u1", "screen_name": "Home", "created_at": days_ago(1)},
            {"user_id": "u1", "screen_name": "Home", "created_at": days_ago(2)},
            {"user_id": "u1", "screen_name": "Library", "created_at": days_ago(2)},
            {"user_id": "u2", "screen_name": "Home", "created_at": days_ago(3)},
            {"user_id": "u3", "screen_name": "Directory", "created_at": days_ago(100)},
        ],
        "asset_events": [
            {"user_id": "u1", "asset_id": "a1", "asset_name": "Stent Guide", "event_type": "view",
             "category": "Cardiology", "category_type": "library", "created_at": days_ago(1)},
            {"user_id": "u2", "asset_id": "a1", "asset_name": "Stent Guide", "event_type": "view",
             "category": "Cardiology", "category_type": "library", "created_at": days_ago(2)},
            {"user_id": "u1", "asset_id": "a2", "asset_name": "Old Brochure", "event_type": "view",
             "category": None, "category_type": "library", "created_at": days_ago(2)},
            {"user_id": "u1", "asset_id": "t1", "asset_name": "Onboarding 101", "event_type": "view",
             "category": "Training", "category_type": "training", "created_at": days_ago(4)},
            {"user_id": "u1", "asset_id": "a1", "asset_name": "Stent Guide", "event_type": "download",
             "category": "Cardiology", "category_type": "library", "created_at": days_ago(1)},
            {"user_id": "u1", "asset_id": "a2", "asset_name": "Old Brochure", "event_type": "download",
             "category": None, "category_type": "library", "created_at": days_ago(1)},
            {"user_id": "u2", "asset_id": "a2", "asset_name": "Old Brochure", "event_type": "download",
             "category": None, "category_type": "library", "created_at": days_ago(2)},
        ],
        "content_items": [
            {"id": "a1", "title": "Stent Guide"},
            {"id": "t1", "title": "Onboarding 101"},
        ],
        "content_categories": [
            {"title": "Training", "is_active": True, "sort_order": 2},
            {"title": "Cardiology", "is_active": True, "sort_order": 1},
            {"title": "Archive", "is_active": False, "sort_order": 3},
        ],
        "posts": [
            {"id": "p1", "content": "Welcome to the new quarter", "notify_push": True, "notify_email": False,
             "created_at": days_ago(6)},
            {"id": "p2", "content": "Quiet post", "notify_push": False, "notify_email": False,
             "created_at": days_ago(4)},
        ],
        "post_likes": [
            {"post_id": "p1", "user_id": "u1"},
            {"post_id": "p1", "user_id": "u2"},
        ],
        "post_comments": [
            {"post_id": "p1", "user_id": "u1"},
        ],
        "notifications": [
            {"id": "n1", "type": "update", "title": "App update", "created_at": days_ago(2)},
            {"id": "n2", "type": "event", "title": None, "created_at": days_ago(1)},
        ],
        "user_notifications": [
            {"notification_id": "n1", "user_id": "u1", "is_read": True, "created_at": days_ago(2)},
            {"notification_id": "n1", "user_id": "u2", "is_read": False, "created_at": days_ago(2)},
            {"notification_id": "n2", "user_id": "u1", "is_read": True, "created_at": days_ago(1)},
        ],
        "notification_clicks": [
            {"notification_type": "update", "user_id": "u1", "created_at": days_ago(2)},
        ],
        "chats": [
            {"id": "c1", "created_at": days_ago(3)},
        ],
        "messages": [
            {"sender_id": "u1", "created_at": days_ago(3)},
            {"sender_id": "u1", "created_at": days_ago(3)},
            {"sender_id": "u2", "created_at": days_ago(3)},
        ],
        "ai_queries": [
            {"user_id": "u2", "created_at": days_ago(1)},
            {"user_id": "u2", "created_at": days_ago(2)},
            {"user_id": "u1", "created_at": days_ago(2)},
        ],
        "profile_views": [
            {"viewer_id": "u1", "viewed_user_id": "u2", "created_at": days_ago(1)},
            {"viewer_id": "u3", "viewed_user_id": "u2", "created_at": days_ago(1)},
            {"viewer_id": "u2", "viewed_user_id": "u1", "created_at": days_ago(1)},
        ],
        "directory_searches": [
            {"user_id": "u1", "search_query": "cardio", "created_at": days_ago(1)},
            {"user_id": "u1", "search_query": "sales", "created_at": days_ago(2)},
        ],
    }


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(seed_tables())


@pytest.fixture
def last_30_days() -> DateRange:
    return DateRange(start=days_ago(30), end=NOW)
