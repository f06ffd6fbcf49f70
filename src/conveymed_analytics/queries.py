"""
Per-metric reads against the analytics backend.

Every function returns raw rows (or a count) and never aggregates. Date
predicates are only added for the bounds that are set and the ``IN`` scope
predicate only when a scope is active. Backend failures propagate as
:class:`~conveymed_analytics.backend.BackendError`.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .backend import AnalyticsBackend, TableQuery
from .formatting import display_name
from .models import DateRange, Row, Scope

USER_NAME_COLUMNS = ("id", "first_name", "last_name", "email")


def _scoped(column: str, scope: Scope) -> Dict[str, Sequence[str]]:
    return {} if scope is None else {column: scope}


def count_users(backend: AnalyticsBackend, scope: Scope = None) -> int:
    return backend.count(TableQuery(table="users", members=_scoped("id", scope)))


def fetch_users(
    backend: AnalyticsBackend,
    scope: Scope = None,
    columns: Sequence[str] = ("id", "created_at"),
    order_by: Optional[str] = "created_at",
) -> List[Row]:
    return backend.select(
        TableQuery(table="users", columns=columns, members=_scoped("id", scope), order_by=order_by)
    )


def fetch_user(backend: AnalyticsBackend, user_id: str) -> Optional[Row]:
    rows = backend.select(TableQuery(table="users", equals={"id": user_id}))
    return rows[0] if rows else None


def fetch_sessions(
    backend: AnalyticsBackend,
    date_range: DateRange,
    scope: Scope = None,
    columns: Sequence[str] = ("user_id", "started_at", "ended_at", "duration_seconds"),
    time_column: str = "started_at",
    user_id: Optional[str] = None,
) -> List[Row]:
    return backend.select(
        TableQuery(
            table="user_sessions",
            columns=columns,
            equals={} if user_id is None else {"user_id": user_id},
            members=_scoped("user_id", scope),
            time_column=time_column,
            date_range=date_range,
        )
    )


def fetch_screen_views(
    backend: AnalyticsBackend,
    date_range: DateRange,
    scope: Scope = None,
    columns: Sequence[str] = ("screen_name", "user_id", "created_at"),
    user_id: Optional[str] = None,
) -> List[Row]:
    return backend.select(
        TableQuery(
            table="screen_views",
            columns=columns,
            equals={} if user_id is None else {"user_id": user_id},
            members=_scoped("user_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_distinct_screen_names(backend: AnalyticsBackend) -> List[str]:
    rows = backend.select(TableQuery(table="screen_views", columns=("screen_name",)))
    return sorted({row["screen_name"] for row in rows if row.get("screen_name") is not None})


def fetch_asset_events(
    backend: AnalyticsBackend,
    date_range: DateRange,
    scope: Scope = None,
    event_type: Optional[str] = None,
    category_type: Optional[str] = None,
    user_id: Optional[str] = None,
    columns: Sequence[str] = ("user_id", "asset_id", "asset_name", "event_type", "category", "created_at"),
) -> List[Row]:
    equals: Dict[str, Any] = {}
    if event_type is not None:
        equals["event_type"] = event_type
    if category_type is not None:
        equals["category_type"] = category_type
    if user_id is not None:
        equals["user_id"] = user_id
    return backend.select(
        TableQuery(
            table="asset_events",
            columns=columns,
            equals=equals,
            members=_scoped("user_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_active_categories(backend: AnalyticsBackend) -> List[str]:
    rows = backend.select(
        TableQuery(
            table="content_categories",
            columns=("title",),
            equals={"is_active": True},
            order_by="sort_order",
        )
    )
    return [row["title"] for row in rows]


def fetch_posts(
    backend: AnalyticsBackend,
    date_range: DateRange,
    notify_push: Optional[bool] = None,
) -> List[Row]:
    return backend.select(
        TableQuery(
            table="posts",
            columns=("id", "content", "notify_push", "notify_email", "created_at"),
            equals={} if notify_push is None else {"notify_push": notify_push},
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_post_likes(backend: AnalyticsBackend, post_ids: Sequence[str], scope: Scope = None) -> List[Row]:
    return _fetch_post_reactions(backend, "post_likes", post_ids, scope)


def fetch_post_comments(backend: AnalyticsBackend, post_ids: Sequence[str], scope: Scope = None) -> List[Row]:
    return _fetch_post_reactions(backend, "post_comments", post_ids, scope)


def _fetch_post_reactions(
    backend: AnalyticsBackend,
    table: str,
    post_ids: Sequence[str],
    scope: Scope,
) -> List[Row]:
    members: Dict[str, Sequence[str]] = {"post_id": list(post_ids)}
    members.update(_scoped("user_id", scope))
    return backend.select(TableQuery(table=table, columns=("post_id", "user_id"), members=members))


def fetch_notifications(backend: AnalyticsBackend, date_range: DateRange) -> List[Row]:
    return backend.select(
        TableQuery(
            table="notifications",
            columns=("id", "type", "title", "created_at"),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_user_notifications(backend: AnalyticsBackend, date_range: DateRange) -> List[Row]:
    return backend.select(
        TableQuery(
            table="user_notifications",
            columns=("notification_id", "user_id", "is_read", "created_at"),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_notification_clicks(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> List[Row]:
    return backend.select(
        TableQuery(
            table="notification_clicks",
            columns=("notification_type", "user_id", "created_at"),
            members=_scoped("user_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def count_chats(backend: AnalyticsBackend, date_range: DateRange) -> int:
    return backend.count(TableQuery(table="chats", time_column="created_at", date_range=date_range))


def fetch_messages(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> List[Row]:
    return backend.select(
        TableQuery(
            table="messages",
            columns=("sender_id", "created_at"),
            members=_scoped("sender_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_ai_queries(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> List[Row]:
    return backend.select(
        TableQuery(
            table="ai_queries",
            columns=("user_id", "created_at"),
            members=_scoped("user_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_profile_views(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> List[Row]:
    return backend.select(
        TableQuery(
            table="profile_views",
            columns=("viewer_id", "viewed_user_id", "created_at"),
            members=_scoped("viewer_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_directory_searches(backend: AnalyticsBackend, date_range: DateRange, scope: Scope = None) -> List[Row]:
    return backend.select(
        TableQuery(
            table="directory_searches",
            columns=("user_id", "search_query", "created_at"),
            members=_scoped("user_id", scope),
            time_column="created_at",
            date_range=date_range,
        )
    )


def fetch_display_names(backend: AnalyticsBackend, user_ids: Sequence[str]) -> Dict[str, str]:
    """
    Resolve display names for the given ids only.

    Callers pass the already-ranked top-N ids, never the whole population.
    Ids with no user row are absent from the result.
    """

    if not user_ids:
        return {}
    rows = backend.select(TableQuery(table="users", columns=USER_NAME_COLUMNS, members={"id": list(user_ids)}))
    return {str(row["id"]): display_name(row, fallback=str(row["id"])) for row in rows}


def fetch_existing_content_ids(backend: AnalyticsBackend, content_ids: Iterable[Optional[str]]) -> Set[str]:
    wanted = [content_id for content_id in content_ids if content_id]
    if not wanted:
        return set()
    rows = backend.select(TableQuery(table="content_items", columns=("id",), members={"id": wanted}))
    return {str(row["id"]) for row in rows}


def fetch_organizations(backend: AnalyticsBackend) -> List[Row]:
    return backend.select(
        TableQuery(
            table="organizations",
            columns=("id", "name", "code"),
            equals={"is_active": True},
            order_by="code",
        )
    )


def fetch_org_user_ids(backend: AnalyticsBackend, organization_id: Optional[str]) -> Scope:
    """Member ids of ``organization_id``; ``None`` (no scope) when no org is selected."""

    if not organization_id:
        return None
    rows = backend.select(
        TableQuery(table="users", columns=("id",), equals={"organization_id": organization_id})
    )
    return tuple(str(row["id"]) for row in rows)
