"""
Dashboard sections: one loader per metric area plus the async controller that
owns its ``data``/``loading``/``error`` state.

Loaders are blocking and run in a worker thread. Inside a loader the
rank-then-resolve steps (display names, content existence) run in sequence;
sibling sections run concurrently under :meth:`Dashboard.fetch_all`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence

from .aggregation import (
    annotate_in_app,
    count_by,
    rank_content,
    rank_top,
    summarize_ai_usage,
    summarize_assets,
    summarize_chat_activity,
    summarize_directory_usage,
    summarize_downloads,
    summarize_feed_activity,
    summarize_growth,
    summarize_notifications,
    summarize_screen_engagement,
    summarize_user_activity,
)
from .backend import AnalyticsBackend
from .config import AnalyticsConfig
from .models import AssetSummary, DateRange, Row, Scope, UserReport, serialize
from .queries import (
    count_chats,
    count_users,
    fetch_ai_queries,
    fetch_asset_events,
    fetch_directory_searches,
    fetch_display_names,
    fetch_existing_content_ids,
    fetch_messages,
    fetch_notification_clicks,
    fetch_notifications,
    fetch_post_comments,
    fetch_post_likes,
    fetch_posts,
    fetch_profile_views,
    fetch_screen_views,
    fetch_sessions,
    fetch_user_notifications,
    fetch_users,
)
from .user_report import fetch_all_users_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionContext:
    """Everything a loader needs for one fetch: backend handle, window and scope."""

    backend: AnalyticsBackend
    date_range: DateRange = DateRange()
    scope: Scope = None
    top_n: int = 10
    top_posts: int = 5


Loader = Callable[[SectionContext], Any]


def _top_user_names(context: SectionContext, rows: Sequence[Row], key: str) -> Dict[str, str]:
    top = [str(user_id) for user_id, _ in rank_top(count_by(rows, key), context.top_n)]
    return fetch_display_names(context.backend, top)


def load_user_activity(context: SectionContext):
    total_users = count_users(context.backend, context.scope)
    sessions = fetch_sessions(context.backend, context.date_range, context.scope)
    return summarize_user_activity(total_users, sessions)


def load_screen_engagement(context: SectionContext):
    views = fetch_screen_views(context.backend, context.date_range, context.scope)
    return summarize_screen_engagement(views, context.top_n)


def load_feed_activity(context: SectionContext):
    posts = fetch_posts(context.backend, context.date_range)
    if not posts:
        return summarize_feed_activity([], [], [], context.top_posts)
    post_ids = [post["id"] for post in posts]
    likes = fetch_post_likes(context.backend, post_ids, context.scope)
    comments = fetch_post_comments(context.backend, post_ids, context.scope)
    return summarize_feed_activity(posts, likes, comments, context.top_posts)


def _load_assets(context: SectionContext, category_type: str) -> AssetSummary:
    events = fetch_asset_events(
        context.backend,
        context.date_range,
        context.scope,
        category_type=category_type,
    )
    summary = summarize_assets(events, n=context.top_n)
    existing = fetch_existing_content_ids(context.backend, (asset.asset_id for asset in summary.assets))
    assets = annotate_in_app(summary.assets, existing)
    return replace(summary, assets=assets, top_assets=assets[: context.top_n])


def load_library_assets(context: SectionContext):
    return _load_assets(context, "library")


def load_training_assets(context: SectionContext):
    return _load_assets(context, "training")


def load_downloads(context: SectionContext):
    total_users = count_users(context.backend, context.scope)
    downloads = fetch_asset_events(
        context.backend,
        context.date_range,
        context.scope,
        event_type="download",
        columns=("user_id", "asset_id", "asset_name", "created_at"),
    )
    names = _top_user_names(context, downloads, "user_id")
    top_content = [content_id for content_id, _, _ in rank_content(downloads, context.top_n)]
    existing = fetch_existing_content_ids(context.backend, top_content)
    return summarize_downloads(total_users, downloads, names, existing, context.top_n)


def load_ai_usage(context: SectionContext):
    total_users = count_users(context.backend, context.scope)
    queries = fetch_ai_queries(context.backend, context.date_range, context.scope)
    names = _top_user_names(context, queries, "user_id")
    return summarize_ai_usage(total_users, queries, names, context.top_n)


def load_chat_activity(context: SectionContext):
    total_users = count_users(context.backend, context.scope)
    conversations = count_chats(context.backend, context.date_range)
    messages = fetch_messages(context.backend, context.date_range, context.scope)
    names = _top_user_names(context, messages, "sender_id")
    return summarize_chat_activity(total_users, conversations, messages, names, context.top_n)


def load_directory_usage(context: SectionContext):
    views = fetch_profile_views(context.backend, context.date_range, context.scope)
    searches = fetch_directory_searches(context.backend, context.date_range, context.scope)
    names = _top_user_names(context, views, "viewed_user_id")
    return summarize_directory_usage(views, searches, names, context.top_n)


def load_notifications(context: SectionContext):
    push_posts = fetch_posts(context.backend, context.date_range, notify_push=True)
    notifications = fetch_notifications(context.backend, context.date_range)
    user_notifications = fetch_user_notifications(context.backend, context.date_range)
    clicks = fetch_notification_clicks(context.backend, context.date_range, context.scope)
    return summarize_notifications(push_posts, notifications, user_notifications, clicks, context.top_n)


def load_growth_retention(context: SectionContext):
    users = fetch_users(context.backend, context.scope)
    sessions = fetch_sessions(context.backend, context.date_range, context.scope, columns=("user_id",))
    return summarize_growth(users, sessions, context.date_range)


@dataclass(frozen=True)
class SectionSpec:
    id: str
    title: str
    loader: Loader


SECTIONS: Sequence[SectionSpec] = (
    SectionSpec("userActivity", "User Activity", load_user_activity),
    SectionSpec("screenEngagement", "Screen Engagement", load_screen_engagement),
    SectionSpec("feedActivity", "Feed Activity", load_feed_activity),
    SectionSpec("libraryAssets", "Library Assets", load_library_assets),
    SectionSpec("trainingAssets", "Training Assets", load_training_assets),
    SectionSpec("downloads", "Downloads", load_downloads),
    SectionSpec("aiUsage", "AI Usage", load_ai_usage),
    SectionSpec("chatActivity", "Chat Activity", load_chat_activity),
    SectionSpec("directoryUsage", "Directory Usage", load_directory_usage),
    SectionSpec("notifications", "Notifications", load_notifications),
    SectionSpec("growthRetention", "Growth & Retention", load_growth_retention),
)
SECTION_IDS = tuple(spec.id for spec in SECTIONS)


class SectionController:
    """
    Holds one section's last good ``data`` and the outcome of its latest fetch.

    Each :meth:`refresh` takes a request token. Only the newest request may
    write state; an older fetch that finishes late is dropped. A failed fetch
    sets ``error`` and leaves ``data`` as it was.
    """

    def __init__(self, spec: SectionSpec) -> None:
        self.spec = spec
        self.data: Any = None
        self.loading = False
        self.error: Optional[str] = None
        self._token = 0

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def title(self) -> str:
        return self.spec.title

    async def refresh(self, context: SectionContext) -> None:
        self._token += 1
        token = self._token
        self.loading = True
        self.error = None

        try:
            data = await asyncio.to_thread(self.spec.loader, context)
        except Exception as exc:
            if token != self._token:
                logger.debug("Discarding stale failure for %s: %s", self.title, exc)
                return
            logger.warning("Error fetching %s: %s", self.title, exc)
            self.error = str(exc)
            self.loading = False
            return

        if token != self._token:
            logger.debug("Discarding stale result for %s (request %s, latest %s)", self.title, token, self._token)
            return
        self.data = data
        self.loading = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "data": serialize(self.data),
            "loading": self.loading,
            "error": self.error,
        }


class Dashboard:
    """
    Section controllers sharing one backend, window and organization scope.

    Changing the window or scope does not fetch by itself; the caller decides
    when to :meth:`fetch_all` again.
    """

    def __init__(
        self,
        backend: AnalyticsBackend,
        config: Optional[AnalyticsConfig] = None,
        date_range: DateRange = DateRange(),
        scope: Scope = None,
    ) -> None:
        self.backend = backend
        self.config = config or AnalyticsConfig()
        self.date_range = date_range
        self.scope = scope
        self.sections: Dict[str, SectionController] = {spec.id: SectionController(spec) for spec in SECTIONS}

    def context(self) -> SectionContext:
        return SectionContext(
            backend=self.backend,
            date_range=self.date_range,
            scope=self.scope,
            top_n=self.config.dashboard.top_n,
            top_posts=self.config.dashboard.top_posts,
        )

    def section(self, section_id: str) -> SectionController:
        try:
            return self.sections[section_id]
        except KeyError:
            raise KeyError(f"Unknown section: {section_id}") from None

    async def refresh(self, section_id: str) -> SectionController:
        controller = self.section(section_id)
        await controller.refresh(self.context())
        return controller

    async def fetch_all(self, section_ids: Optional[Iterable[str]] = None) -> Mapping[str, SectionController]:
        wanted = list(section_ids) if section_ids is not None else list(self.sections)
        controllers = [self.section(section_id) for section_id in wanted]
        context = self.context()
        await asyncio.gather(*(controller.refresh(context) for controller in controllers))
        return {controller.id: controller for controller in controllers}

    def data(self, section_id: str) -> Any:
        return self.section(section_id).data

    @property
    def loading(self) -> bool:
        return any(controller.loading for controller in self.sections.values())

    async def fetch_user_report(self) -> UserReport:
        return await asyncio.to_thread(fetch_all_users_report, self.backend, self.date_range, self.scope)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "dateRange": {
                "start": serialize(self.date_range.start),
                "end": serialize(self.date_range.end),
                "label": self.date_range.describe(),
            },
            "sections": [controller.as_dict() for controller in self.sections.values()],
        }
