from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

Row = Dict[str, Any]
Scope = Optional[Tuple[str, ...]]
Rate = Union[str, int]


def _aligned(moment: datetime, reference: datetime) -> datetime:
    # Naive timestamps from the backend are UTC.
    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=timezone.utc)
    if moment.tzinfo is not None and reference.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive time window applied to every section query.

    Either bound may be ``None``; an unbounded side adds no predicate, so
    ``DateRange()`` selects every row regardless of timestamp.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and _aligned(moment, self.start) < self.start:
            return False
        if self.end is not None and _aligned(moment, self.end) > self.end:
            return False
        return True

    def describe(self) -> str:
        if self.start and self.end:
            return f"{self.start:%Y-%m-%d} - {self.end:%Y-%m-%d}"
        if self.start:
            return f"From {self.start:%Y-%m-%d}"
        return "All Time"


@dataclass(frozen=True)
class RankedUser:
    user_id: str
    name: str
    count: int


@dataclass(frozen=True)
class ScreenStat:
    screen_name: str
    views: int
    unique_users: int


@dataclass(frozen=True)
class PostEngagement:
    id: str
    title: str
    likes: int
    comments: int
    points: int
    unique_engagers: int
    has_engagement: bool


@dataclass(frozen=True)
class AssetStat:
    asset_id: Optional[str]
    asset_name: str
    category: Optional[str]
    interactions: int
    unique_users: int
    in_app: bool = False


@dataclass(frozen=True)
class ContentDownloads:
    content_id: Optional[str]
    content_name: str
    downloads: int
    in_app: bool = False


@dataclass(frozen=True)
class TypeCount:
    type: str
    count: int


@dataclass(frozen=True)
class RecentItem:
    id: str
    title: str
    type: str
    created_at: datetime


@dataclass(frozen=True)
class DatePoint:
    date: date
    value: int


@dataclass(frozen=True)
class UserActivitySummary:
    total_users: int = 0
    active_users: int = 0
    inactive_users: int = 0
    engagement_ratio: Rate = 0
    total_sessions: int = 0
    sessions_per_user: Rate = 0
    avg_duration: int = 0


@dataclass(frozen=True)
class ScreenEngagementSummary:
    total_views: int = 0
    screens: Sequence[ScreenStat] = field(default_factory=list)
    top_screens: Sequence[ScreenStat] = field(default_factory=list)


@dataclass(frozen=True)
class FeedActivitySummary:
    total_posts: int = 0
    posts_with_engagement: int = 0
    posts_no_engagement: int = 0
    engagement_rate: Rate = 0
    avg_unique_users_all: Rate = 0
    avg_unique_users_engaged: Rate = 0
    top_posts: Sequence[PostEngagement] = field(default_factory=list)


@dataclass(frozen=True)
class AssetSummary:
    total_interactions: int = 0
    unique_users: int = 0
    assets: Sequence[AssetStat] = field(default_factory=list)
    top_assets: Sequence[AssetStat] = field(default_factory=list)


@dataclass(frozen=True)
class DownloadsSummary:
    total_users: int = 0
    users_who_downloaded: int = 0
    users_never_downloaded: int = 0
    download_rate: Rate = 0
    total_downloads: int = 0
    avg_downloads_per_user: Rate = 0
    top_downloaders: Sequence[RankedUser] = field(default_factory=list)
    most_downloaded: Sequence[ContentDownloads] = field(default_factory=list)


@dataclass(frozen=True)
class AIUsageSummary:
    total_queries: int = 0
    users_who_used_ai: int = 0
    users_never_used_ai: int = 0
    avg_queries_per_user: Rate = 0
    top_users: Sequence[RankedUser] = field(default_factory=list)


@dataclass(frozen=True)
class ChatActivitySummary:
    conversations_started: int = 0
    total_messages: int = 0
    active_chatters: int = 0
    silent_users: int = 0
    avg_messages_per_chatter: Rate = 0
    top_chatters: Sequence[RankedUser] = field(default_factory=list)


@dataclass(frozen=True)
class DirectoryUsageSummary:
    total_profile_views: int = 0
    total_searches: int = 0
    users_who_searched: int = 0
    most_viewed_profiles: Sequence[RankedUser] = field(default_factory=list)


@dataclass(frozen=True)
class NotificationsSummary:
    total_sent: int = 0
    post_push_count: int = 0
    update_count: int = 0
    event_count: int = 0
    total_reads: int = 0
    unique_readers: int = 0
    total_clicks: int = 0
    unique_clickers: int = 0
    breakdown: Sequence[TypeCount] = field(default_factory=list)
    recent_items: Sequence[RecentItem] = field(default_factory=list)


@dataclass(frozen=True)
class GrowthSummary:
    total_users: int = 0
    active_users: int = 0
    inactive_users: int = 0
    new_signups: int = 0
    signups_by_date: Sequence[DatePoint] = field(default_factory=list)
    growth_over_time: Sequence[DatePoint] = field(default_factory=list)


@dataclass(frozen=True)
class Column:
    key: str
    label: str


@dataclass(frozen=True)
class ColumnGroup:
    label: str
    span: int


@dataclass(frozen=True)
class StatItem:
    title: str
    value: Any


@dataclass(frozen=True)
class ExportSection:
    """
    One titled block of an export: a ``Metric,Value`` stat list and an
    optional table whose rows are mappings keyed by ``Column.key``.
    """

    id: str
    title: str
    stats: Sequence[StatItem] = field(default_factory=list)
    columns: Sequence[Column] = field(default_factory=list)
    table_data: Sequence[Row] = field(default_factory=list)


@dataclass(frozen=True)
class UserReport:
    """Flat per-user rows plus the column sets discovered from this run's data."""

    rows: Sequence[Row] = field(default_factory=list)
    categories: Sequence[str] = field(default_factory=list)
    screen_names: Sequence[str] = field(default_factory=list)
    asset_names: Sequence[str] = field(default_factory=list)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def serialize(obj: Any) -> Any:
    """
    Convert summaries into a JSON-serialisable structure with camelCase keys.

    The dashboard frontend consumes the same payload shape the section hooks
    used to keep in their state.
    """

    if is_dataclass(obj) and not isinstance(obj, type):
        return {_camel(f.name): serialize(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {key: serialize(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize(item) for item in obj]
    return obj


def as_rows(items: Sequence[Any]) -> List[Row]:
    """Flatten dataclass table rows into plain dicts keyed by field name."""

    return [{f.name: getattr(item, f.name) for f in fields(item)} for item in items]
