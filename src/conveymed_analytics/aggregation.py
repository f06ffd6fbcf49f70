"""
Pure reducers that fold raw backend rows into section summaries.

Nothing here performs I/O. Display names and content existence are resolved
by the caller (see :mod:`conveymed_analytics.sections`) and passed in, so each
summary is reproducible from the same rows and lookups.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from typing import (
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
    Union,
)

from .formatting import ratio, round_half_up
from .models import (
    AIUsageSummary,
    AssetStat,
    AssetSummary,
    ChatActivitySummary,
    ContentDownloads,
    DatePoint,
    DateRange,
    DirectoryUsageSummary,
    DownloadsSummary,
    FeedActivitySummary,
    GrowthSummary,
    NotificationsSummary,
    PostEngagement,
    RankedUser,
    RecentItem,
    Row,
    ScreenEngagementSummary,
    ScreenStat,
    TypeCount,
    UserActivitySummary,
)

K = TypeVar("K", bound=Hashable)

TOP_N = 10
TOP_POSTS = 5
GROWTH_POINTS = 30
TITLE_LENGTH = 50


def count_by(rows: Iterable[Row], key: str | Callable[[Row], Hashable]) -> Dict[Hashable, int]:
    """
    Count rows per key value, keeping first-seen order.

    ``key`` is a column name or a callable. The counts always sum to the number
    of rows consumed.
    """

    getter = key if callable(key) else (lambda row: row.get(key))
    counts: Dict[Hashable, int] = {}
    for row in rows:
        value = getter(row)
        counts[value] = counts.get(value, 0) + 1
    return counts


def rank_top(counts: Mapping[K, int], n: int = TOP_N) -> List[Tuple[K, int]]:
    """Highest counts first; ties keep insertion order because ``sorted`` is stable."""

    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:n]


def top_ids(rows: Iterable[Row], key: str, n: int = TOP_N) -> List[str]:
    return [str(value) for value, _ in rank_top(count_by(rows, key), n)]


def _ranked_users(counts: Mapping[Hashable, int], names: Mapping[str, str], n: int) -> List[RankedUser]:
    return [
        RankedUser(user_id=str(user_id), name=names.get(str(user_id), str(user_id)), count=count)
        for user_id, count in rank_top(counts, n)
    ]


def _distinct(rows: Iterable[Row], key: str) -> Set[Hashable]:
    return {row.get(key) for row in rows}


def summarize_user_activity(total_users: int, sessions: Sequence[Row]) -> UserActivitySummary:
    active_users = len(_distinct(sessions, "user_id"))
    total_sessions = len(sessions)
    total_duration = sum(row.get("duration_seconds") or 0 for row in sessions)
    avg_duration = round_half_up(total_duration / total_sessions) if total_sessions else 0
    return UserActivitySummary(
        total_users=total_users,
        active_users=active_users,
        inactive_users=total_users - active_users,
        engagement_ratio=ratio(active_users, total_users, percent=True),
        total_sessions=total_sessions,
        sessions_per_user=ratio(total_sessions, active_users),
        avg_duration=avg_duration,
    )


def summarize_screen_engagement(views: Sequence[Row], n: int = TOP_N) -> ScreenEngagementSummary:
    counts = count_by(views, "screen_name")
    users: Dict[Hashable, Set[Hashable]] = defaultdict(set)
    for view in views:
        users[view.get("screen_name")].add(view.get("user_id"))

    screens = [
        ScreenStat(screen_name=screen, views=count, unique_users=len(users[screen]))
        for screen, count in rank_top(counts, len(counts))
    ]
    return ScreenEngagementSummary(total_views=len(views), screens=screens, top_screens=screens[:n])


def _post_title(content: Optional[str], fallback: str) -> str:
    return content[:TITLE_LENGTH] if content else fallback


def summarize_feed_activity(
    posts: Sequence[Row],
    likes: Sequence[Row],
    comments: Sequence[Row],
    n: int = TOP_POSTS,
) -> FeedActivitySummary:
    """
    Engagement per post: a post is engaged when its likers and commenters
    together are non-empty; points are the unweighted ``likes + comments``.
    """

    if not posts:
        return FeedActivitySummary()

    likers: Dict[Hashable, List[Hashable]] = defaultdict(list)
    commenters: Dict[Hashable, List[Hashable]] = defaultdict(list)
    for like in likes:
        likers[like.get("post_id")].append(like.get("user_id"))
    for comment in comments:
        commenters[comment.get("post_id")].append(comment.get("user_id"))

    engagement: List[PostEngagement] = []
    for post in posts:
        post_likes = likers.get(post["id"], [])
        post_comments = commenters.get(post["id"], [])
        unique_engagers = len(set(post_likes) | set(post_comments))
        engagement.append(
            PostEngagement(
                id=str(post["id"]),
                title=_post_title(post.get("content"), "Untitled"),
                likes=len(post_likes),
                comments=len(post_comments),
                points=len(post_likes) + len(post_comments),
                unique_engagers=unique_engagers,
                has_engagement=unique_engagers > 0,
            )
        )

    total_posts = len(engagement)
    engaged = [post for post in engagement if post.has_engagement]
    return FeedActivitySummary(
        total_posts=total_posts,
        posts_with_engagement=len(engaged),
        posts_no_engagement=total_posts - len(engaged),
        engagement_rate=ratio(len(engaged), total_posts, percent=True),
        avg_unique_users_all=ratio(sum(post.unique_engagers for post in engagement), total_posts),
        avg_unique_users_engaged=ratio(sum(post.unique_engagers for post in engaged), len(engaged)),
        top_posts=sorted(engagement, key=lambda post: post.points, reverse=True)[:n],
    )


Ranked = TypeVar("Ranked", AssetStat, ContentDownloads)


def annotate_in_app(items: Sequence[Ranked], existing_ids: Set[str]) -> List[Ranked]:
    """Flag each ranked item whose id is still in the content table; id-less items are never in the app."""

    return [replace(item, in_app=_item_id(item) is not None and _item_id(item) in existing_ids) for item in items]


def _item_id(item: Union[AssetStat, ContentDownloads]) -> Optional[str]:
    value = item.asset_id if isinstance(item, AssetStat) else item.content_id
    return str(value) if value else None


def _content_key(row: Row) -> Hashable:
    return row.get("asset_id") or row.get("asset_name")


def summarize_assets(
    events: Sequence[Row],
    existing_ids: Optional[Set[str]] = None,
    n: int = TOP_N,
) -> AssetSummary:
    """
    Interactions and unique users per asset, keyed by id (or name when the
    event carries no id). ``existing_ids`` flags assets still in the library.
    """

    stats: Dict[Hashable, Dict[str, object]] = {}
    for event in events:
        key = _content_key(event)
        entry = stats.get(key)
        if entry is None:
            entry = stats[key] = {
                "asset_id": event.get("asset_id"),
                "asset_name": event.get("asset_name") or "Unknown",
                "category": event.get("category"),
                "interactions": 0,
                "users": set(),
            }
        entry["interactions"] += 1
        entry["users"].add(event.get("user_id"))

    assets = sorted(
        (
            AssetStat(
                asset_id=entry["asset_id"],
                asset_name=entry["asset_name"],
                category=entry["category"],
                interactions=entry["interactions"],
                unique_users=len(entry["users"]),
            )
            for entry in stats.values()
        ),
        key=lambda asset: asset.interactions,
        reverse=True,
    )
    if existing_ids is not None:
        assets = annotate_in_app(assets, existing_ids)
    return AssetSummary(
        total_interactions=len(events),
        unique_users=len(_distinct(events, "user_id")),
        assets=assets,
        top_assets=assets[:n],
    )


def rank_content(events: Sequence[Row], n: int = TOP_N) -> List[Tuple[Optional[str], str, int]]:
    """``(content_id, content_name, count)`` for the ``n`` most frequent items."""

    names: Dict[Hashable, Tuple[Optional[str], str]] = {}
    for event in events:
        names.setdefault(_content_key(event), (event.get("asset_id"), event.get("asset_name") or "Unknown"))
    return [(*names[key], count) for key, count in rank_top(count_by(events, _content_key), n)]


def summarize_downloads(
    total_users: int,
    downloads: Sequence[Row],
    names: Optional[Mapping[str, str]] = None,
    existing_ids: Optional[Set[str]] = None,
    n: int = TOP_N,
) -> DownloadsSummary:
    per_user = count_by(downloads, "user_id")
    users_who_downloaded = len(per_user)
    most_downloaded = [
        ContentDownloads(
            content_id=content_id,
            content_name=content_name,
            downloads=count,
        )
        for content_id, content_name, count in rank_content(downloads, n)
    ]
    if existing_ids is not None:
        most_downloaded = annotate_in_app(most_downloaded, existing_ids)
    return DownloadsSummary(
        total_users=total_users,
        users_who_downloaded=users_who_downloaded,
        users_never_downloaded=total_users - users_who_downloaded,
        download_rate=ratio(users_who_downloaded, total_users, percent=True),
        total_downloads=len(downloads),
        avg_downloads_per_user=ratio(len(downloads), users_who_downloaded),
        top_downloaders=_ranked_users(per_user, names or {}, n),
        most_downloaded=most_downloaded,
    )


def summarize_ai_usage(
    total_users: int,
    queries: Sequence[Row],
    names: Optional[Mapping[str, str]] = None,
    n: int = TOP_N,
) -> AIUsageSummary:
    per_user = count_by(queries, "user_id")
    return AIUsageSummary(
        total_queries=len(queries),
        users_who_used_ai=len(per_user),
        users_never_used_ai=total_users - len(per_user),
        avg_queries_per_user=ratio(len(queries), len(per_user)),
        top_users=_ranked_users(per_user, names or {}, n),
    )


def summarize_chat_activity(
    total_users: int,
    conversations_started: int,
    messages: Sequence[Row],
    names: Optional[Mapping[str, str]] = None,
    n: int = TOP_N,
) -> ChatActivitySummary:
    per_sender = count_by(messages, "sender_id")
    return ChatActivitySummary(
        conversations_started=conversations_started,
        total_messages=len(messages),
        active_chatters=len(per_sender),
        silent_users=total_users - len(per_sender),
        avg_messages_per_chatter=ratio(len(messages), len(per_sender)),
        top_chatters=_ranked_users(per_sender, names or {}, n),
    )


def summarize_directory_usage(
    views: Sequence[Row],
    searches: Sequence[Row],
    names: Optional[Mapping[str, str]] = None,
    n: int = TOP_N,
) -> DirectoryUsageSummary:
    per_profile = count_by(views, "viewed_user_id")
    return DirectoryUsageSummary(
        total_profile_views=len(views),
        total_searches=len(searches),
        users_who_searched=len(_distinct(searches, "user_id")),
        most_viewed_profiles=_ranked_users(per_profile, names or {}, n),
    )


def summarize_notifications(
    push_posts: Sequence[Row],
    notifications: Sequence[Row],
    user_notifications: Sequence[Row],
    clicks: Sequence[Row],
    n: int = TOP_N,
) -> NotificationsSummary:
    post_push_count = len(push_posts)
    update_count = sum(1 for row in notifications if row.get("type") == "update")
    event_count = sum(1 for row in notifications if row.get("type") == "event")
    reads = [row for row in user_notifications if row.get("is_read")]

    breakdown = [
        TypeCount(type=label, count=count)
        for label, count in (
            ("Post Notifications", post_push_count),
            ("Updates", update_count),
            ("Events", event_count),
        )
        if count > 0
    ]

    items = [
        RecentItem(
            id=str(post["id"]),
            title=_post_title(post.get("content"), "Post"),
            type="Post",
            created_at=post.get("created_at"),
        )
        for post in push_posts
    ]
    items.extend(
        RecentItem(
            id=str(row["id"]),
            title=row.get("title") or "Untitled",
            type="Event" if row.get("type") == "event" else "Update",
            created_at=row.get("created_at"),
        )
        for row in notifications
    )
    recent = sorted(
        (item for item in items if item.created_at is not None),
        key=lambda item: item.created_at,
        reverse=True,
    )[:n]

    return NotificationsSummary(
        total_sent=post_push_count + len(notifications),
        post_push_count=post_push_count,
        update_count=update_count,
        event_count=event_count,
        total_reads=len(reads),
        unique_readers=len(_distinct(reads, "user_id")),
        total_clicks=len(clicks),
        unique_clickers=len(_distinct(clicks, "user_id")),
        breakdown=breakdown,
        recent_items=recent,
    )


def _day(moment: datetime) -> date:
    return moment.date()


def summarize_growth(
    users: Sequence[Row],
    sessions: Sequence[Row],
    date_range: DateRange,
    points: int = GROWTH_POINTS,
) -> GrowthSummary:
    """
    Running user total, one point per calendar day.

    Only the last ``points`` days are kept for the chart; ``total_users``
    always counts every user.
    """

    total_users = len(users)
    active_users = len(_distinct(sessions, "user_id"))
    dated = sorted((user for user in users if user.get("created_at")), key=lambda user: user["created_at"])

    signups: Dict[date, int] = {}
    new_signups = 0
    for user in dated:
        if date_range.contains(user["created_at"]):
            new_signups += 1
            day = _day(user["created_at"])
            signups[day] = signups.get(day, 0) + 1

    curve: Dict[date, int] = {}
    running_total = 0
    for user in dated:
        running_total += 1
        curve[_day(user["created_at"])] = running_total

    growth = [DatePoint(date=day, value=total) for day, total in curve.items()]
    return GrowthSummary(
        total_users=total_users,
        active_users=active_users,
        inactive_users=total_users - active_users,
        new_signups=new_signups,
        signups_by_date=[DatePoint(date=day, value=count) for day, count in signups.items()],
        growth_over_time=growth[-points:] if points else [],
    )
