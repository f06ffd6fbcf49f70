"""
Table definitions for the backend tables the dashboard reads.

Only the columns the analytics queries touch are declared; the backend owns
the real schema and may carry more.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, Text

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("email", String(255)),
    Column("organization_id", String(64), index=True),
    Column("created_at", DateTime(timezone=True)),
)

organizations = Table(
    "organizations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255)),
    Column("code", String(64)),
    Column("is_active", Boolean, default=True),
)

user_sessions = Table(
    "user_sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), index=True),
    Column("started_at", DateTime(timezone=True)),
    Column("ended_at", DateTime(timezone=True)),
    Column("duration_seconds", Integer),
)

screen_views = Table(
    "screen_views",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), index=True),
    Column("screen_name", String(255)),
    Column("created_at", DateTime(timezone=True)),
)

asset_events = Table(
    "asset_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), index=True),
    Column("asset_id", String(64)),
    Column("asset_name", String(255)),
    Column("event_type", String(64)),
    Column("category", String(255)),
    Column("category_type", String(64)),
    Column("created_at", DateTime(timezone=True)),
)

content_items = Table(
    "content_items",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(255)),
)

content_categories = Table(
    "content_categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255)),
    Column("is_active", Boolean, default=True),
    Column("sort_order", Integer, default=0),
)

posts = Table(
    "posts",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("content", Text),
    Column("notify_push", Boolean, default=False),
    Column("notify_email", Boolean, default=False),
    Column("created_at", DateTime(timezone=True)),
)

post_likes = Table(
    "post_likes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("post_id", String(64), index=True),
    Column("user_id", String(64)),
    Column("created_at", DateTime(timezone=True)),
)

post_comments = Table(
    "post_comments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("post_id", String(64), index=True),
    Column("user_id", String(64)),
    Column("created_at", DateTime(timezone=True)),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("type", String(32)),
    Column("title", String(255)),
    Column("created_at", DateTime(timezone=True)),
)

user_notifications = Table(
    "user_notifications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("notification_id", String(64)),
    Column("user_id", String(64)),
    Column("is_read", Boolean, default=False),
    Column("created_at", DateTime(timezone=True)),
)

notification_clicks = Table(
    "notification_clicks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("notification_type", String(64)),
    Column("user_id", String(64)),
    Column("created_at", DateTime(timezone=True)),
)

chats = Table(
    "chats",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("created_at", DateTime(timezone=True)),
)

messages = Table(
    "messages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sender_id", String(64), index=True),
    Column("created_at", DateTime(timezone=True)),
)

profile_views = Table(
    "profile_views",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("viewer_id", String(64), index=True),
    Column("viewed_user_id", String(64)),
    Column("created_at", DateTime(timezone=True)),
)

directory_searches = Table(
    "directory_searches",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), index=True),
    Column("search_query", String(255)),
    Column("created_at", DateTime(timezone=True)),
)

ai_queries = Table(
    "ai_queries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(64), index=True),
    Column("created_at", DateTime(timezone=True)),
)
