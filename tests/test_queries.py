from __future__ import annotations

from conveymed_analytics.models import DateRange
from conveymed_analytics.queries import (
    count_chats,
    count_users,
    fetch_active_categories,
    fetch_asset_events,
    fetch_display_names,
    fetch_distinct_screen_names,
    fetch_existing_content_ids,
    fetch_messages,
    fetch_org_user_ids,
    fetch_organizations,
    fetch_posts,
    fetch_sessions,
)

from tests.conftest import NOW, days_ago


def test_unbounded_range_adds_no_time_predicate(backend):
    sessions = fetch_sessions(backend, DateRange())
    assert len(sessions) == 4
    assert backend.queries_for("user_sessions")[-1].date_range.unbounded


def test_date_bounds_filter_rows(backend, last_30_days):
    assert len(fetch_sessions(backend, last_30_days)) == 3
    assert len(fetch_sessions(backend, DateRange(start=days_ago(2)))) == 1
    assert len(fetch_sessions(backend, DateRange(end=days_ago(100)))) == 1


def test_scope_restricts_by_actor_column(backend, last_30_days):
    assert count_users(backend, ("u1", "u2")) == 2
    assert count_users(backend, ()) == 0
    assert count_users(backend) == 4
    messages = fetch_messages(backend, last_30_days, ("u2",))
    assert [row["sender_id"] for row in messages] == ["u2"]
    assert backend.queries_for("messages")[-1].members == {"sender_id": ("u2",)}


def test_chats_are_counted_without_scope(backend, last_30_days):
    assert count_chats(backend, last_30_days) == 1
    assert backend.queries_for("chats")[-1].members == {}


def test_asset_event_filters(backend):
    downloads = fetch_asset_events(backend, DateRange(), event_type="download")
    assert len(downloads) == 3
    training = fetch_asset_events(backend, DateRange(), category_type="training")
    assert [row["asset_id"] for row in training] == ["t1"]


def test_push_posts(backend):
    posts = fetch_posts(backend, DateRange(), notify_push=True)
    assert [post["id"] for post in posts] == ["p1"]


def test_display_names_only_for_requested_ids(backend):
    names = fetch_display_names(backend, ["u1", "u3", "u4", "missing"])
    assert names == {"u1": "Alice Smith", "u3": "carol@example.com", "u4": "u4"}
    assert backend.queries_for("users")[-1].members == {"id": ["u1", "u3", "u4", "missing"]}


def test_display_names_skip_query_for_empty_ids(backend):
    assert fetch_display_names(backend, []) == {}
    assert backend.queries_for("users") == []


def test_existing_content_ids(backend):
    assert fetch_existing_content_ids(backend, ["a1", "a2", None]) == {"a1"}
    assert fetch_existing_content_ids(backend, [None]) == set()


def test_categories_and_screens(backend):
    assert fetch_active_categories(backend) == ["Cardiology", "Training"]
    assert fetch_distinct_screen_names(backend) == ["Directory", "Home", "Library"]


def test_organization_scope(backend):
    assert [org["code"] for org in fetch_organizations(backend)] == ["N", "S"]
    assert fetch_org_user_ids(backend, "org-s") == ("u3", "u4")
    assert fetch_org_user_ids(backend, None) is None
    assert fetch_org_user_ids(backend, "org-x") == ()


def test_now_is_inside_default_window(last_30_days):
    assert last_30_days.contains(NOW)
    assert not last_30_days.contains(days_ago(31))
