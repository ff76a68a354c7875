"""Tests for filters, sorting, pinning and topic tables."""
from datetime import datetime, timedelta, timezone
from fakes import api_repo
from repo_aggregator.domain.models import RepositoryRecord, SortMode, time_ago
from repo_aggregator.domain.views import (
    apply_filters,
    merge_by_identity,
    pinned_first,
    sort_records,
    topic_frequency
)


def _repo(full_name, **kwargs):
    return RepositoryRecord.from_api(api_repo(full_name, **kwargs))


def test_sort_by_stars_breaks_ties_by_name():
    """Test stars descending with name ascending on ties."""
    repos = [_repo("o/b", stars=5), _repo("o/a", stars=5), _repo("o/c", stars=9)]

    assert [r.name for r in sort_records(repos, SortMode.STARS)] == ["c", "a", "b"]


def test_sort_by_name_is_case_insensitive():
    """Test name ascending."""
    repos = [_repo("o/beta"), _repo("o/Alpha"), _repo("o/gamma")]

    assert [r.name for r in sort_records(repos, SortMode.NAME)] == ["Alpha", "beta", "gamma"]


def test_sort_by_pushed_puts_recent_first_and_unknown_last():
    """Test last-pushed descending, records without a push time at the end."""
    repos = [
        _repo("o/old", pushed_at="2020-01-01T00:00:00Z"),
        _repo("o/never", pushed_at=None),
        _repo("o/new", pushed_at="2024-06-01T00:00:00Z"),
    ]

    assert [r.name for r in sort_records(repos, SortMode.PUSHED)] == ["new", "old", "never"]


def test_pinned_move_to_front_preserving_order():
    """Test the stable pinned partition."""
    x, z = _repo("o/x"), _repo("o/z")
    y = RepositoryRecord(full_name="o/y", name="y", html_url="", pinned=True)

    assert [r.name for r in pinned_first([x, y, z])] == ["y", "x", "z"]


def test_pinned_by_configured_names():
    """Test pinning by lowercase name or full name."""
    repos = [_repo("o/one"), _repo("o/Two"), _repo("p/three")]

    ordered = pinned_first(repos, pinned_names=("two", "p/three"))

    assert [r.name for r in ordered] == ["Two", "three", "one"]


def test_filters():
    """Test private always excluded, forks/archived per flag."""
    repos = [
        _repo("o/plain"),
        _repo("o/secret", private=True),
        _repo("o/forked", fork=True),
        _repo("o/old", archived=True),
    ]

    assert [r.name for r in apply_filters(repos)] == ["plain"]
    assert [r.name for r in apply_filters(repos, exclude_forks=False, exclude_archived=False)] == [
        "plain", "forked", "old"
    ]


def test_merge_by_identity_later_source_wins():
    """Test de-duplication keyed by full name."""
    fetched = [_repo("a/b", stars=5), _repo("a/c", stars=1)]
    manual = [RepositoryRecord(full_name="a/b", name="b", html_url="", star_count=9)]

    merged = merge_by_identity(fetched, manual)

    assert [(r.full_name, r.star_count) for r in merged] == [("a/b", 9), ("a/c", 1)]


def test_topic_frequency_orders_and_caps():
    """Test counting lowercased topics, count desc then name asc."""
    repos = [
        _repo("o/a", topics=["web", "api"]),
        _repo("o/b", topics=["api", "cli"]),
        _repo("o/c", topics=["API", "web"]),
    ]

    assert topic_frequency(repos) == [("api", 3), ("web", 2), ("cli", 1)]
    assert topic_frequency(repos, limit=2) == [("api", 3), ("web", 2)]
    assert topic_frequency([]) == []


def test_time_ago():
    """Test the compact relative time labels."""
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)

    assert time_ago(None, now) == "unknown"
    assert time_ago(now - timedelta(seconds=30), now) == "just now"
    assert time_ago(now - timedelta(hours=5), now) == "5h ago"
    assert time_ago(now - timedelta(days=3), now) == "3d ago"
    assert time_ago(now - timedelta(days=400), now) == "1y ago"
    assert time_ago(now + timedelta(days=1), now) == "just now"


def test_rendering_document_carries_relative_push_time():
    """Test that every rendered repository gets an ``updated`` label."""
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    recent = _repo("o/recent", pushed_at="2024-05-29T00:00:00Z")
    never = _repo("o/never", pushed_at=None)

    assert recent.to_dict(now)["updated"] == "3d ago"
    assert never.to_dict(now)["updated"] == "unknown"
