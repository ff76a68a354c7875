"""Shared fixtures for the aggregator tests."""
import pytest
from fakes import FakeClock, FakeTransport
from repo_aggregator.application.source_fetchers import SourceFetchers
from repo_aggregator.config import Settings
from repo_aggregator.infrastructure.cache_store import InMemoryCacheStore
from repo_aggregator.infrastructure.dispatcher import RequestDispatcher


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache():
    return InMemoryCacheStore()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_fetchers(transport, cache, clock):
    """Build SourceFetchers inside the running loop with a zero dispatch gap."""
    def factory(gap_seconds: float = 0.0):
        return SourceFetchers(transport, RequestDispatcher(gap_seconds=gap_seconds), cache, clock=clock)
    return factory


@pytest.fixture
def settings():
    return Settings(github_user="alice", grid_orgs=(), topics_fetch_budget=32, grid_topics_deep_limit=24)
