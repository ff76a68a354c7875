"""Tests for the aggregator service (org cards, grid, page load)."""
import asyncio
import dataclasses
import json
from fakes import api_repo
from repo_aggregator.application.aggregator_service import AggregatorService, load_org_configs
from repo_aggregator.application.source_fetchers import org_repos_key, user_repos_key
from repo_aggregator.application.topic_budget import TopicBudget
from repo_aggregator.config import ORG_CACHE_TTL_MS
from repo_aggregator.domain.errors import NetworkError, NetworkHint, UpstreamError, UpstreamErrorKind
from repo_aggregator.domain.models import LoadOutcome, OrgCardConfig, SortMode


def _write(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_org_card_served_from_fresh_cache_while_offline(transport, make_fetchers, cache, clock, settings):
    """Test that a fresh cache entry renders the card even with the transport down."""
    cache.set(
        org_repos_key("acme"),
        [api_repo("acme/rocket", stars=3, topics=["rust"]), api_repo("acme/engine", stars=8, topics=["rust", "cli"])],
        stored_at=int(clock.now * 1000) - 1000
    )
    transport.responses["/orgs/acme/repos"] = NetworkError(NetworkHint.OFFLINE, "/orgs/acme/repos")
    config = OrgCardConfig.from_dict({"org": "acme", "sort": "stars"})

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_org_card(config, TopicBudget(32))

    card = asyncio.run(scenario())

    assert card.error is None
    assert [r.name for r in card.repositories] == ["engine", "rocket"]
    assert card.topic_counts == (("rust", 2), ("cli", 1))
    assert transport.calls == []


def test_org_card_failure_is_inline_with_hint(transport, make_fetchers, settings):
    """Test that one failing card reports its own error."""
    transport.responses["/orgs/acme/repos"] = NetworkError(NetworkHint.OFFLINE, "/orgs/acme/repos")
    transport.responses["/orgs/beta/repos"] = [api_repo("beta/tool", topics=["x"])]
    configs = [OrgCardConfig.from_dict({"org": "acme"}), OrgCardConfig.from_dict({"org": "beta"})]

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_org_cards(configs, TopicBudget(32))

    failed, ok = asyncio.run(scenario())

    assert failed.error == "Could not load acme repos. You appear to be offline."
    assert failed.repositories == ()
    assert ok.error is None
    assert [r.full_name for r in ok.repositories] == ["beta/tool"]


def test_org_card_limit_view_all_and_deep_topics(transport, make_fetchers, settings):
    """Test limit truncation, topic chips over the whole set and the view-all link."""
    transport.responses["/orgs/acme/repos"] = [
        api_repo("acme/a", stars=3),
        api_repo("acme/b", stars=2, topics=["web"]),
        api_repo("acme/c", stars=1),
        api_repo("acme/fork", stars=10, fork=True),
    ]
    transport.responses["/repos/acme/a/topics"] = {"names": ["web", "api"]}
    transport.responses["/repos/acme/c/topics"] = {"names": ["api"]}
    config = OrgCardConfig.from_dict({"org": "acme", "sort": "stars", "limit": 2, "topics_max": 1})
    budget = TopicBudget(32)

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_org_card(config, budget)

    card = asyncio.run(scenario())

    assert [r.name for r in card.repositories] == ["a", "b"]
    assert card.topic_counts == (("api", 2),)
    assert card.view_all_url == "https://github.com/acme?tab=repositories"
    assert budget.attempts == 2


def test_manual_entry_wins_on_identity_collision(tmp_path, transport, make_fetchers, settings):
    """Test de-duplication with the manual record applied last."""
    transport.responses["/users/alice/repos"] = [api_repo("a/b", stars=5, topics=["t"])]
    transport.responses["/repos/a/b"] = api_repo("a/b", stars=5, topics=["t"])
    settings = dataclasses.replace(
        settings, manual_repos_src=_write(tmp_path, "manual.json", [{"full_name": "a/b", "stars": 9}])
    )

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_grid(SortMode.STARS, TopicBudget(32))

    grid = asyncio.run(scenario())

    assert [(r.full_name, r.star_count) for r in grid.repositories] == [("a/b", 9)]
    assert grid.status.outcome == LoadOutcome.SUCCESS
    assert grid.status.message == "1 repositories"


def test_manual_entry_404_still_in_grid(tmp_path, transport, make_fetchers, settings):
    """Test that an unreachable manual repository stays in the output as declared."""
    transport.responses["/users/alice/repos"] = [api_repo("alice/dots", stars=50, topics=["x"])]
    settings = dataclasses.replace(settings, manual_repos_src=_write(tmp_path, "manual.json", [
        {"url": "https://github.com/acme/gone", "stars": 1, "topics": ["legacy"], "pinned": True}
    ]))

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_grid(SortMode.STARS, TopicBudget(32))

    grid = asyncio.run(scenario())

    assert [r.full_name for r in grid.repositories] == ["acme/gone", "alice/dots"]
    gone = grid.repositories[0]
    assert gone.pinned is True
    assert gone.star_count == 1
    assert gone.topics == ("legacy",)


def test_grid_falls_back_to_stale_cache(transport, make_fetchers, cache, clock, settings):
    """Test the per-source stale fallback and the degraded status."""
    cache.set(
        user_repos_key("alice"),
        [api_repo("alice/dots", topics=["x"])],
        stored_at=int(clock.now * 1000) - ORG_CACHE_TTL_MS * 10
    )
    transport.responses["/users/alice/repos"] = UpstreamError(UpstreamErrorKind.RATE_LIMITED, "/users/alice/repos", 403)

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_grid(SortMode.PUSHED, TopicBudget(32))

    grid = asyncio.run(scenario())

    assert [r.full_name for r in grid.repositories] == ["alice/dots"]
    assert grid.status.outcome == LoadOutcome.DEGRADED
    assert "Showing cached data for: user alice" in grid.status.message


def test_grid_failure_without_cache_reports_hint(transport, make_fetchers, settings):
    """Test the failure status when nothing could be loaded."""
    transport.responses["/users/alice/repos"] = UpstreamError(UpstreamErrorKind.RATE_LIMITED, "/users/alice/repos", 403)

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_grid(SortMode.PUSHED, TopicBudget(32))

    grid = asyncio.run(scenario())

    assert grid.repositories == ()
    assert grid.status.outcome == LoadOutcome.FAILED
    assert grid.status.message == (
        "Could not load repositories from GitHub. GitHub rate limit/abuse detection. Try again later."
    )


def test_grid_filters_sorts_and_pins(transport, make_fetchers, settings):
    """Test user and org sources merged, filtered, sorted and pinned first."""
    transport.responses["/users/alice/repos"] = [
        api_repo("alice/a", stars=1, topics=["t"]),
        api_repo("alice/forked", stars=99, fork=True, topics=["t"]),
    ]
    transport.responses["/orgs/acme/repos"] = [
        api_repo("acme/b", stars=5, topics=["t"]),
        api_repo("acme/c", stars=3, archived=True, topics=["t"]),
    ]
    settings = dataclasses.replace(settings, grid_orgs=("acme",), pinned=("a",))

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.build_grid(SortMode.STARS, TopicBudget(32))

    grid = asyncio.run(scenario())

    assert [r.full_name for r in grid.repositories] == ["alice/a", "acme/b"]


def test_load_page_shares_one_budget(tmp_path, transport, make_fetchers, settings):
    """Test that cards and grid together stay under the topic ceiling."""
    transport.responses["/orgs/acme/repos"] = [api_repo(f"acme/r{i}") for i in range(4)]
    transport.responses["/users/alice/repos"] = [api_repo(f"alice/u{i}") for i in range(4)]
    for i in range(4):
        transport.responses[f"/repos/acme/r{i}/topics"] = {"names": ["org"]}
        transport.responses[f"/repos/alice/u{i}/topics"] = {"names": ["user"]}
    settings = dataclasses.replace(
        settings,
        topics_fetch_budget=5,
        orgs_config_src=_write(tmp_path, "orgs.json", [{"org": "acme"}])
    )

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.load_page(SortMode.NAME)

    page = asyncio.run(scenario())

    topic_calls = [c for c in transport.calls if c.endswith("/topics")]
    assert len(topic_calls) == 5
    assert page.topic_fetches == 5
    assert len(page.org_cards) == 1
    assert page.profile_url == "https://github.com/alice?tab=repositories"
    assert page.to_dict()["grid"]["sort"] == "name"


def test_load_org_configs_drops_malformed(tmp_path):
    """Test that bad entries are dropped and bad sources yield no cards."""
    good = _write(tmp_path, "orgs.json", [{"org": "acme"}, {"title": "no org"}, 7])
    broken = tmp_path / "broken.json"
    broken.write_text("[{", encoding="utf-8")

    async def scenario():
        return (
            await load_org_configs(good),
            await load_org_configs(str(broken)),
            await load_org_configs(str(tmp_path / "missing.json")),
            await load_org_configs(""),
        )

    configs, from_broken, from_missing, from_empty = asyncio.run(scenario())

    assert [c.org for c in configs] == ["acme"]
    assert from_broken == from_missing == from_empty == []


def test_org_in_cards_and_grid_is_fetched_once(tmp_path, transport, make_fetchers, settings):
    """Test that a card org also listed for the grid costs one request on a cold cache."""
    transport.responses["/orgs/acme/repos"] = [api_repo("acme/rocket", topics=["rust"])]
    transport.responses["/users/alice/repos"] = [api_repo("alice/dots", topics=["x"])]
    settings = dataclasses.replace(
        settings,
        grid_orgs=("acme",),
        orgs_config_src=_write(tmp_path, "orgs.json", [{"org": "acme"}])
    )

    async def scenario():
        service = AggregatorService(make_fetchers(), settings)
        return await service.load_page(SortMode.NAME)

    page = asyncio.run(scenario())

    assert transport.calls.count("/orgs/acme/repos") == 1
    assert [r.full_name for r in page.org_cards[0].repositories] == ["acme/rocket"]
    assert [r.full_name for r in page.grid.repositories] == ["alice/dots", "acme/rocket"]
