"""Tests for the shared topic fetch budget."""
import asyncio
from fakes import api_repo
from repo_aggregator.application.topic_budget import TopicBudget, ensure_topics
from repo_aggregator.domain.models import RepositoryRecord


def _records(*names, topics=None):
    return [RepositoryRecord.from_api(api_repo(f"acme/{n}", topics=topics)) for n in names]


def test_budget_never_goes_negative():
    """Test that consume stops at zero."""
    budget = TopicBudget(2)

    assert budget.consume() is True
    assert budget.consume() is True
    assert budget.consume() is False
    assert budget.remaining == 0
    assert budget.attempts == 2
    assert budget.exhausted


def test_ensure_topics_respects_local_limit(transport, make_fetchers):
    """Test that a caller fetches at most its own limit."""
    for name in "abcd":
        transport.responses[f"/repos/acme/{name}/topics"] = {"names": [f"t-{name}"]}
    budget = TopicBudget(10)

    async def scenario():
        return await ensure_topics(_records(*"abcd"), make_fetchers(), budget, local_limit=2)

    result = asyncio.run(scenario())

    assert [r.topics for r in result] == [("t-a",), ("t-b",), (), ()]
    assert budget.remaining == 8


def test_failed_fetch_still_costs_budget(transport, make_fetchers):
    """Test decrement-on-attempt, not on success."""
    transport.responses["/repos/acme/b/topics"] = {"names": ["ok"]}
    budget = TopicBudget(5)

    async def scenario():
        return await ensure_topics(_records("a", "b"), make_fetchers(), budget, local_limit=5)

    result = asyncio.run(scenario())

    assert result[0].topics == ()
    assert result[1].topics == ("ok",)
    assert budget.attempts == 2
    assert budget.remaining == 3


def test_records_with_topics_are_not_candidates(transport, make_fetchers):
    """Test that only topic-less records are deep-fetched."""
    records = _records("a", topics=["already"]) + _records("b")
    transport.responses["/repos/acme/b/topics"] = {"names": ["new"]}
    budget = TopicBudget(5)

    async def scenario():
        return await ensure_topics(records, make_fetchers(), budget, local_limit=5)

    result = asyncio.run(scenario())

    assert transport.calls == ["/repos/acme/b/topics"]
    assert [r.topics for r in result] == [("already",), ("new",)]
    assert records[1].topics == ()  # inputs untouched


def test_shared_budget_caps_total_attempts_across_callers(transport, make_fetchers):
    """Test that concurrent callers together never exceed the ceiling."""
    names = [f"r{i}" for i in range(10)]
    for name in names:
        transport.responses[f"/repos/acme/{name}/topics"] = {"names": ["x"]}
    budget = TopicBudget(7)

    async def scenario():
        fetchers = make_fetchers()
        await asyncio.gather(
            ensure_topics(_records(*names[:5]), fetchers, budget, local_limit=5),
            ensure_topics(_records(*names[5:]), fetchers, budget, local_limit=5),
        )

    asyncio.run(scenario())

    assert budget.remaining == 0
    assert budget.attempts == 7
    assert len(transport.calls) == 7


def test_exhausted_budget_skips_everything(transport, make_fetchers):
    """Test that no fetch happens once the budget is spent."""
    budget = TopicBudget(0)

    async def scenario():
        return await ensure_topics(_records("a", "b"), make_fetchers(), budget, local_limit=24)

    result = asyncio.run(scenario())

    assert transport.calls == []
    assert [r.topics for r in result] == [(), ()]
