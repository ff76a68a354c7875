"""Shared ceiling on deep topic fetches for one aggregation run."""
import dataclasses
import logging
from typing import List, Sequence
from repo_aggregator.application.source_fetchers import SourceFetchers
from repo_aggregator.domain.errors import AggregatorError
from repo_aggregator.domain.models import RepositoryRecord, normalize_topics


logger = logging.getLogger(__name__)


class TopicBudget:
    """Decrementing counter owned by one run and passed to every deep fetcher.

    Callers read ``remaining`` to size their batch and call ``consume`` once
    per attempted fetch, successful or not. There is no lock: concurrent
    callers may size batches from the same reading, in which case the
    per-fetch check in ``ensure_topics`` stops them at zero.
    """

    def __init__(self, ceiling: int = 32):
        self._ceiling = max(0, ceiling)
        self._remaining = self._ceiling
        self._attempts = 0

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._remaining <= 0

    def consume(self) -> bool:
        """Take one unit. Returns False, leaving the counter at zero, when empty."""
        if self._remaining <= 0:
            return False
        self._remaining -= 1
        self._attempts += 1
        return True


def needs_topics(record: RepositoryRecord) -> bool:
    return not record.topics


async def ensure_topics(
    records: Sequence[RepositoryRecord],
    fetchers: SourceFetchers,
    budget: TopicBudget,
    local_limit: int
) -> List[RepositoryRecord]:
    """Deep-fetch topics for records whose list response omitted them.

    At most ``min(local_limit, budget.remaining)`` candidates are attempted,
    in the order given. A failed fetch still costs one unit and leaves the
    record without topics.

    Returns:
        A new list, same order, with fetched topics filled in
    """
    result = list(records)
    allowance = max(0, min(local_limit, budget.remaining))
    candidates = [i for i, record in enumerate(result) if needs_topics(record)][:allowance]

    for index in candidates:
        if not budget.consume():
            logger.info("Topic fetch budget exhausted, skipping remaining deep fetches")
            break
        record = result[index]
        try:
            topics = await fetchers.fetch_repo_topics(record.full_name)
        except AggregatorError as e:
            logger.warning(f"Could not fetch topics for {record.full_name}: {e}")
            continue
        result[index] = dataclasses.replace(record, topics=normalize_topics(topics))

    return result
