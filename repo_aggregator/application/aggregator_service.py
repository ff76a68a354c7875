"""Aggregator service orchestrating one page load of organization cards and the grid."""
import asyncio
import logging
from typing import Any, List, Optional, Sequence, Tuple
from repo_aggregator.application.manual_overrides import HydrationEngine, load_manual_overrides
from repo_aggregator.application.source_fetchers import (
    SourceFetchers,
    org_repos_key,
    user_repos_key
)
from repo_aggregator.application.topic_budget import TopicBudget, ensure_topics
from repo_aggregator.config import Settings
from repo_aggregator.domain.errors import (
    AggregatorError,
    ConfigurationError,
    UnresolvableIdentityError,
    error_hint
)
from repo_aggregator.domain.models import (
    GridResult,
    LoadOutcome,
    LoadStatus,
    OrgCardConfig,
    OrgCardResult,
    PageLoadResult,
    RepositoryRecord,
    SortMode
)
from repo_aggregator.domain.views import (
    apply_filters,
    merge_by_identity,
    pinned_first,
    sort_records,
    topic_frequency
)
from repo_aggregator.infrastructure.json_source import load_json_array


logger = logging.getLogger(__name__)


def to_records(payload: Any, source: str) -> List[RepositoryRecord]:
    """Convert an API list response into records, skipping unusable items."""
    records = []
    for item in payload if isinstance(payload, list) else []:
        if not isinstance(item, dict):
            continue
        try:
            records.append(RepositoryRecord.from_api(item))
        except (UnresolvableIdentityError, ValueError) as e:
            logger.warning(f"Skipping repository from {source}: {e}")
    return records


async def load_org_configs(src: str) -> List[OrgCardConfig]:
    """Load organization card configs; a missing or malformed source yields []."""
    if not src:
        return []
    try:
        entries = await load_json_array(src)
    except ConfigurationError as e:
        logger.error(f"Organization cards unavailable: {e}")
        return []

    configs = []
    for entry in entries:
        try:
            configs.append(OrgCardConfig.from_dict(entry))
        except ConfigurationError as e:
            logger.warning(f"Dropping organization card entry: {e}")
    return configs


class AggregatorService:
    """Application service building organization cards and the repository grid.

    Coordinates fetchers, hydration and the topic budget. Errors are recovered
    per source: a card failure stays inside that card, a grid source falls
    back to its stale cache, and a hydration failure keeps the manual record.
    """

    def __init__(
        self,
        fetchers: SourceFetchers,
        settings: Settings,
        hydration: Optional[HydrationEngine] = None
    ):
        """Initialize aggregator service.

        Args:
            fetchers: Cached, rate-limited source fetchers
            settings: Run configuration (user, orgs, filters, limits)
            hydration: Hydration engine, built from ``fetchers`` when omitted
        """
        self._fetchers = fetchers
        self._settings = settings
        self._hydration = hydration or HydrationEngine(fetchers)

    async def build_org_card(self, config: OrgCardConfig, budget: TopicBudget) -> OrgCardResult:
        """Fill one organization card; failures become an inline error."""
        try:
            payload = await self._fetchers.fetch_org_repos(config.org)
        except AggregatorError as e:
            logger.error(f"Could not load {config.org} repos: {e}")
            return OrgCardResult(
                config=config,
                error=f"Could not load {config.org} repos. {error_hint(e)}".strip()
            )

        filtered = apply_filters(
            to_records(payload, f"org {config.org}"),
            exclude_forks=config.exclude_forks,
            exclude_archived=config.exclude_archived
        )
        filtered = sort_records(filtered, config.sort)
        filtered = await ensure_topics(filtered, self._fetchers, budget, config.topics_deep_limit)

        limited = filtered[:config.limit] if config.limit > 0 else filtered
        view_all_url = None
        if config.show_all_link and config.limit > 0 and len(filtered) > len(limited):
            view_all_url = f"https://github.com/{config.org}?tab=repositories"

        return OrgCardResult(
            config=config,
            repositories=tuple(limited),
            topic_counts=tuple(topic_frequency(filtered, config.topics_max)),
            view_all_url=view_all_url
        )

    async def build_org_cards(self, configs: Sequence[OrgCardConfig], budget: TopicBudget) -> List[OrgCardResult]:
        cards = []
        for config in configs:
            cards.append(await self.build_org_card(config, budget))
        logger.info(f"Built {len(cards)} organization cards")
        return cards

    async def _grid_source(self, label: str, key: str, fetch) -> Tuple[List[RepositoryRecord], str, Optional[str]]:
        """Fetch one grid list, falling back to its stale cache entry.

        Returns:
            Tuple of (records, state, hint) with state one of
            ``live``, ``stale`` or ``failed``
        """
        try:
            return to_records(await fetch(), label), "live", None
        except AggregatorError as e:
            stale = self._fetchers.cached_payload(key)
            if isinstance(stale, list):
                logger.warning(f"Using stale cache for {label}: {e}")
                return to_records(stale, label), "stale", None
            logger.error(f"Could not load {label}: {e}")
            return [], "failed", error_hint(e)

    async def _manual_stream(self) -> List[RepositoryRecord]:
        manual = await load_manual_overrides(self._settings.manual_repos_src)
        return await self._hydration.hydrate(manual)

    async def fetch_all_for_grid(self) -> Tuple[List[RepositoryRecord], List[str], List[Tuple[str, str]]]:
        """Run the user, organization and manual streams concurrently and merge them."""
        settings = self._settings
        sources = [
            (
                f"user {settings.github_user}",
                user_repos_key(settings.github_user),
                lambda: self._fetchers.fetch_user_repos(settings.github_user)
            )
        ]
        for org in settings.grid_orgs:
            sources.append((
                f"org {org}",
                org_repos_key(org),
                lambda org=org: self._fetchers.fetch_org_repos(org)
            ))

        results = await asyncio.gather(
            *(self._grid_source(label, key, fetch) for label, key, fetch in sources),
            self._manual_stream()
        )
        fetched, manual = results[:-1], results[-1]

        # Manual records go last so they win on identity collisions
        merged = merge_by_identity(*(records for records, _, _ in fetched), manual)

        stale = [label for (label, _, _), (_, state, _) in zip(sources, fetched) if state == "stale"]
        failed = [
            (label, hint)
            for (label, _, _), (_, state, hint) in zip(sources, fetched)
            if state == "failed"
        ]
        return merged, stale, failed

    @staticmethod
    def grid_status(shown: int, merged: int, stale: List[str], failed: List[Tuple[str, str]]) -> LoadStatus:
        """Status line: repository count, degraded sources, or failure with hint."""
        if failed and not merged:
            hint = next((h for _, h in failed if h), "")
            return LoadStatus(
                LoadOutcome.FAILED,
                f"Could not load repositories from GitHub. {hint}".strip()
            )
        notes = []
        if stale:
            notes.append(f"Showing cached data for: {', '.join(stale)}")
        if failed:
            notes.append(f"Could not load: {', '.join(label for label, _ in failed)}")
        outcome = LoadOutcome.DEGRADED if notes else LoadOutcome.SUCCESS
        return LoadStatus(outcome, "; ".join([f"{shown} repositories"] + notes))

    async def build_grid(self, sort: SortMode, budget: TopicBudget) -> GridResult:
        """Build the final ordered grid: merge, filter, sort, topics, pinned first."""
        merged, stale, failed = await self.fetch_all_for_grid()

        repos = apply_filters(
            merged,
            exclude_forks=self._settings.exclude_forks,
            exclude_archived=self._settings.exclude_archived
        )
        repos = sort_records(repos, sort)
        repos = await ensure_topics(repos, self._fetchers, budget, self._settings.grid_topics_deep_limit)
        repos = pinned_first(repos, self._settings.pinned)

        status = self.grid_status(len(repos), len(merged), stale, failed)
        logger.info(f"Grid built: {status.message}")
        return GridResult(repositories=tuple(repos), status=status, sort=sort)

    async def load_page(self, sort: SortMode) -> PageLoadResult:
        """Run one full page load with a fresh topic budget."""
        budget = TopicBudget(self._settings.topics_fetch_budget)
        configs = await load_org_configs(self._settings.orgs_config_src)

        cards, grid = await asyncio.gather(
            self.build_org_cards(configs, budget),
            self.build_grid(sort, budget)
        )

        logger.info(
            f"Page load finished: {len(cards)} cards, {len(grid.repositories)} grid repositories, "
            f"{budget.attempts}/{budget.ceiling} topic fetches"
        )
        return PageLoadResult(
            org_cards=tuple(cards),
            grid=grid,
            profile_url=self._settings.profile_url,
            topic_fetches=budget.attempts
        )
