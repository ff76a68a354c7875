"""Main entry point for the repository aggregator.

Runs one page load (organization cards + repository grid) and writes the
result as JSON for the rendering layer.

Usage:
    python aggregate_repos.py [stars|name|pushed]

Passing a sort mode stores it as the new preference.
"""
import asyncio
import json
import logging
import sys
from repo_aggregator.application.aggregator_service import AggregatorService
from repo_aggregator.application.preferences import SortPreference
from repo_aggregator.application.source_fetchers import SourceFetchers
from repo_aggregator.config import Settings, get_connection_string
from repo_aggregator.domain.cache_interface import ICacheStore
from repo_aggregator.domain.models import SortMode
from repo_aggregator.infrastructure.cache_store import InMemoryCacheStore, JsonFileCacheStore
from repo_aggregator.infrastructure.dispatcher import RequestDispatcher
from repo_aggregator.infrastructure.github_client import GitHubRestClient
from repo_aggregator.infrastructure.postgres_cache_store import PostgresCacheStore


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_cache_store(settings: Settings) -> ICacheStore:
    """Pick the cache backend named by CACHE_BACKEND."""
    if settings.cache_backend == "postgres":
        return PostgresCacheStore(get_connection_string())
    if settings.cache_backend == "memory":
        return InMemoryCacheStore()
    return JsonFileCacheStore(settings.cache_path)


def resolve_sort(preference: SortPreference, settings: Settings, argv) -> SortMode:
    """A sort mode given on the command line wins and is persisted."""
    default = SortMode.parse(settings.default_sort)
    if len(argv) > 1:
        mode = SortMode.parse(argv[1], default)
        preference.save(mode)
        return mode
    return preference.load(default)


async def main():
    """Execute one aggregation run."""
    settings = Settings.from_env()
    logger.info(f"Aggregating repositories for {settings.github_user}")

    # Initialize infrastructure components
    cache = build_cache_store(settings)
    transport = GitHubRestClient(base_url=settings.api_url)
    dispatcher = RequestDispatcher(gap_seconds=settings.request_gap_ms / 1000)
    fetchers = SourceFetchers(
        transport,
        dispatcher,
        cache,
        org_ttl_ms=settings.org_cache_ttl_ms,
        grid_ttl_ms=settings.grid_cache_ttl_ms,
        topic_ttl_ms=settings.topic_cache_ttl_ms
    )

    # Initialize application service
    aggregator = AggregatorService(fetchers, settings)
    sort = resolve_sort(SortPreference(cache), settings, sys.argv)

    try:
        result = await aggregator.load_page(sort)

        with open(settings.output_file, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info("=" * 50)
        logger.info("Aggregation Summary:")
        logger.info(f"  Organization cards: {len(result.org_cards)}")
        logger.info(f"  Grid: {result.grid.status.message}")
        logger.info(f"  Topic fetches: {result.topic_fetches}/{settings.topics_fetch_budget}")
        logger.info(f"  Requests dispatched: {dispatcher.dispatched}")
        logger.info(f"  Output: {settings.output_file}")
        logger.info("=" * 50)

    except Exception as e:
        logger.error(f"Aggregation failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await dispatcher.close()
        await transport.close()
        cache.close()


if __name__ == "__main__":
    asyncio.run(main())
