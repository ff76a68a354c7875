"""Cached, rate-limited accessors for the four GitHub sources."""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote
from repo_aggregator.config import (
    GRID_CACHE_TTL_MS,
    ORG_CACHE_TTL_MS,
    TOPIC_CACHE_TTL_MS
)
from repo_aggregator.domain.cache_interface import ICacheStore
from repo_aggregator.domain.github_interface import IGitHubTransport
from repo_aggregator.infrastructure.dispatcher import RequestDispatcher


logger = logging.getLogger(__name__)


PAGE_SIZE = 100


def user_repos_key(user: str) -> str:
    return f"user-repos:{user}"


def org_repos_key(org: str) -> str:
    return f"org-repos:{org}"


def repo_detail_key(full_name: str) -> str:
    return f"repo-detail:{full_name}"


def repo_topics_key(full_name: str) -> str:
    return f"repo-topics:{full_name}"


def _repo_path(full_name: str) -> str:
    owner, name = full_name.split("/", 1)
    return f"/repos/{quote(owner, safe='')}/{quote(name, safe='')}"


class SourceFetchers:
    """Typed GitHub accessors sharing one dispatcher and one cache.

    Every accessor follows the same pattern: serve a fresh cache entry
    without dispatching; otherwise dispatch the request, overwrite the entry
    on success and let the error propagate on failure. Stale entries stay
    readable through ``cached_payload`` for callers that want a fallback.
    Callers missing the same key at the same time wait on one request.
    """

    def __init__(
        self,
        transport: IGitHubTransport,
        dispatcher: RequestDispatcher,
        cache: ICacheStore,
        clock: Callable[[], float] = time.time,
        org_ttl_ms: int = ORG_CACHE_TTL_MS,
        grid_ttl_ms: int = GRID_CACHE_TTL_MS,
        topic_ttl_ms: int = TOPIC_CACHE_TTL_MS
    ):
        """Initialize fetchers.

        Args:
            transport: GitHub REST transport
            dispatcher: Shared rate-limited dispatcher
            cache: Shared cache store
            clock: Returns the current time in epoch seconds
            org_ttl_ms: TTL for organization repository lists
            grid_ttl_ms: TTL for user repository lists and repository details
            topic_ttl_ms: TTL for per-repository topic lists
        """
        self._transport = transport
        self._dispatcher = dispatcher
        self._cache = cache
        self._clock = clock
        self._org_ttl_ms = org_ttl_ms
        self._grid_ttl_ms = grid_ttl_ms
        self._topic_ttl_ms = topic_ttl_ms
        self._in_flight: Dict[str, asyncio.Future] = {}

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def cached_payload(self, key: str) -> Optional[Any]:
        """Return whatever is cached under ``key``, fresh or stale."""
        entry = self._cache.get(key)
        return entry.payload if entry is not None else None

    async def _cached_fetch(
        self,
        key: str,
        ttl_ms: int,
        fetch: Callable[[], Awaitable[Any]]
    ) -> Any:
        entry = self._cache.get(key)
        if entry is not None and entry.is_fresh(self.now_ms(), ttl_ms):
            logger.debug(f"Cache hit for {key}")
            return entry.payload

        # Concurrent misses on one key share a single dispatched request
        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(key, fetch))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(pending)

    async def _refresh(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        payload = await self._dispatcher.submit(fetch)
        if not self._cache.set(key, payload, self.now_ms()):
            logger.warning(f"Cache write dropped for {key}")
        return payload

    async def fetch_user_repos(self, user: str) -> List[Dict[str, Any]]:
        """Fetch one page of a user's public repositories."""
        path = f"/users/{quote(user, safe='')}/repos"
        params = {"per_page": PAGE_SIZE, "sort": "updated"}
        data = await self._cached_fetch(
            user_repos_key(user),
            self._grid_ttl_ms,
            lambda: self._transport.get_json(path, params)
        )
        return data if isinstance(data, list) else []

    async def fetch_org_repos(self, org: str) -> List[Dict[str, Any]]:
        """Fetch one page of an organization's public repositories."""
        path = f"/orgs/{quote(org, safe='')}/repos"
        params = {"per_page": PAGE_SIZE, "type": "public", "sort": "updated"}
        data = await self._cached_fetch(
            org_repos_key(org),
            self._org_ttl_ms,
            lambda: self._transport.get_json(path, params)
        )
        return data if isinstance(data, list) else []

    async def fetch_repo_details(self, full_name: str) -> Dict[str, Any]:
        """Fetch full metadata for a single ``owner/name`` repository."""
        path = _repo_path(full_name)
        data = await self._cached_fetch(
            repo_detail_key(full_name),
            self._grid_ttl_ms,
            lambda: self._transport.get_json(path)
        )
        return data if isinstance(data, dict) else {}

    async def fetch_repo_topics(self, full_name: str) -> List[str]:
        """Fetch the topic names of a single repository (the deep fetch)."""
        path = f"{_repo_path(full_name)}/topics"

        async def fetch() -> List[str]:
            data = await self._transport.get_json(path)
            names = data.get("names") if isinstance(data, dict) else None
            return names if isinstance(names, list) else []

        return await self._cached_fetch(
            repo_topics_key(full_name),
            self._topic_ttl_ms,
            fetch
        )
