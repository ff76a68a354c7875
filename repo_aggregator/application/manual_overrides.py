"""Manual repository overrides: loading, normalization and hydration."""
import dataclasses
import logging
import math
from typing import Any, Dict, List, Optional
from repo_aggregator.application.source_fetchers import SourceFetchers
from repo_aggregator.domain.errors import AggregatorError, UnresolvableIdentityError
from repo_aggregator.domain.models import (
    RepositoryRecord,
    normalize_topics,
    parse_full_name,
    parse_timestamp
)
from repo_aggregator.infrastructure.json_source import load_json_array


logger = logging.getLogger(__name__)


# Display fields where an explicit manual value replaces the fetched one
OVERRIDABLE_FIELDS = ("name", "html_url", "description", "language", "archived", "fork", "private")


def _manual_stars(entry: Dict[str, Any]) -> Optional[int]:
    raw = entry.get("stars")
    if raw is None:
        raw = entry.get("stargazers_count")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return int(value)


def normalize_manual_entry(entry: Any) -> RepositoryRecord:
    """Turn one loosely-typed override entry into a RepositoryRecord.

    Identity comes from ``full_name`` or, failing that, from the path of
    ``html_url``/``url``. The returned record remembers which fields the
    entry set explicitly in ``manual_fields``.

    Raises:
        UnresolvableIdentityError: When no ``owner/name`` can be derived
    """
    if not isinstance(entry, dict):
        raise UnresolvableIdentityError(repr(entry))

    url = entry.get("html_url") or entry.get("url")
    full_name = str(entry.get("full_name") or "").strip() or parse_full_name(url)
    if not full_name or "/" not in full_name:
        raise UnresolvableIdentityError(full_name or url)

    manual_fields = set()
    for key in ("name", "description", "language", "archived", "fork", "private"):
        if entry.get(key) is not None:
            manual_fields.add(key)
    if url:
        manual_fields.add("html_url")

    stars = _manual_stars(entry)
    if stars is not None:
        manual_fields.add("star_count")
    topics = normalize_topics(entry.get("topics"))
    if topics:
        manual_fields.add("topics")
    pushed_at = parse_timestamp(entry.get("pushed_at"))
    if pushed_at is not None:
        manual_fields.add("pushed_at")

    return RepositoryRecord(
        full_name=full_name,
        name=str(entry.get("name") or full_name.split("/")[1]).strip(),
        html_url=url or f"https://github.com/{full_name}",
        description=str(entry.get("description") or ""),
        language=str(entry.get("language") or ""),
        star_count=stars or 0,
        pushed_at=pushed_at,
        archived=bool(entry.get("archived")),
        fork=bool(entry.get("fork")),
        private=bool(entry.get("private")),
        topics=topics,
        pinned=bool(entry.get("pinned")),
        from_override=True,
        manual_fields=frozenset(manual_fields),
    )


def normalize_manual_entries(entries: List[Any]) -> List[RepositoryRecord]:
    """Normalize a batch, dropping entries without a derivable identity."""
    records = []
    for entry in entries:
        try:
            records.append(normalize_manual_entry(entry))
        except (UnresolvableIdentityError, ValueError) as e:
            logger.warning(f"Dropping manual repository entry: {e}")
    return records


async def load_manual_overrides(src: str) -> List[RepositoryRecord]:
    """Load and normalize the manual override source; any failure yields []."""
    if not src:
        return []
    try:
        entries = await load_json_array(src)
    except AggregatorError as e:
        logger.warning(f"Manual repositories unavailable: {e}")
        return []
    return normalize_manual_entries(entries)


def merge_override(manual: RepositoryRecord, fetched: RepositoryRecord) -> RepositoryRecord:
    """Merge live details under a manual record, manual winning unless absent."""
    merged = dataclasses.replace(
        fetched,
        full_name=manual.full_name,
        star_count=manual.star_count if "star_count" in manual.manual_fields else fetched.star_count,
        topics=manual.topics if manual.topics else fetched.topics,
        pushed_at=manual.pushed_at or fetched.pushed_at,
        pinned=manual.pinned,
        from_override=True,
        manual_fields=manual.manual_fields,
    )
    overrides = {
        name: getattr(manual, name)
        for name in OVERRIDABLE_FIELDS
        if name in manual.manual_fields
    }
    return dataclasses.replace(merged, **overrides) if overrides else merged


class HydrationEngine:
    """Enriches manual records with live repository details.

    A failed or unusable detail fetch keeps the manual record unchanged, so
    a curated entry is never dropped because GitHub could not be reached.
    """

    def __init__(self, fetchers: SourceFetchers):
        self._fetchers = fetchers

    async def hydrate(self, records: List[RepositoryRecord]) -> List[RepositoryRecord]:
        out = []
        for manual in records:
            try:
                details = await self._fetchers.fetch_repo_details(manual.full_name)
                fetched = RepositoryRecord.from_api(details)
            except AggregatorError as e:
                logger.warning(f"Manual repo hydrate failed for {manual.full_name}: {e}")
                out.append(manual)
                continue
            out.append(merge_override(manual, fetched))

        logger.info(f"Hydrated {len(out)} manual repositories")
        return out
