"""Derived views over repository records: filters, sorting, pinning, topics."""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from repo_aggregator.domain.models import RepositoryRecord, SortMode


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def merge_by_identity(*sources: Iterable[RepositoryRecord]) -> List[RepositoryRecord]:
    """Flatten sources into one record per ``full_name``.

    Later sources replace earlier ones on collision; first-seen position is kept.
    """
    merged: Dict[str, RepositoryRecord] = {}
    for source in sources:
        for record in source:
            merged[record.full_name] = record
    return list(merged.values())


def apply_filters(
    records: Iterable[RepositoryRecord],
    exclude_forks: bool = True,
    exclude_archived: bool = True
) -> List[RepositoryRecord]:
    """Drop private repositories always, forks and archived ones on request."""
    out = [r for r in records if not r.private]
    if exclude_forks:
        out = [r for r in out if not r.fork]
    if exclude_archived:
        out = [r for r in out if not r.archived]
    return out


def _pushed_key(record: RepositoryRecord) -> datetime:
    pushed = record.pushed_at
    if pushed is None:
        return _EPOCH
    if pushed.tzinfo is None:
        return pushed.replace(tzinfo=timezone.utc)
    return pushed


def sort_records(records: Iterable[RepositoryRecord], mode: SortMode) -> List[RepositoryRecord]:
    """Sort by stars (desc, name asc on ties), name (asc) or last push (desc)."""
    if mode == SortMode.STARS:
        return sorted(records, key=lambda r: (-r.star_count, r.name.casefold(), r.name))
    if mode == SortMode.NAME:
        return sorted(records, key=lambda r: (r.name.casefold(), r.name))
    # sorted() stays stable with reverse=True
    return sorted(records, key=_pushed_key, reverse=True)


def is_pinned(record: RepositoryRecord, pinned_names: Sequence[str] = ()) -> bool:
    """A record is pinned explicitly or by a case-insensitive name/full-name match."""
    if record.pinned:
        return True
    return record.name.lower() in pinned_names or record.full_name.lower() in pinned_names


def pinned_first(records: Sequence[RepositoryRecord], pinned_names: Sequence[str] = ()) -> List[RepositoryRecord]:
    """Stable partition: pinned records first, order kept within each group."""
    pinned = [r for r in records if is_pinned(r, pinned_names)]
    rest = [r for r in records if not is_pinned(r, pinned_names)]
    return pinned + rest


def topic_frequency(records: Iterable[RepositoryRecord], limit: int = 0) -> List[Tuple[str, int]]:
    """Count lowercased topics, ordered by count desc then name asc.

    Args:
        records: Records to count across
        limit: Maximum entries returned, 0 for all
    """
    counts: Dict[str, int] = {}
    for record in records:
        for topic in record.topics:
            key = str(topic).lower()
            counts[key] = counts.get(key, 0) + 1
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return ordered[:limit] if limit > 0 else ordered
