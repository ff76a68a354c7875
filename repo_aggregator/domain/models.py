"""Domain models representing core business entities."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple
from urllib.parse import urlparse

from repo_aggregator.domain.errors import ConfigurationError, UnresolvableIdentityError


def parse_full_name(url: Optional[str]) -> Optional[str]:
    """Derive ``owner/name`` from a canonical web URL path.

    Returns None when the URL has no two-segment path.
    """
    if not url:
        return None
    try:
        path = urlparse(url.strip()).path
    except ValueError:
        return None
    full_name = path.strip("/")
    if full_name.count("/") != 1:
        return None
    owner, name = full_name.split("/")
    if not owner or not name:
        return None
    return full_name


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the GitHub API."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


TIME_UNITS = (
    ("y", 31536000),
    ("mo", 2592000),
    ("d", 86400),
    ("h", 3600),
    ("m", 60),
)


def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Compact relative time, e.g. ``3d ago``."""
    if moment is None:
        return "unknown"
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = max(0.0, (now - moment).total_seconds())
    for unit, size in TIME_UNITS:
        if seconds >= size:
            return f"{int(seconds // size)}{unit} ago"
    return "just now"


def normalize_topics(topics: Any) -> Tuple[str, ...]:
    """Lowercase topic names, keeping first-seen order."""
    if not isinstance(topics, (list, tuple)):
        return ()
    seen = []
    for topic in topics:
        key = str(topic).strip().lower()
        if key and key not in seen:
            seen.append(key)
    return tuple(seen)


@dataclass(frozen=True)
class RepositoryRecord:
    """Immutable repository record flowing through the aggregation pipeline.

    ``full_name`` is the identity used for de-duplication. ``manual_fields``
    lists the fields an override entry set explicitly; hydration uses it to
    decide which side of a merge wins.
    """
    full_name: str
    name: str
    html_url: str
    description: str = ""
    language: str = ""
    star_count: int = 0
    pushed_at: Optional[datetime] = None
    archived: bool = False
    fork: bool = False
    private: bool = False
    topics: Tuple[str, ...] = ()
    pinned: bool = False
    from_override: bool = False
    manual_fields: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        parts = self.full_name.split("/") if self.full_name else []
        if len(parts) != 2 or not all(parts):
            raise UnresolvableIdentityError(self.full_name)
        if self.star_count < 0:
            raise ValueError(f"star_count must be non-negative for {self.full_name}")

    @property
    def owner(self) -> str:
        """Returns the owning user or organization."""
        return self.full_name.split("/")[0]

    @property
    def repo_name(self) -> str:
        """Returns the repository part of the full name."""
        return self.full_name.split("/")[1]

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'RepositoryRecord':
        """Build a record from a GitHub REST repository object."""
        full_name = data.get("full_name") or parse_full_name(data.get("html_url"))
        if not full_name:
            raise UnresolvableIdentityError(str(data.get("name")))
        stars = data.get("stargazers_count")
        return cls(
            full_name=full_name,
            name=data.get("name") or full_name.split("/")[1],
            html_url=data.get("html_url") or f"https://github.com/{full_name}",
            description=data.get("description") or "",
            language=data.get("language") or "",
            star_count=max(0, int(stars)) if isinstance(stars, (int, float)) else 0,
            pushed_at=parse_timestamp(data.get("pushed_at")),
            archived=bool(data.get("archived")),
            fork=bool(data.get("fork")),
            private=bool(data.get("private")),
            topics=normalize_topics(data.get("topics")),
        )

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Serializable view handed to the rendering collaborator.

        Args:
            now: Reference time for the relative ``updated`` label
        """
        return {
            "full_name": self.full_name,
            "name": self.name,
            "html_url": self.html_url,
            "description": self.description,
            "language": self.language,
            "stargazers_count": self.star_count,
            "pushed_at": self.pushed_at.isoformat() if self.pushed_at else None,
            "updated": time_ago(self.pushed_at, now),
            "archived": self.archived,
            "fork": self.fork,
            "topics": list(self.topics),
            "pinned": self.pinned,
        }


class SortMode(str, Enum):
    """Grid and card sort orders."""
    STARS = "stars"
    NAME = "name"
    PUSHED = "pushed"

    @classmethod
    def parse(cls, value: Any, default: 'SortMode' = None) -> 'SortMode':
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.PUSHED


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "")
    return bool(value)


def _as_int(value: Any, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class OrgCardConfig:
    """Declarative description of one organization panel."""
    org: str
    title: str
    description: str = ""
    limit: int = 0
    exclude_forks: bool = True
    exclude_archived: bool = True
    sort: SortMode = SortMode.PUSHED
    show_all_link: bool = True
    pinned_badge: bool = True
    topics_max: int = 0
    topics_deep_limit: int = 24

    @classmethod
    def from_dict(cls, data: Any) -> 'OrgCardConfig':
        """Validate one JSON object from the organization configuration source.

        Raises:
            ConfigurationError: When the entry is not an object or has no org
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"org card entry must be an object, got {type(data).__name__}")
        org = str(data.get("org") or "").strip()
        if not org:
            raise ConfigurationError("org card entry is missing 'org'")
        return cls(
            org=org,
            title=str(data.get("title") or org),
            description=str(data.get("description") or ""),
            limit=_as_int(data.get("limit"), 0),
            exclude_forks=_as_bool(data.get("exclude_forks"), True),
            exclude_archived=_as_bool(data.get("exclude_archived"), True),
            sort=SortMode.parse(data.get("sort", "pushed")),
            show_all_link=_as_bool(data.get("show_all_link"), True),
            pinned_badge=_as_bool(data.get("pinned_badge"), True),
            topics_max=_as_int(data.get("topics_max"), 0),
            topics_deep_limit=_as_int(data.get("topics_deep_limit"), 24) or 24,
        )


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with the epoch-millisecond time it was stored."""
    key: str
    stored_at: int
    payload: Any

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.stored_at < ttl_ms


class LoadOutcome(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadStatus:
    """Outcome of a load, as shown to the user."""
    outcome: LoadOutcome
    message: str


@dataclass(frozen=True)
class OrgCardResult:
    """Everything the renderer needs for one organization panel."""
    config: OrgCardConfig
    repositories: Tuple[RepositoryRecord, ...] = ()
    topic_counts: Tuple[Tuple[str, int], ...] = ()
    view_all_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "org": self.config.org,
            "title": self.config.title,
            "description": self.config.description,
            "pinned_badge": self.config.pinned_badge,
            "repositories": [repo.to_dict(now) for repo in self.repositories],
            "topics": [[topic, count] for topic, count in self.topic_counts],
            "view_all_url": self.view_all_url,
            "error": self.error,
        }


@dataclass(frozen=True)
class GridResult:
    """Final ordered grid plus its load status."""
    repositories: Tuple[RepositoryRecord, ...]
    status: LoadStatus
    sort: SortMode

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "sort": self.sort.value,
            "status": self.status.message,
            "outcome": self.status.outcome.value,
            "repositories": [repo.to_dict(now) for repo in self.repositories],
        }


@dataclass(frozen=True)
class PageLoadResult:
    """Everything produced by one aggregation run for the renderer."""
    org_cards: Tuple[OrgCardResult, ...]
    grid: GridResult
    profile_url: str = ""
    topic_fetches: int = 0

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Rendering document; relative times are computed against ``now``."""
        now = now or datetime.now(timezone.utc)
        return {
            "profile_url": self.profile_url,
            "org_cards": [card.to_dict(now) for card in self.org_cards],
            "grid": self.grid.to_dict(now),
            "topic_fetches": self.topic_fetches,
        }
