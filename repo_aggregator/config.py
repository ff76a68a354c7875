"""Settings loaded from environment variables (and .env files)."""
import os
from dataclasses import dataclass
from typing import Optional, Tuple
from dotenv import load_dotenv


MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS

ORG_CACHE_TTL_MS = 30 * MINUTE_MS
GRID_CACHE_TTL_MS = 30 * MINUTE_MS
TOPIC_CACHE_TTL_MS = 7 * DAY_MS


def _split_list(value: Optional[str]) -> Tuple[str, ...]:
    return tuple(part.strip() for part in (value or "").split(",") if part.strip())


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() != "false"


def get_connection_string() -> str:
    """Build PostgreSQL connection string from environment variables."""
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    database = os.getenv("POSTGRES_DB", "repo_aggregator")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")

    return f"host={host} port={port} dbname={database} user={user} password={password}"


@dataclass(frozen=True)
class Settings:
    """Configuration for one aggregation run."""
    github_user: str = "octocat"
    grid_orgs: Tuple[str, ...] = ()
    exclude_forks: bool = True
    exclude_archived: bool = True
    pinned: Tuple[str, ...] = ()
    orgs_config_src: str = ""
    manual_repos_src: str = ""
    api_url: str = "https://api.github.com"
    request_gap_ms: int = 600
    topics_fetch_budget: int = 32
    grid_topics_deep_limit: int = 24
    cache_backend: str = "file"
    cache_path: str = ".cache/repo_aggregator.json"
    output_file: str = "showcase.json"
    org_cache_ttl_ms: int = ORG_CACHE_TTL_MS
    grid_cache_ttl_ms: int = GRID_CACHE_TTL_MS
    topic_cache_ttl_ms: int = TOPIC_CACHE_TTL_MS
    default_sort: str = "pushed"

    @property
    def profile_url(self) -> str:
        return f"https://github.com/{self.github_user}?tab=repositories"

    @classmethod
    def from_env(cls) -> 'Settings':
        """Read settings from the environment, loading .env or env first."""
        load_dotenv('.env') or load_dotenv('env')

        return cls(
            github_user=os.getenv("GITHUB_USER", "octocat").strip() or "octocat",
            grid_orgs=_split_list(os.getenv("GITHUB_ORGS")),
            exclude_forks=_flag("EXCLUDE_FORKS", True),
            exclude_archived=_flag("EXCLUDE_ARCHIVED", True),
            pinned=tuple(p.lower() for p in _split_list(os.getenv("PINNED_REPOS"))),
            orgs_config_src=os.getenv("ORGS_CONFIG_SRC", ""),
            manual_repos_src=os.getenv("MANUAL_REPOS_SRC", ""),
            api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            request_gap_ms=int(os.getenv("REQUEST_GAP_MS", "600")),
            topics_fetch_budget=int(os.getenv("TOPICS_FETCH_BUDGET", "32")),
            grid_topics_deep_limit=int(os.getenv("GRID_TOPICS_DEEP_LIMIT", "24")),
            cache_backend=os.getenv("CACHE_BACKEND", "file").strip().lower(),
            cache_path=os.getenv("CACHE_PATH", ".cache/repo_aggregator.json"),
            output_file=os.getenv("OUTPUT_FILE", "showcase.json"),
            default_sort=os.getenv("SORT_MODE", "pushed"),
        )
