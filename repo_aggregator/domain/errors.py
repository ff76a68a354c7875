"""Error taxonomy shared by the fetchers, loaders and aggregator."""
from enum import Enum
from typing import Optional


class UpstreamErrorKind(str, Enum):
    """Classification of a non-success HTTP response."""
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    OTHER = "other"


class NetworkHint(str, Enum):
    """Likely cause of a request that got no response at all."""
    OFFLINE = "offline"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


UPSTREAM_MESSAGES = {
    UpstreamErrorKind.RATE_LIMITED: "GitHub rate limit/abuse detection. Try again later.",
    UpstreamErrorKind.NOT_FOUND: "Not found (check username/org name).",
    UpstreamErrorKind.SERVER_ERROR: "GitHub server error.",
}

NETWORK_HINTS = {
    NetworkHint.OFFLINE: "You appear to be offline.",
    NetworkHint.BLOCKED: "Connection blocked by a proxy, firewall or TLS policy while contacting api.github.com.",
    NetworkHint.UNKNOWN: "",
}


class AggregatorError(Exception):
    """Base class for every error raised by this package."""
    pass


class UpstreamError(AggregatorError):
    """Raised when the upstream API answers with a non-success status."""

    def __init__(self, kind: UpstreamErrorKind, resource: str, status: Optional[int] = None, body: str = ""):
        self.kind = kind
        self.resource = resource
        self.status = status
        message = UPSTREAM_MESSAGES.get(kind, f"HTTP {status}")
        detail = f" :: {body[:200]}" if body else ""
        super().__init__(f"{message} @ {resource}{detail}")

    @property
    def hint(self) -> str:
        return UPSTREAM_MESSAGES.get(self.kind, f"HTTP {self.status}")


class NetworkError(AggregatorError):
    """Raised when a request fails without any HTTP response."""

    def __init__(self, hint: NetworkHint, resource: str, cause: Optional[BaseException] = None):
        self.hint_kind = hint
        self.resource = resource
        self.cause = cause
        super().__init__(f"Network failure @ {resource}: {cause!r}")

    @property
    def hint(self) -> str:
        return NETWORK_HINTS[self.hint_kind]


class ConfigurationError(AggregatorError):
    """Raised for malformed configuration sources or entries."""
    pass


class UnresolvableIdentityError(AggregatorError):
    """Raised when no ``owner/name`` identity can be derived for a record."""

    def __init__(self, value: Optional[str]):
        self.value = value
        super().__init__(f"Cannot derive owner/name from {value!r}")


def error_hint(error: BaseException) -> str:
    """Human-actionable hint for any error, empty when there is none."""
    return getattr(error, "hint", "") or ""
