"""GitHub REST API client implementation with error classification and retry logic."""
import asyncio
import logging
import socket
from typing import Any, Dict, Optional
import aiohttp
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)
from repo_aggregator.domain.errors import (
    NetworkError,
    NetworkHint,
    UpstreamError,
    UpstreamErrorKind
)
from repo_aggregator.domain.github_interface import IGitHubTransport


logger = logging.getLogger(__name__)


# Mercy preview lets list endpoints include `topics` most of the time
BASE_HEADERS = {
    "Accept": "application/vnd.github+json, application/vnd.github.mercy-preview+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


def classify_status(status: int) -> UpstreamErrorKind:
    """Map a non-success HTTP status to an error kind."""
    if status in (403, 429):
        return UpstreamErrorKind.RATE_LIMITED
    if status == 404:
        return UpstreamErrorKind.NOT_FOUND
    if status >= 500:
        return UpstreamErrorKind.SERVER_ERROR
    return UpstreamErrorKind.OTHER


def network_hint(error: BaseException) -> NetworkHint:
    """Guess why a request got no response at all."""
    if isinstance(error, (aiohttp.ClientProxyConnectionError, aiohttp.ClientSSLError)):
        return NetworkHint.BLOCKED
    if isinstance(error, aiohttp.ClientConnectorError):
        if isinstance(error.os_error, socket.gaierror):
            return NetworkHint.OFFLINE
    return NetworkHint.UNKNOWN


class GitHubRestClient(IGitHubTransport):
    """GitHub REST client for public, unauthenticated reads.

    Implements the IGitHubTransport port. Status codes are classified into
    UpstreamError kinds; connection failures become NetworkError with a hint.
    Only transport failures are retried; HTTP errors go straight to the caller.
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        timeout_seconds: float = 30,
        max_attempts: int = 2
    ):
        """Initialize GitHub client.

        Args:
            base_url: API root URL
            timeout_seconds: Total timeout enforced by the transport
            max_attempts: Attempts per request for transport failures
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._max_attempts = max(1, max_attempts)
        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limit_remaining: Optional[int] = None

    @property
    def rate_limit_remaining(self) -> Optional[int]:
        return self._rate_limit_remaining

    async def _init_session(self) -> aiohttp.ClientSession:
        """Initialize the HTTP session (lazy initialization)."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=BASE_HEADERS,
                timeout=self._timeout
            )
        return self._session

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Fetch one API resource, retrying transport failures.

        Raises:
            UpstreamError: On a non-success HTTP status
            NetworkError: When no response was received after all attempts
        """
        retrying = retry(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            reraise=True
        )
        return await retrying(self._execute_request)(path, params)

    async def _execute_request(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        session = await self._init_session()
        url = f"{self._base_url}{path}"

        try:
            async with session.get(url, params=params) as response:
                self._track_rate_limit(response)

                if response.status >= 400:
                    try:
                        body = await response.text()
                    except aiohttp.ClientError:
                        body = ""
                    kind = classify_status(response.status)
                    logger.error(f"GitHub returned {response.status} ({kind.value}) for {path}")
                    raise UpstreamError(kind, path, status=response.status, body=body)

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamError(UpstreamErrorKind.OTHER, path, status=response.status, body=str(e)) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            hint = network_hint(e)
            logger.warning(f"Network failure for {path} ({hint.value}): {e!r}")
            raise NetworkError(hint, path, cause=e) from e

    def _track_rate_limit(self, response: aiohttp.ClientResponse) -> None:
        """Update rate limit info from response headers."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is None:
            return
        try:
            self._rate_limit_remaining = int(remaining)
        except ValueError:
            return
        logger.info(
            f"Rate limit remaining: {self._rate_limit_remaining}, "
            f"resets at: {response.headers.get('X-RateLimit-Reset')}"
        )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None
