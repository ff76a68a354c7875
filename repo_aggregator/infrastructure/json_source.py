"""Loader for declarative JSON sources (org cards, manual repositories)."""
import asyncio
import json
import logging
from typing import Any, List
import aiohttp
from repo_aggregator.domain.errors import ConfigurationError


logger = logging.getLogger(__name__)


async def load_json_array(src: str, timeout_seconds: float = 15) -> List[Any]:
    """Load a JSON array from a local path or an http(s) URL.

    These sources are read directly, not through the request dispatcher;
    they are not GitHub API calls.

    Args:
        src: File path or URL
        timeout_seconds: Timeout for remote sources

    Returns:
        The decoded list

    Raises:
        ConfigurationError: When the source is missing, unreachable, not JSON
            or not a JSON array
    """
    if src.startswith(("http://", "https://")):
        text = await _read_url(src, timeout_seconds)
    else:
        try:
            with open(src, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot load {src}: {e}") from e

    try:
        data = json.loads(text)
    except ValueError as e:
        raise ConfigurationError(f"{src} is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"{src} must contain a JSON array, got {type(data).__name__}")
    logger.info(f"Loaded {len(data)} entries from {src}")
    return data


async def _read_url(url: str, timeout_seconds: float) -> str:
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers={"Cache-Control": "no-store"}) as response:
                if response.status >= 400:
                    raise ConfigurationError(f"Cannot load {url}: HTTP {response.status}")
                return await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ConfigurationError(f"Cannot load {url}: {e}") from e
