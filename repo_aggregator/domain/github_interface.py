"""GitHub API interface (port) for fetching repository data.

This is the anti-corruption layer that shields the domain from GitHub API specifics.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IGitHubTransport(ABC):
    """Abstract interface for unauthenticated GitHub REST reads."""
    
    @abstractmethod
    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Fetch one API resource and decode its JSON body.
        
        Args:
            path: API path, e.g. ``/orgs/acme/repos``
            params: Query string parameters
            
        Returns:
            Decoded JSON document
            
        Raises:
            UpstreamError: On a non-success HTTP status
            NetworkError: When no response was received
        """
        pass
    
    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
