"""Cache store interface (port) for persisted API responses.

This is the port in hexagonal architecture that the infrastructure layer implements.
Implementations never raise: an unavailable store behaves like an empty one.
"""
from abc import ABC, abstractmethod
from typing import Any, Optional
from repo_aggregator.domain.models import CacheEntry


class ICacheStore(ABC):
    """Abstract interface for best-effort key/value storage."""
    
    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Read an entry, fresh or stale.
        
        Args:
            key: Namespaced cache key, e.g. ``org-repos:<org>``
            
        Returns:
            The stored entry, or None when absent, corrupt or unreadable
        """
        pass
    
    @abstractmethod
    def set(self, key: str, payload: Any, stored_at: int) -> bool:
        """Overwrite an entry.
        
        Args:
            key: Namespaced cache key
            payload: JSON-serializable payload
            stored_at: Epoch milliseconds of the write
            
        Returns:
            True when the write was persisted, False when it was dropped
        """
        pass
    
    @abstractmethod
    def close(self) -> None:
        """Release any open resources."""
        pass
