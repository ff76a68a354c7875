"""Persisted user preferences."""
import logging
import time
from typing import Callable
from repo_aggregator.domain.cache_interface import ICacheStore
from repo_aggregator.domain.models import SortMode


logger = logging.getLogger(__name__)


SORT_PREFERENCE_KEY = "ui:sort"


class SortPreference:
    """Sort mode remembered across runs under its own store key."""

    def __init__(self, store: ICacheStore, clock: Callable[[], float] = time.time):
        self._store = store
        self._clock = clock

    def load(self, default: SortMode = SortMode.PUSHED) -> SortMode:
        entry = self._store.get(SORT_PREFERENCE_KEY)
        if entry is None:
            return default
        return SortMode.parse(entry.payload, default)

    def save(self, mode: SortMode) -> bool:
        saved = self._store.set(SORT_PREFERENCE_KEY, mode.value, int(self._clock() * 1000))
        if not saved:
            logger.warning(f"Could not persist sort preference {mode.value}")
        return saved
