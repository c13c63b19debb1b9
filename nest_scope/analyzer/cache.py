"""Query result cache.

Bounded LRU store for definition and usage results. Keys encode the query:
"<kind>:<file path>:<line>:<column>", so every result tied to one file can be
dropped by prefix without knowing the exact cursor positions.
"""
from collections import OrderedDict
from typing import Any, Dict, Optional

from .models import CacheEntry


def query_key(kind: str, file_path: str, line: int, character: int) -> str:
    return f"{kind}:{file_path}:{line}:{character}"


def file_prefix(kind: str, file_path: str) -> str:
    """Prefix matching every query key of one kind for one file."""
    return f"{kind}:{file_path}:"


class IndexCache:
    """Least-recently-used cache with prefix invalidation."""

    def __init__(self, max_size: int = 100):
        """Initialize cache.

        Args:
            max_size: Maximum number of live entries

        Raises:
            ValueError: If max_size is less than 1
        """
        if max_size < 1:
            raise ValueError(f"Cache size must be at least 1, got {max_size}")
        self.max_size = max_size
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value and mark it most recently used.

        A miss returns None and changes nothing.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """The timestamped entry for a key, without touching recency."""
        return self._entries.get(key)

    def set(self, key: str, value: Any):
        """Insert or overwrite a value, evicting LRU entries to make room.

        Overwriting an existing key moves it to most recent and evicts nothing.
        """
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = CacheEntry(value)

    def has(self, key: str) -> bool:
        return key in self._entries

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with `prefix`.

        Returns:
            Number of entries removed
        """
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self):
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self):
        """Keys from least to most recently used."""
        return list(self._entries)

    def get_stats(self) -> Dict[str, int]:
        return {
            'size': len(self._entries),
            'max_size': self.max_size,
        }
