"""
TTL cache for go-get discovery results.

Every sub-package of a vanity import path (``go.uber.org/zap``,
``go.uber.org/zap/zapcore``, ...) maps to the same repository. Caching the
discovered ``go-import`` prefix avoids one HTTP round trip per sub-package.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class DiscoveredRepository:
    """A ``<meta name="go-import">`` declaration."""

    prefix: str
    vcs: str
    url: str


class DiscoveryCache:
    """
    Thread-safe cache of discovery results keyed by import path.

    Positive results are stored under their repository prefix, so a lookup
    for ``a/b/c`` is answered by an entry for ``a/b/c``, ``a/b`` or ``a``.
    Negative results only answer the exact import path they were stored for.
    """

    def __init__(self, ttl_seconds: int = 3600, max_size: int = 1000):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        # key -> (stored at, repository or None for "not discoverable")
        self._entries: Dict[str, Tuple[float, Optional[DiscoveredRepository]]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._expired = 0

    def _fresh(self, key: str) -> Optional[Tuple[float, Optional[DiscoveredRepository]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.time() - entry[0] > self.ttl_seconds:
            del self._entries[key]
            self._expired += 1
            return None
        return entry

    def _find(self, import_path: str) -> Optional[Tuple[float, Optional[DiscoveredRepository]]]:
        exact = self._fresh(import_path)
        if exact is not None:
            return exact

        segments = import_path.split("/")
        for length in range(len(segments) - 1, 0, -1):
            entry = self._fresh("/".join(segments[:length]))
            if entry is not None and entry[1] is not None:
                return entry
        return None

    def contains(self, import_path: str) -> bool:
        """True if ``import_path`` has a cached (positive or negative) answer."""
        with self._lock:
            return self._find(import_path) is not None

    def get(self, import_path: str) -> Optional[DiscoveredRepository]:
        """Cached repository covering ``import_path``, or None."""
        with self._lock:
            entry = self._find(import_path)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry[1]

    def put(self, import_path: str, repository: Optional[DiscoveredRepository]) -> None:
        """Cache ``repository``, or a negative answer for ``import_path``."""
        key = repository.prefix if repository is not None else import_path
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (time.time(), repository)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            return removed

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "expired_removals": self._expired,
                "hit_rate_percent": (self._hits / lookups) * 100.0 if lookups else 0.0,
                "current_size": len(self._entries),
                "max_size": self.max_size,
            }


_global_discovery_cache: Optional[DiscoveryCache] = None


def get_discovery_cache() -> DiscoveryCache:
    """Get the global discovery cache instance."""
    global _global_discovery_cache
    if _global_discovery_cache is None:
        _global_discovery_cache = DiscoveryCache()
    return _global_discovery_cache


def reset_discovery_cache() -> None:
    """Reset the global discovery cache (useful for testing)."""
    global _global_discovery_cache
    _global_discovery_cache = None
