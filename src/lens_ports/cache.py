"""Short-lived memoization of port probe results."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger("lens_ports.cache")

DEFAULT_CACHE_TTL = 5.0


@dataclass(frozen=True)
class CacheEntry:
    is_available: bool
    stored_at: float


class ProbeCache:
    """TTL cache mapping a port to its last observed availability.

    An entry is honored only while ``now - stored_at < ttl``; older entries
    are dropped on access.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl: Seconds an entry stays valid
            clock: Monotonic time source, injectable for tests
        """
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[int, CacheEntry] = {}

    def get(self, port: int) -> Optional[bool]:
        """Return the cached availability, or None on a miss or expiry."""
        entry = self._entries.get(port)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            del self._entries[port]
            logger.debug(f"Cache entry for port {port} expired")
            return None
        return entry.is_available

    def set(self, port: int, is_available: bool) -> None:
        self._entries[port] = CacheEntry(is_available, self._clock())

    def clear(self, port: Optional[int] = None) -> None:
        """Drop one entry, or every entry when ``port`` is None."""
        if port is None:
            self._entries.clear()
        else:
            self._entries.pop(port, None)

    def prune(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            port for port, entry in self._entries.items()
            if now - entry.stored_at >= self.ttl
        ]
        for port in expired:
            del self._entries[port]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, port: int) -> bool:
        return self.get(port) is not None
