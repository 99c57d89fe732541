"""Time-bounded cache of resolved report images."""
import logging
import time
from threading import Lock

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0  # 5 minutes


class ImageCache:
    """Maps an image reference to its encoded data URI for ``ttl`` seconds.

    Entries older than the TTL are treated as absent and re-fetched. Failed
    fetches are never stored. Safe to share between request threads.
    """

    def __init__(self, ttl=DEFAULT_TTL, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries = {}
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def _lookup(self, key):
        # Caller holds _lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at, ttl = entry
        if self.clock() - stored_at >= ttl:
            del self._entries[key]
            return None
        return value

    def get(self, key):
        with self._lock:
            return self._lookup(key)

    def put(self, key, value, ttl=None):
        with self._lock:
            self._entries[key] = (value, self.clock(), self.ttl if ttl is None else ttl)

    def get_or_fetch(self, key, fetch, ttl=None):
        """Return the cached value for key, calling ``fetch()`` on a miss or expiry.

        The fetch runs outside the lock; concurrent misses for the same key may
        both fetch, and the later result wins.
        """
        with self._lock:
            value = self._lookup(key)
            if value is not None:
                self.hits += 1
                return value
            self.misses += 1

        value = fetch()
        self.put(key, value, ttl)
        logger.debug(f"Cached image for {key[:80]}")
        return value

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
