"""In-memory, thread-safe token cache keyed by scope key.

Each entry is an immutable :class:`CacheEntry` holding the bearer token and
the instant it stops being served.  The cache never evaluates expiry on its
own: callers compare :attr:`CacheEntry.expires_at` with their clock at the
moment of use (see :meth:`CacheEntry.is_valid`).

Entries live only as long as the owning
:class:`~apitestkit.auth.service.TokenService`; nothing is written to disk.

Invalidation and in-flight writes:
    :meth:`TokenCache.remove` and :meth:`TokenCache.clear` advance a
    generation counter.  A writer that captured :meth:`TokenCache.generation`
    before starting a slow token exchange passes it back to
    :meth:`TokenCache.put`; if an invalidation happened in between, the
    write is dropped so the invalidated token is not put back.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CacheEntry:
    """A cached bearer token.

    Attributes:
        token: The opaque access token.
        expires_at: Clock reading after which the token must not be served.
    """

    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        """Return ``True`` while *now* is strictly before :attr:`expires_at`."""
        return now < self.expires_at


class TokenCache:
    """Mapping of scope key -> :class:`CacheEntry` guarded by a lock.

    All methods are safe to call from any number of threads without
    external locking, and none of them raise.

    Example::

        cache = TokenCache()
        cache.put("read write", CacheEntry("tok", expires_at=time.monotonic() + 60))
        entry = cache.get("read write")
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry stored for *key*, or ``None`` on a miss."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry, generation: Optional[tuple[int, int]] = None) -> bool:
        """Store *entry* under *key*, replacing any previous entry.

        Args:
            key: The scope key.
            entry: The entry to store.
            generation: Value previously returned by :meth:`generation`.
                When given and *key* has been invalidated since, nothing is
                stored.

        Returns:
            ``True`` if the entry was stored.
        """
        with self._lock:
            if generation is not None and generation != self._generation_locked(key):
                return False
            self._entries[key] = entry
            return True

    def remove(self, key: str) -> bool:
        """Remove the entry for *key*.

        Returns:
            ``True`` if an entry was present.
        """
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            return self._entries.pop(key, None) is not None

    def discard_if_same(self, key: str, entry: CacheEntry) -> bool:
        """Remove *key* only while it still maps to *entry*.

        Used to evict an expired entry without racing a concurrent writer
        that has already replaced it.  Does not advance the generation.
        """
        with self._lock:
            if self._entries.get(key) is entry:
                del self._entries[key]
                return True
            return False

    def clear(self) -> int:
        """Remove all entries and return how many there were."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._epoch += 1
            return count

    def generation(self, key: str) -> tuple[int, int]:
        """Return an opaque marker that changes whenever *key* is invalidated."""
        with self._lock:
            return self._generation_locked(key)

    def keys(self) -> list[str]:
        """Return the currently cached scope keys, sorted."""
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _generation_locked(self, key: str) -> tuple[int, int]:
        return (self._epoch, self._generations.get(key, 0))
