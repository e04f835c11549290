"""MetadataCache — TTL cache for metadata and listings with path-aware invalidation."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Callable

from remote_adapter._config import CacheConfig
from remote_adapter._path import ancestors, is_within

if TYPE_CHECKING:
    from collections.abc import Iterator

log = logging.getLogger(__name__)

_META = "meta:"
_LIST = "list:"
_NAMESPACE_SEP = "#"


@dataclasses.dataclass
class CacheEntry:
    value: Any
    expires_at: float


class MetadataCache:
    """Thread-safe TTL cache keyed by ``meta:<path>`` and ``list:<path>:<0|1>``.

    Expiry is lazy: an expired entry reads as absent and is evicted on
    access, nothing sweeps in the background. Keys may carry a namespace
    (``<namespace>#meta:<path>``) so adapters talking to different remote
    stores can share one cache.

    :param ttl: Default entry lifetime in seconds.
    :param clock: Time source, replaceable in tests.
    """

    def __init__(self, ttl: float = 300.0, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: CacheConfig, **kwargs: Any) -> MetadataCache:
        return cls(ttl=config.ttl, **kwargs)

    def __repr__(self) -> str:
        return f"MetadataCache(ttl={self.ttl}, entries={len(self._entries)})"

    # region: keys
    @staticmethod
    def metadata_key(path: str, namespace: str = "") -> str:
        return f"{_scope(namespace)}{_META}{path}"

    @staticmethod
    def listing_key(path: str, recursive: bool = False, namespace: str = "") -> str:
        return f"{_scope(namespace)}{_LIST}{path}:{int(recursive)}"

    # endregion

    # region: entries
    def get(self, key: str) -> Any | None:
        """Cached value, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` for ``ttl`` seconds (default lifetime when omitted). ``ttl <= 0`` stores nothing."""
        lifetime = self.ttl if ttl is None else ttl
        if lifetime <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + lifetime)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    # endregion

    # region: invalidation
    def invalidate_path(self, path: str, namespace: str = "") -> int:
        """Purge every entry a mutation of ``path`` could make stale.

        Removed atomically: metadata for ``path``, its ancestors and its
        descendants; listings of ``path`` and of its ancestors; listings of
        directories below ``path``.

        :returns: Number of entries removed.
        """
        above = set(ancestors(path))
        with self._lock:
            doomed = [
                key
                for key, (target, _) in _parsed(self._entries, namespace)
                if target == path or target in above or is_within(target, path)
            ]
            for key in doomed:
                del self._entries[key]
        if doomed:
            log.debug("Invalidated %d cache entries for %r", len(doomed), path)
        return len(doomed)

    # endregion


# region: helpers


def _scope(namespace: str) -> str:
    return f"{namespace}{_NAMESPACE_SEP}" if namespace else ""


def _parsed(entries: dict[str, CacheEntry], namespace: str) -> Iterator[tuple[str, tuple[str, str]]]:
    """Yield ``(key, (path, kind))`` for keys in ``namespace``."""
    scope = _scope(namespace)
    for key in entries:
        if not key.startswith(scope):
            continue
        body = key[len(scope) :]
        if body.startswith(_META):
            yield key, (body[len(_META) :], "meta")
        elif body.startswith(_LIST):
            yield key, (body[len(_LIST) :].rsplit(":", 1)[0], "list")


# endregion
