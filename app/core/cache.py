"""
Process-local cache with size and age bounds.

Contents live only as long as the server process: a restart empties every
cache. Deployments running more than one instance must move this state to
redis (see ``app.core.database.get_redis``).
"""
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Iterator, Optional, Tuple, TypeVar
import time

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Insertion-ordered mapping that evicts expired entries, then the oldest"""

    def __init__(
        self,
        maxsize: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if maxsize is not None and maxsize < 1:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[V, Optional[float]]]" = OrderedDict()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        item = self._data.get(key)
        if item is None:
            return default
        value, expires_at = item
        if self._expired(expires_at):
            del self._data[key]
            return default
        return value

    def set(self, key: Hashable, value: V) -> None:
        expires_at = self._clock() + self.ttl_seconds if self.ttl_seconds is not None else None
        if key in self._data:
            del self._data[key]
        self._data[key] = (value, expires_at)
        self.purge_expired()
        if self.maxsize is not None:
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def pop(self, key: Hashable, default: Any = None) -> Any:
        item = self._data.pop(key, None)
        if item is None or self._expired(item[1]):
            return default
        return item[0]

    def purge_expired(self) -> int:
        """Drop every expired entry, returning how many were removed"""
        stale = [key for key, (_, expires_at) in self._data.items() if self._expired(expires_at)]
        for key in stale:
            del self._data[key]
        return len(stale)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> Iterator[Hashable]:
        self.purge_expired()
        return iter(list(self._data.keys()))

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._data)


_MISSING = object()
