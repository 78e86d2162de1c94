"""
Keyed Store - in-memory хранилище с TTL для эфемерного состояния

Используется Session Directory и Confirmation Token Store вместо
глобальных dict. Все операции синхронные: между чтением и записью
одного ключа нет точек suspend, поэтому они атомарны относительно
event loop. Дополнительно операции защищены threading.Lock, чтобы
оставаться атомарными и при переносе на настоящие потоки.

Usage:
    store = KeyedStore(ttl_seconds=1800)
    store.put(user_id, session)
    session = store.get(user_id)        # None если истёк
    purged = store.sweep()
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Iterator, Optional, Protocol, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedRepository(Protocol[K, V]):
    """Интерфейс репозитория, который инжектится в Directory / Token Store"""

    def get(self, key: K) -> Optional[V]: ...

    def put(self, key: K, value: V, ttl_seconds: Optional[float] = None) -> None: ...

    def pop(self, key: K) -> Optional[V]: ...

    def delete(self, key: K) -> bool: ...

    def sweep(self) -> int: ...


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: Optional[float]


class KeyedStore(Generic[K, V]):
    """Process-local TTL map with purge-on-access and explicit sweep"""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            ttl_seconds: TTL по умолчанию (None - без истечения)
            clock: Источник времени (подменяется в тестах)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[K, _Entry[V]] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: _Entry[V], now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: K, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = _Entry(value, expires_at)

    def pop(self, key: K) -> Optional[V]:
        """Atomically remove and return a live value"""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None or self._expired(entry, self._clock()):
                return None
            return entry.value

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Удаляет все истёкшие записи, возвращает их количество"""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def items(self) -> Iterator[Tuple[K, V]]:
        now = self._clock()
        with self._lock:
            snapshot = [(k, e.value) for k, e in self._entries.items() if not self._expired(e, now)]
        return iter(snapshot)

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
