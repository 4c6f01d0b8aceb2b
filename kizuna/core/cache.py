"""
TTL キャッシュ
プロセス内のリードスルーキャッシュ（期限付き・件数上限あり）
"""

import asyncio
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheStats:
    """キャッシュ統計"""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }


class TTLCache(Generic[T]):
    """
    期限付きキャッシュ

    - エントリごとのTTL（書き込み時刻から ttl_seconds で失効）
    - 件数上限を超えたら最も古いエントリを破棄
    - スレッドセーフ（ロック内で操作）

    システムの正本ではない。失効・破棄されても永続ストアから再取得できる値のみ置く。
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_items: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, expires_at)
        self._items: OrderedDict[str, tuple[T, float]] = OrderedDict()
        self.stats = CacheStats()

    def get(self, key: str) -> T | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                self.stats.misses += 1
                return None

            value, expires_at = item
            if expires_at <= self._clock():
                del self._items[key]
                self.stats.misses += 1
                self.stats.evictions += 1
                return None

            self.stats.hits += 1
            return value

    def set(self, key: str, value: T, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key in self._items:
                del self._items[key]
            elif len(self._items) >= self.max_items:
                # 最も古いエントリを破棄
                self._items.popitem(last=False)
                self.stats.evictions += 1

            self._items[key] = (value, self._clock() + ttl)
            self.stats.sets += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._items:
                del self._items[key]
                self.stats.deletes += 1
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def evict_expired(self) -> int:
        """期限切れエントリを削除し、削除件数を返す"""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._items.items() if expires_at <= now]
            for key in expired:
                del self._items[key]
            self.stats.evictions += len(expired)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    async def run_eviction_loop(self, interval_seconds: float) -> None:
        """期限切れエントリを定期的に掃除（キャンセルされるまで継続）"""
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.evict_expired()
            if removed:
                logger.debug(f"Evicted {removed} expired cache entries")
