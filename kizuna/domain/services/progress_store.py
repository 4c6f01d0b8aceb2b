"""
関係性進捗ストア
永続ストアの前段に置くリードスルー／ライトスルーキャッシュ
"""

import asyncio
import weakref

from ...core.cache import TTLCache
from ...core.logging import get_logger
from ..models.progress import RelationshipProgress, progress_key
from ..ports.storage_port import IStorage

logger = get_logger(__name__)


class ProgressStore:
    """
    関係性進捗ストア

    - get: キャッシュ → ストアの順に読み、なければ既定値（保存はしない）
    - save: ストアへ upsert した後、同期的にキャッシュを更新
    - lock: 同一ユーザー×コンパニオンの読み書きを直列化（誰も保持していないロックは残らない）

    キャッシュには複製を置き、呼び出し側の変更がキャッシュに漏れないようにする。
    """

    def __init__(self, storage: IStorage, cache: TTLCache[RelationshipProgress]):
        self.storage = storage
        self.cache = cache
        # 使用中のロックだけを保持し、解放後は自動で消える
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock(self, user_id: str, companion_id: str) -> asyncio.Lock:
        key = progress_key(user_id, companion_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get(self, user_id: str, companion_id: str) -> RelationshipProgress:
        key = progress_key(user_id, companion_id)

        cached = self.cache.get(key)
        if cached is not None:
            return cached.copy()

        progress = await self.storage.load_progress(user_id, companion_id)
        if progress is None:
            return RelationshipProgress(user_id=user_id, companion_id=companion_id)

        self.cache.set(key, progress.copy())
        return progress

    async def save(self, progress: RelationshipProgress) -> None:
        """
        進捗を保存

        Raises:
            PersistenceError: ストアへの保存に失敗（キャッシュは更新しない）
        """
        await self.storage.save_progress(progress)
        self.cache.set(progress.cache_key, progress.copy())

    def invalidate(self, user_id: str, companion_id: str) -> None:
        self.cache.delete(progress_key(user_id, companion_id))
