"""
ストレージポート
コンパニオン・メッセージ・配額・関係性進捗の永続化インターフェース
"""

from abc import ABC, abstractmethod
from datetime import date

from ..models.companion import Companion
from ..models.message import ChatMessage
from ..models.milestone import MemoryFragment
from ..models.progress import RelationshipProgress


class IStorage(ABC):
    """
    ストレージインターフェース

    永続化を抽象化。実装は SQLAlchemy（PostgreSQL / SQLite）等で切り替え可能。
    失敗時は PersistenceError を送出する。
    """

    # === コンパニオン ===

    @abstractmethod
    async def save_companion(self, companion: Companion) -> None:
        """コンパニオンを保存（存在すれば更新）"""

    @abstractmethod
    async def load_companion(self, companion_id: str, user_id: str) -> Companion | None:
        """
        コンパニオンを読み込み

        Args:
            companion_id: コンパニオンID
            user_id: 所有者のユーザーID

        Returns:
            Companion | None: 所有者が一致しない場合もNone
        """

    @abstractmethod
    async def update_companion_intimacy(
        self, companion_id: str, intimacy_level: int, intimacy_points: int
    ) -> None:
        """コンパニオン側の親密度表示を関係性進捗に同期"""

    # === メッセージ ===

    @abstractmethod
    async def append_message(self, message: ChatMessage) -> None:
        """メッセージを追記"""

    @abstractmethod
    async def fetch_recent_messages(
        self, user_id: str, companion_id: str, limit: int
    ) -> list[ChatMessage]:
        """
        直近のメッセージを取得

        Returns:
            list[ChatMessage]: 最新 limit 件を古い順で
        """

    @abstractmethod
    async def delete_messages(self, user_id: str, companion_id: str) -> int:
        """
        会話履歴を削除

        Returns:
            int: 削除件数
        """

    # === 日次配額 ===

    @abstractmethod
    async def reserve_quota(self, user_id: str, quota_date: date, daily_limit: int) -> int | None:
        """
        配額カウンタを原子的に1加算

        同一ユーザー・同一日の並行呼び出しでも daily_limit を超えて加算しない。

        Returns:
            int | None: 加算後のカウント。上限に達していればNone
        """

    @abstractmethod
    async def release_quota(self, user_id: str, quota_date: date) -> None:
        """予約したカウンタを1減算（0未満にはしない）"""

    @abstractmethod
    async def get_quota_count(self, user_id: str, quota_date: date) -> int:
        """指定日の使用数を取得"""

    # === 関係性進捗 ===

    @abstractmethod
    async def load_progress(self, user_id: str, companion_id: str) -> RelationshipProgress | None:
        """関係性進捗を読み込み"""

    @abstractmethod
    async def save_progress(self, progress: RelationshipProgress) -> None:
        """関係性進捗を保存（upsert）"""

    # === 回想フラグメント ===

    @abstractmethod
    async def append_memory(self, memory: MemoryFragment) -> None:
        """回想フラグメントを追記"""

    @abstractmethod
    async def list_memories(
        self, user_id: str, companion_id: str, limit: int = 50
    ) -> list[MemoryFragment]:
        """回想フラグメントを新しい順で取得"""
