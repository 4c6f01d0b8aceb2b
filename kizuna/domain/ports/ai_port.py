"""
AIプロバイダーポート
返信生成バックエンドへのアクセスを抽象化
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ChatTurn:
    """生成バックエンドに渡す会話の1ターン"""

    role: str  # "user" or "assistant"
    content: str


class IAIProvider(ABC):
    """
    AIプロバイダーインターフェース

    OpenAI互換のチャットAPI（DeepSeek等）へのアクセスを抽象化。
    失敗時は例外を送出してよい（フォールバックは呼び出し側の責務）。
    """

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        history: list[ChatTurn],
        message: str,
    ) -> str:
        """
        返信を生成

        Args:
            system_prompt: ペルソナのシステムプロンプト
            history: 直近の会話履歴（古い順）
            message: ユーザーメッセージ

        Returns:
            str: 生成された返信テキスト
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        APIの健全性チェック

        Returns:
            bool: 正常に動作しているか
        """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """使用中のモデル名"""
