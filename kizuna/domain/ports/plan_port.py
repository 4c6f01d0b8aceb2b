"""
プランプロバイダーポート
ユーザーのサブスクリプションプラン解決を抽象化
"""

from abc import ABC, abstractmethod

from ..models.quota import Plan


class IPlanProvider(ABC):
    """プランプロバイダーインターフェース"""

    @abstractmethod
    async def get_plan(self, user_id: str) -> Plan:
        """
        ユーザーの現在のプランを取得

        有効なサブスクリプションがなければ無料プランを返す。
        """
