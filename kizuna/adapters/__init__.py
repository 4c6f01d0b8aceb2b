"""
Adapters Layer
ポートインターフェースの具体的な実装

注: 依存関係を軽くするため、アダプターは直接インポートを推奨
使用例:
    from kizuna.adapters.ai.openai import OpenAICompatibleAdapter
    from kizuna.adapters.storage.sqlalchemy import SQLAlchemyStorageAdapter
"""

# 遅延インポート用のサブモジュール名のみエクスポート
__all__ = [
    "ai",
    "storage",
]
