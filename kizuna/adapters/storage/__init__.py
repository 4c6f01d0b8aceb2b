"""
Storage Adapters
データ永続化の実装

使用例:
    from kizuna.adapters.storage.sqlalchemy import SQLAlchemyStorageAdapter
"""

from .sqlalchemy import SQLAlchemyPlanProvider, SQLAlchemyStorageAdapter

__all__ = [
    "SQLAlchemyStorageAdapter",
    "SQLAlchemyPlanProvider",
]
