"""
Kizuna Domain Layer
関係性進捗のコアビジネスロジックとドメインモデル
"""

from __future__ import annotations

from .models import (
    ChatMessage,
    Companion,
    CompanionType,
    GrowthTrend,
    InteractionQuality,
    MemoryFragment,
    Milestone,
    PersonalityConfig,
    PersonalityType,
    Plan,
    QuotaReservation,
    RelationshipProgress,
)

__all__ = [
    # コンパニオン
    "Companion",
    "CompanionType",
    "PersonalityConfig",
    "PersonalityType",
    # 会話
    "ChatMessage",
    # 配額
    "Plan",
    "QuotaReservation",
    # 関係性
    "RelationshipProgress",
    "InteractionQuality",
    "GrowthTrend",
    "Milestone",
    "MemoryFragment",
]
