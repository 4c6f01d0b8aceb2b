"""
Domain Models
コンパニオン・メッセージ・配額・関係性進捗のドメインモデル
"""

from .companion import (
    Companion,
    CompanionType,
    Gender,
    PersonalityConfig,
    PersonalityType,
)
from .message import (
    ChatMessage,
    MessageType,
    SenderType,
)
from .milestone import (
    RELATIONSHIP_MILESTONES,
    MemoryFragment,
    MemoryType,
    Milestone,
    MilestoneReward,
    get_milestone,
)
from .progress import (
    RECENT_WINDOW_SIZE,
    GrowthTrend,
    InteractionFactors,
    InteractionQuality,
    RelationshipProgress,
    progress_key,
)
from .quota import (
    Plan,
    QuotaReservation,
    QuotaStatus,
    ReservationState,
)

__all__ = [
    # コンパニオン
    "Companion",
    "CompanionType",
    "Gender",
    "PersonalityConfig",
    "PersonalityType",
    # メッセージ
    "ChatMessage",
    "MessageType",
    "SenderType",
    # マイルストーン・回想
    "RELATIONSHIP_MILESTONES",
    "Milestone",
    "MilestoneReward",
    "MemoryFragment",
    "MemoryType",
    "get_milestone",
    # 関係性進捗
    "RECENT_WINDOW_SIZE",
    "GrowthTrend",
    "InteractionFactors",
    "InteractionQuality",
    "RelationshipProgress",
    "progress_key",
    # 配額
    "Plan",
    "QuotaReservation",
    "QuotaStatus",
    "ReservationState",
]
