"""
Domain Services
ビジネスロジックサービス
"""

from .chat import ChatPipeline, EmotionalGrowth, GrowthSnapshot, SendMessageResult
from .intimacy import IntimacyLedger, analyze_growth_trend, level_for_points, points_for_quality
from .milestone import MilestoneEngine
from .moderation import ModerationGate, ModerationResult
from .progress_store import ProgressStore
from .quota import QuotaLedger
from .reply import FallbackSelector, PersonaPromptBuilder, ReplyAcquirer
from .scoring import InteractionQualityEvaluator

__all__ = [
    "ChatPipeline",
    "EmotionalGrowth",
    "GrowthSnapshot",
    "SendMessageResult",
    "IntimacyLedger",
    "analyze_growth_trend",
    "level_for_points",
    "points_for_quality",
    "MilestoneEngine",
    "ModerationGate",
    "ModerationResult",
    "ProgressStore",
    "QuotaLedger",
    "FallbackSelector",
    "PersonaPromptBuilder",
    "ReplyAcquirer",
    "InteractionQualityEvaluator",
]
