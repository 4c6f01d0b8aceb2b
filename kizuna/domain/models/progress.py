"""
関係性進捗モデル
互動品質の記録と、ユーザー×コンパニオンごとの関係性進捗
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# 直近の互動品質を保持する件数
RECENT_WINDOW_SIZE = 20

# 互動がないときの品質スコア
DEFAULT_QUALITY_SCORE = 50.0


class GrowthTrend(Enum):
    """成長トレンド"""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


@dataclass(frozen=True)
class InteractionFactors:
    """品質スコアの5要素（各 0-100）"""
    message_length: float
    emotional_depth: float
    engagement: float
    creativity: float
    consistency: float

    def to_dict(self) -> dict[str, float]:
        return {
            "message_length": self.message_length,
            "emotional_depth": self.emotional_depth,
            "engagement": self.engagement,
            "creativity": self.creativity,
            "consistency": self.consistency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InteractionFactors":
        return cls(
            message_length=data.get("message_length", 0.0),
            emotional_depth=data.get("emotional_depth", 0.0),
            engagement=data.get("engagement", 0.0),
            creativity=data.get("creativity", 0.0),
            consistency=data.get("consistency", 0.0),
        )


@dataclass(frozen=True)
class InteractionQuality:
    """1往復分の互動品質"""
    message_id: str
    quality_score: int
    factors: InteractionFactors
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "quality_score": self.quality_score,
            "factors": self.factors.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InteractionQuality":
        return cls(
            message_id=data["message_id"],
            quality_score=data["quality_score"],
            factors=InteractionFactors.from_dict(data.get("factors", {})),
            timestamp=datetime.fromisoformat(data.get("timestamp", datetime.now().isoformat())),
        )


@dataclass
class RelationshipProgress:
    """
    関係性進捗

    ユーザー×コンパニオンごとに1件。intimacy_level は intimacy_points から
    導出される値で、IntimacyLedger / MilestoneEngine 以外から書き換えない。
    """
    user_id: str
    companion_id: str

    intimacy_level: int = 1
    intimacy_points: int = 0
    total_interactions: int = 0
    quality_score: float = DEFAULT_QUALITY_SCORE
    relationship_days: int = 0

    # 付与済みマイルストーンID（付与順）
    milestones: list[str] = field(default_factory=list)

    # 直近の互動品質（最大 RECENT_WINDOW_SIZE 件）
    recent_interactions: list[InteractionQuality] = field(default_factory=list)
    growth_trend: GrowthTrend = GrowthTrend.STABLE

    # 最初の互動時刻（永続化される。直近ウィンドウからは導出しない）
    first_interaction_at: datetime | None = None
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def cache_key(self) -> str:
        return progress_key(self.user_id, self.companion_id)

    def has_milestone(self, milestone_id: str) -> bool:
        return milestone_id in self.milestones

    def add_interaction(self, interaction: InteractionQuality) -> None:
        """互動を追加（最新 RECENT_WINDOW_SIZE 件を保持）"""
        self.recent_interactions.append(interaction)
        if len(self.recent_interactions) > RECENT_WINDOW_SIZE:
            self.recent_interactions = self.recent_interactions[-RECENT_WINDOW_SIZE:]

    def recent_scores(self) -> list[int]:
        return [i.quality_score for i in self.recent_interactions]

    def copy(self) -> "RelationshipProgress":
        """キャッシュと呼び出し側で状態を共有しないための複製"""
        return RelationshipProgress.from_dict(self.to_dict())

    def summary(self) -> dict[str, Any]:
        """プレゼンテーション層向けの要約"""
        return {
            "intimacy_level": self.intimacy_level,
            "intimacy_points": self.intimacy_points,
            "quality_score": self.quality_score,
            "growth_trend": self.growth_trend.value,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "companion_id": self.companion_id,
            "intimacy_level": self.intimacy_level,
            "intimacy_points": self.intimacy_points,
            "total_interactions": self.total_interactions,
            "quality_score": self.quality_score,
            "relationship_days": self.relationship_days,
            "milestones": list(self.milestones),
            "recent_interactions": [i.to_dict() for i in self.recent_interactions],
            "growth_trend": self.growth_trend.value,
            "first_interaction_at": self.first_interaction_at.isoformat()
            if self.first_interaction_at
            else None,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelationshipProgress":
        return cls(
            user_id=data["user_id"],
            companion_id=data["companion_id"],
            intimacy_level=data.get("intimacy_level", 1),
            intimacy_points=data.get("intimacy_points", 0),
            total_interactions=data.get("total_interactions", 0),
            quality_score=data.get("quality_score", DEFAULT_QUALITY_SCORE),
            relationship_days=data.get("relationship_days", 0),
            milestones=list(data.get("milestones", [])),
            recent_interactions=[
                InteractionQuality.from_dict(i) for i in data.get("recent_interactions", [])
            ],
            growth_trend=GrowthTrend(data.get("growth_trend", "stable")),
            first_interaction_at=datetime.fromisoformat(data["first_interaction_at"])
            if data.get("first_interaction_at")
            else None,
            last_updated=datetime.fromisoformat(
                data.get("last_updated", datetime.now().isoformat())
            ),
        )


def progress_key(user_id: str, companion_id: str) -> str:
    return f"relationship_{user_id}_{companion_id}"
