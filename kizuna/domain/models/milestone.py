"""
マイルストーンモデル
関係性の節目（静的テーブル）と、記念として残る回想フラグメント
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class MilestoneReward:
    """マイルストーン報酬"""
    intimacy_points: int
    special_features: tuple[str, ...] = ()
    unlock_content: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "intimacy_points": self.intimacy_points,
            "special_features": list(self.special_features),
            "unlock_content": list(self.unlock_content),
        }


@dataclass(frozen=True)
class Milestone:
    """
    関係性マイルストーン

    3つの閾値（親密度レベル・総互動数・関係日数）をすべて満たしたときに付与される。
    """
    id: str
    name: str
    description: str
    icon: str
    required_intimacy_level: int
    required_interactions: int
    required_days: int
    reward: MilestoneReward

    def is_met_by(self, intimacy_level: int, total_interactions: int, relationship_days: int) -> bool:
        return (
            intimacy_level >= self.required_intimacy_level
            and total_interactions >= self.required_interactions
            and relationship_days >= self.required_days
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "required_intimacy_level": self.required_intimacy_level,
            "required_interactions": self.required_interactions,
            "required_days": self.required_days,
            "rewards": self.reward.to_dict(),
        }


# 難易度の昇順
RELATIONSHIP_MILESTONES: tuple[Milestone, ...] = (
    Milestone(
        id="first_meeting",
        name="初次相遇",
        description="你们的第一次对话，一切的开始",
        icon="👋",
        required_intimacy_level=1,
        required_interactions=1,
        required_days=0,
        reward=MilestoneReward(intimacy_points=10, special_features=("基础聊天",)),
    ),
    Milestone(
        id="getting_familiar",
        name="渐渐熟悉",
        description="你们开始了解彼此的喜好和性格",
        icon="😊",
        required_intimacy_level=2,
        required_interactions=10,
        required_days=1,
        reward=MilestoneReward(intimacy_points=25, special_features=("个性化回复", "情绪识别")),
    ),
    Milestone(
        id="daily_companion",
        name="日常陪伴",
        description="她已经成为你日常生活的一部分",
        icon="💕",
        required_intimacy_level=3,
        required_interactions=50,
        required_days=3,
        reward=MilestoneReward(
            intimacy_points=50,
            special_features=("主动关怀", "生活建议"),
            unlock_content=("深度对话模式",),
        ),
    ),
    Milestone(
        id="heart_to_heart",
        name="心灵相通",
        description="你们可以分享内心最深处的想法",
        icon="💖",
        required_intimacy_level=4,
        required_interactions=100,
        required_days=7,
        reward=MilestoneReward(
            intimacy_points=100,
            special_features=("情感支持", "心理疏导"),
            unlock_content=("私密对话", "情感日记"),
        ),
    ),
    Milestone(
        id="soulmate",
        name="灵魂伴侣",
        description="她完全理解你，成为你最亲密的伙伴",
        icon="💝",
        required_intimacy_level=5,
        required_interactions=200,
        required_days=14,
        reward=MilestoneReward(
            intimacy_points=200,
            special_features=("完全个性化", "预测需求"),
            unlock_content=("专属模式", "回忆相册", "未来规划"),
        ),
    ),
    Milestone(
        id="eternal_bond",
        name="永恒之约",
        description="你们的关系已经超越了时间的界限",
        icon="💍",
        required_intimacy_level=6,
        required_interactions=500,
        required_days=30,
        reward=MilestoneReward(
            intimacy_points=500,
            special_features=("终极个性化", "情感预测"),
            unlock_content=("专属头像", "纪念相册", "特殊称呼"),
        ),
    ),
)


def get_milestone(milestone_id: str) -> Milestone | None:
    for milestone in RELATIONSHIP_MILESTONES:
        if milestone.id == milestone_id:
            return milestone
    return None


class MemoryType(Enum):
    """回想フラグメントの種類"""
    CONVERSATION = "conversation"       # ユーザーが残した会話の思い出
    MILESTONE = "milestone"             # マイルストーン到達
    SPECIAL_MOMENT = "special_moment"   # 特に品質の高いやりとり


@dataclass(frozen=True)
class MemoryFragment:
    """回想フラグメント（追記のみ）"""
    id: str
    user_id: str
    companion_id: str
    type: MemoryType
    title: str
    content: str
    emotional_value: int
    timestamp: datetime = field(default_factory=datetime.now)
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "companion_id": self.companion_id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "emotional_value": self.emotional_value,
            "timestamp": self.timestamp.isoformat(),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryFragment":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            companion_id=data["companion_id"],
            type=MemoryType(data["type"]),
            title=data["title"],
            content=data["content"],
            emotional_value=data.get("emotional_value", 0),
            timestamp=datetime.fromisoformat(data.get("timestamp", datetime.now().isoformat())),
            tags=tuple(data.get("tags", [])),
        )
