"""
API Schemas
Pydanticモデル定義
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from ..domain.models.message import ChatMessage
from ..domain.models.milestone import MemoryFragment

# === チャット ===


class SendMessageRequest(BaseModel):
    """メッセージ送信リクエスト"""

    # 空・長さの検証はパイプライン側で行い、統一したエラー形式で返す
    content: str = Field(..., description="メッセージ本文")
    message_type: str = Field("text", description="メッセージ種別 (text / voice / image)")


class MessageResponse(BaseModel):
    """チャットメッセージ"""

    id: str
    user_id: str
    companion_id: str
    sender_type: str
    content: str
    message_type: str
    created_at: datetime
    persisted: bool = True

    @classmethod
    def from_domain(cls, message: ChatMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            user_id=message.user_id,
            companion_id=message.companion_id,
            sender_type=message.sender_type.value,
            content=message.content,
            message_type=message.message_type.value,
            created_at=message.created_at,
            persisted=message.persisted,
        )


class EmotionalGrowthResponse(BaseModel):
    """1往復での関係性の変化"""

    interaction: dict[str, Any]
    progress: dict[str, Any]
    new_milestones: list[dict[str, Any]]
    leveled_up: bool


class SendMessageResponse(BaseModel):
    """メッセージ送信レスポンス"""

    message: MessageResponse
    companion_response: MessageResponse
    intimacy_level: int
    quota_remaining: int | None = Field(None, description="本日の残り配額（無制限プランでは省略）")
    emotional_growth: EmotionalGrowthResponse | None = None
    degraded: bool = False


class HistoryResponse(BaseModel):
    """会話履歴"""

    messages: list[MessageResponse]


class DeleteHistoryResponse(BaseModel):
    success: bool
    deleted: int


# === 情感成長 ===


class GrowthResponse(BaseModel):
    """情感成長スナップショット"""

    progress: dict[str, Any]
    milestones: list[dict[str, Any]]
    memories: list[dict[str, Any]]


class CreateMemoryRequest(BaseModel):
    """会話の思い出作成リクエスト"""

    title: str = Field(..., max_length=200)
    content: str = Field(..., max_length=2000)
    emotional_value: int = Field(0, ge=0, le=1000)


class MemoryResponse(BaseModel):
    """回想フラグメント"""

    id: str
    type: str
    title: str
    content: str
    emotional_value: int
    timestamp: datetime
    tags: list[str]

    @classmethod
    def from_domain(cls, memory: MemoryFragment) -> "MemoryResponse":
        return cls(
            id=memory.id,
            type=memory.type.value,
            title=memory.title,
            content=memory.content,
            emotional_value=memory.emotional_value,
            timestamp=memory.timestamp,
            tags=list(memory.tags),
        )


# === 配額 ===


class QuotaResponse(BaseModel):
    """本日の配額状況"""

    quota_date: date
    daily_limit: int
    used: int
    remaining: int | None
    unlimited: bool


# === システム ===


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""

    status: str
    timestamp: datetime
    version: str
    components: dict[str, bool]
