"""
メッセージモデル
チャットメッセージ（追記のみ、作成後は変更しない）
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SenderType(Enum):
    """送信者"""
    USER = "user"
    COMPANION = "companion"


class MessageType(Enum):
    """メッセージ種別"""
    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"


@dataclass(frozen=True)
class ChatMessage:
    """
    チャットメッセージ

    persisted=False は返信の保存に失敗した縮退レスポンスでのみ使われる。
    """
    id: str
    user_id: str
    companion_id: str
    sender_type: SenderType
    content: str
    message_type: MessageType = MessageType.TEXT
    created_at: datetime = field(default_factory=datetime.now)
    persisted: bool = True

    @property
    def role(self) -> str:
        """生成バックエンド向けのロール名"""
        return "user" if self.sender_type == SenderType.USER else "assistant"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "companion_id": self.companion_id,
            "sender_type": self.sender_type.value,
            "content": self.content,
            "message_type": self.message_type.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            companion_id=data["companion_id"],
            sender_type=SenderType(data["sender_type"]),
            content=data["content"],
            message_type=MessageType(data.get("message_type", "text")),
            created_at=datetime.fromisoformat(data.get("created_at", datetime.now().isoformat())),
        )
