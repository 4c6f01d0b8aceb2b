"""
配額モデル
プランと日次メッセージ配額の予約
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Plan:
    """サブスクリプションプラン"""
    unlimited: bool
    daily_limit: int

    @classmethod
    def free(cls, daily_limit: int = 20) -> "Plan":
        return cls(unlimited=False, daily_limit=daily_limit)

    @classmethod
    def premium(cls) -> "Plan":
        return cls(unlimited=True, daily_limit=0)


class ReservationState(Enum):
    """予約状態"""
    RESERVED = "reserved"
    COMMITTED = "committed"
    RELEASED = "released"
    DENIED = "denied"


@dataclass
class QuotaReservation:
    """
    配額予約

    予約の時点でカウンタは加算済み。commit で確定、release で返却する。
    remaining が None のときは無制限プラン。
    """
    user_id: str
    quota_date: date
    allowed: bool
    remaining: int | None
    unlimited: bool = False
    state: ReservationState = ReservationState.RESERVED

    @property
    def is_open(self) -> bool:
        """まだ確定も返却もされていない予約か"""
        return self.allowed and self.state == ReservationState.RESERVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "quota_date": self.quota_date.isoformat(),
            "allowed": self.allowed,
            "remaining": self.remaining,
            "unlimited": self.unlimited,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class QuotaStatus:
    """配額の読み取り専用ビュー"""
    user_id: str
    quota_date: date
    used: int
    daily_limit: int
    unlimited: bool

    @property
    def remaining(self) -> int | None:
        if self.unlimited:
            return None
        return max(0, self.daily_limit - self.used)
