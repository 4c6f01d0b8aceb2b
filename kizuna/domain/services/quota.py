"""
日次配額サービス
ユーザー×日付ごとのメッセージカウンタを予約・確定・返却で管理する

カウンタの加算はストレージ層の条件付き upsert 1文で行い、
同一ユーザーの並行リクエストでも上限を超えない。
"""

from collections.abc import Callable
from datetime import date

from ...core.logging import get_logger, log_event
from ..models.quota import Plan, QuotaReservation, QuotaStatus, ReservationState
from ..ports.storage_port import IStorage

logger = get_logger(__name__)


class QuotaLedger:
    """日次メッセージ配額の台帳"""

    def __init__(self, storage: IStorage, today: Callable[[], date] = date.today):
        self.storage = storage
        self._today = today

    async def check_and_reserve(
        self, user_id: str, plan_limit: int, is_unlimited: bool
    ) -> QuotaReservation:
        """
        配額を1件予約

        Args:
            user_id: ユーザーID
            plan_limit: 1日あたりの上限
            is_unlimited: 無制限プランか（カウンタに触れない）

        Returns:
            QuotaReservation: allowed=False なら上限到達

        Raises:
            PersistenceError: ストレージ障害
        """
        quota_date = self._today()

        if is_unlimited:
            return QuotaReservation(
                user_id=user_id,
                quota_date=quota_date,
                allowed=True,
                remaining=None,
                unlimited=True,
            )

        if plan_limit <= 0:
            return self._denied(user_id, quota_date)

        count = await self.storage.reserve_quota(user_id, quota_date, plan_limit)
        if count is None:
            return self._denied(user_id, quota_date)

        reservation = QuotaReservation(
            user_id=user_id,
            quota_date=quota_date,
            allowed=True,
            remaining=max(0, plan_limit - count),
        )
        log_event(
            logger, "quota_reserved", user_id,
            quota_date=quota_date.isoformat(), used=count, daily_limit=plan_limit,
        )
        return reservation

    def commit(self, reservation: QuotaReservation) -> None:
        """予約を確定（カウンタは予約時に加算済み）"""
        if reservation.is_open:
            reservation.state = ReservationState.COMMITTED

    async def release(self, reservation: QuotaReservation) -> None:
        """
        予約を返却

        確定済み・返却済み・拒否済みの予約では何もしない。
        カウンタは予約した日付の行から減算する（日付を跨いでも正しい行を戻す）。
        """
        if not reservation.is_open:
            return

        if not reservation.unlimited:
            await self.storage.release_quota(reservation.user_id, reservation.quota_date)
            log_event(
                logger, "quota_released", reservation.user_id,
                quota_date=reservation.quota_date.isoformat(),
            )
        reservation.state = ReservationState.RELEASED

    async def remaining(self, user_id: str, plan: Plan) -> QuotaStatus:
        """本日の配額状況（読み取り専用）"""
        quota_date = self._today()
        used = 0 if plan.unlimited else await self.storage.get_quota_count(user_id, quota_date)
        return QuotaStatus(
            user_id=user_id,
            quota_date=quota_date,
            used=used,
            daily_limit=plan.daily_limit,
            unlimited=plan.unlimited,
        )

    def _denied(self, user_id: str, quota_date: date) -> QuotaReservation:
        log_event(logger, "quota_exhausted", user_id, quota_date=quota_date.isoformat())
        return QuotaReservation(
            user_id=user_id,
            quota_date=quota_date,
            allowed=False,
            remaining=0,
            state=ReservationState.DENIED,
        )
