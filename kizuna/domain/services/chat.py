"""
チャットパイプライン
1メッセージの受信から関係性進捗の保存までを順に処理する

受信 → 配額予約 → 審査 → ユーザーメッセージ保存 → 返信取得 → 返信保存
→ 配額確定 → 品質評価 → 台帳更新 →（レベルアップ時）マイルストーン判定 → 進捗保存

ユーザーメッセージ保存より前の失敗では何も残さず配額を返却する。
保存後の処理は呼び出し側のキャンセルから保護されたタスクで最後まで実行する。
"""

import asyncio
import dataclasses
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ...core.exceptions import (
    CompanionNotFoundError,
    ModerationRejectedError,
    PersistenceError,
    QuotaExceededError,
    ValidationError,
)
from ...core.logging import get_logger, log_event, log_failure
from ..models.companion import Companion
from ..models.message import ChatMessage, MessageType, SenderType
from ..models.milestone import RELATIONSHIP_MILESTONES, MemoryFragment, MemoryType, Milestone
from ..models.progress import InteractionQuality, RelationshipProgress
from ..models.quota import QuotaReservation, QuotaStatus
from ..ports.plan_port import IPlanProvider
from ..ports.storage_port import IStorage
from .intimacy import IntimacyLedger
from .milestone import MilestoneEngine
from .moderation import ModerationGate
from .progress_store import ProgressStore
from .quota import QuotaLedger
from .reply import ReplyAcquirer
from .scoring import InteractionQualityEvaluator

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 2000
DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200

CONVERSATION_MEMORY_TAGS = ("对话", "回忆")
SPECIAL_MOMENT_TITLE = "特别的时刻"
SPECIAL_MOMENT_TAGS = ("特别时刻",)
SPECIAL_MOMENT_EXCERPT = 100


@dataclass
class EmotionalGrowth:
    """1往復で生じた関係性の変化"""
    interaction: InteractionQuality
    progress: RelationshipProgress
    new_milestones: list[Milestone] = field(default_factory=list)
    leveled_up: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "interaction": self.interaction.to_dict(),
            "progress": self.progress.summary(),
            "new_milestones": [m.to_dict() for m in self.new_milestones],
            "leveled_up": self.leveled_up,
        }


@dataclass
class SendMessageResult:
    """send_message の結果"""
    message: ChatMessage
    companion_response: ChatMessage
    intimacy_level: int
    quota_remaining: int | None
    emotional_growth: EmotionalGrowth | None = None
    # 返信の保存に失敗し、未保存の返信を返している
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message.to_dict(),
            "companion_response": self.companion_response.to_dict(),
            "intimacy_level": self.intimacy_level,
            "quota_remaining": self.quota_remaining,
            "emotional_growth": self.emotional_growth.to_dict() if self.emotional_growth else None,
            "degraded": self.degraded,
        }


@dataclass
class GrowthSnapshot:
    """情感成長の閲覧用スナップショット"""
    progress: RelationshipProgress
    milestones: tuple[Milestone, ...]
    memories: list[MemoryFragment]

    def to_dict(self) -> dict[str, Any]:
        return {
            "progress": self.progress.to_dict(),
            "milestones": [m.to_dict() for m in self.milestones],
            "memories": [m.to_dict() for m in self.memories],
        }


class ChatPipeline:
    """
    チャットパイプライン

    各サービスをつなぐだけで、個々の規則はそれぞれのサービスが持つ。
    """

    def __init__(
        self,
        storage: IStorage,
        plan_provider: IPlanProvider,
        quota_ledger: QuotaLedger,
        moderation: ModerationGate,
        reply_acquirer: ReplyAcquirer,
        evaluator: InteractionQualityEvaluator,
        intimacy_ledger: IntimacyLedger,
        milestone_engine: MilestoneEngine,
        progress_store: ProgressStore,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        history_turns: int = 10,
        reply_persist_attempts: int = 3,
        reply_persist_backoff: float = 0.2,
        special_moment_threshold: int = 90,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.plan_provider = plan_provider
        self.quota = quota_ledger
        self.moderation = moderation
        self.reply_acquirer = reply_acquirer
        self.evaluator = evaluator
        self.intimacy_ledger = intimacy_ledger
        self.milestone_engine = milestone_engine
        self.progress_store = progress_store

        self.max_message_length = max_message_length
        self.history_turns = history_turns
        self.reply_persist_attempts = max(1, reply_persist_attempts)
        self.reply_persist_backoff = reply_persist_backoff
        self.special_moment_threshold = special_moment_threshold
        self._clock = clock

        # 呼び出し側が切断しても完了させるタスクの参照を保持
        self._background: set[asyncio.Task] = set()

    # === メッセージ送信 ===

    async def send_message(
        self,
        user_id: str,
        companion_id: str,
        content: str,
        message_type: str = "text",
    ) -> SendMessageResult:
        """
        メッセージを送信して返信と関係性の変化を得る

        Raises:
            ValidationError: 空・長すぎるメッセージ、未知のメッセージ種別
            QuotaExceededError: 本日の配額を使い切った
            ModerationRejectedError: 審査で拒否された
            CompanionNotFoundError: コンパニオンが存在しないか所有者が違う
            PersistenceError: ユーザーメッセージを保存できなかった
        """
        msg_type = self._validate(content, message_type)

        plan = await self.plan_provider.get_plan(user_id)
        reservation = await self.quota.check_and_reserve(user_id, plan.daily_limit, plan.unlimited)
        if not reservation.allowed:
            raise QuotaExceededError(
                "今日的免费消息次数已用完，升级会员可无限畅聊",
                user_id=user_id,
                daily_limit=plan.daily_limit,
            )

        try:
            verdict = self.moderation.check(content)
            if not verdict.accepted:
                log_event(
                    logger, "message_rejected", user_id, companion_id, category=verdict.category
                )
                raise ModerationRejectedError("消息内容包含敏感词汇，请修改后重试",
                                              category=verdict.category)

            companion = await self._require_companion(companion_id, user_id)
            history = await self.storage.fetch_recent_messages(
                user_id, companion_id, self.history_turns
            )

            user_message = ChatMessage(
                id=str(uuid.uuid4()),
                user_id=user_id,
                companion_id=companion_id,
                sender_type=SenderType.USER,
                content=content,
                message_type=msg_type,
                created_at=self._clock(),
            )
            await self.storage.append_message(user_message)
        except (Exception, asyncio.CancelledError):
            await self.quota.release(reservation)
            raise

        task = asyncio.ensure_future(
            self._complete_exchange(companion, history, user_message, reservation)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return await asyncio.shield(task)

    async def _complete_exchange(
        self,
        companion: Companion,
        history: list[ChatMessage],
        user_message: ChatMessage,
        reservation: QuotaReservation,
    ) -> SendMessageResult:
        reply_text = await self.reply_acquirer.get_reply(companion, history, user_message.content)
        reply = await self._persist_reply(companion, reply_text)

        # ユーザーメッセージは保存済みなので、返信が縮退でも配額は消費する
        self.quota.commit(reservation)

        growth: EmotionalGrowth | None = None
        intimacy_level = companion.intimacy_level
        try:
            growth = await self._progress(companion, user_message.content, reply_text, history)
            intimacy_level = growth.progress.intimacy_level
        except Exception as e:
            log_failure(logger, e, "progression", companion.user_id, companion.id)

        return SendMessageResult(
            message=user_message,
            companion_response=reply,
            intimacy_level=intimacy_level,
            quota_remaining=reservation.remaining,
            emotional_growth=growth,
            degraded=not reply.persisted,
        )

    async def _persist_reply(self, companion: Companion, reply_text: str) -> ChatMessage:
        reply = ChatMessage(
            id=str(uuid.uuid4()),
            user_id=companion.user_id,
            companion_id=companion.id,
            sender_type=SenderType.COMPANION,
            content=reply_text,
            message_type=MessageType.TEXT,
            created_at=self._clock(),
        )

        last_error: PersistenceError | None = None
        for attempt in range(1, self.reply_persist_attempts + 1):
            try:
                await self.storage.append_message(reply)
                return reply
            except PersistenceError as e:
                last_error = e
                log_event(
                    logger, "reply_persist_retry", companion.user_id, companion.id,
                    level=logging.WARNING,
                    attempt=attempt, max_attempts=self.reply_persist_attempts,
                )
                if attempt < self.reply_persist_attempts and self.reply_persist_backoff > 0:
                    await asyncio.sleep(self.reply_persist_backoff * attempt)

        log_failure(logger, last_error, "reply_persistence", companion.user_id, companion.id)
        return dataclasses.replace(reply, persisted=False)

    async def _progress(
        self,
        companion: Companion,
        user_text: str,
        reply_text: str,
        history: list[ChatMessage],
    ) -> EmotionalGrowth:
        interaction = self.evaluator.score(user_text, reply_text, history)

        async with self.progress_store.lock(companion.user_id, companion.id):
            progress = await self.progress_store.get(companion.user_id, companion.id)
            progress, leveled_up = self.intimacy_ledger.apply(progress, interaction)
            awarded: list[Milestone] = []
            # マイルストーン判定はレベルが上がった互動でのみ行う
            if leveled_up:
                awarded, progress = self.milestone_engine.evaluate(progress)
            await self.progress_store.save(progress)

        await self.storage.update_companion_intimacy(
            companion.id, progress.intimacy_level, progress.intimacy_points
        )

        memories = self.milestone_engine.memories_for(progress, awarded)
        if interaction.quality_score >= self.special_moment_threshold:
            memories.append(self._special_moment(progress, user_text, interaction))
        for memory in memories:
            await self.storage.append_memory(memory)

        return EmotionalGrowth(
            interaction=interaction,
            progress=progress,
            new_milestones=awarded,
            leveled_up=leveled_up,
        )

    def _special_moment(
        self, progress: RelationshipProgress, user_text: str, interaction: InteractionQuality
    ) -> MemoryFragment:
        return MemoryFragment(
            id=f"special_{uuid.uuid4().hex[:12]}",
            user_id=progress.user_id,
            companion_id=progress.companion_id,
            type=MemoryType.SPECIAL_MOMENT,
            title=SPECIAL_MOMENT_TITLE,
            content=user_text[:SPECIAL_MOMENT_EXCERPT],
            emotional_value=interaction.quality_score,
            timestamp=self._clock(),
            tags=SPECIAL_MOMENT_TAGS,
        )

    async def drain(self) -> None:
        """実行中のバックグラウンド処理の完了を待つ（シャットダウン用）"""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # === 履歴 ===

    async def get_history(
        self, user_id: str, companion_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[ChatMessage]:
        """会話履歴を古い順で取得"""
        if limit < 1 or limit > MAX_HISTORY_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {MAX_HISTORY_LIMIT}", field="limit", value=limit
            )
        await self._require_companion(companion_id, user_id)
        return await self.storage.fetch_recent_messages(user_id, companion_id, limit)

    async def delete_history(self, user_id: str, companion_id: str) -> int:
        """会話履歴を削除（関係性進捗と回想は残す）"""
        await self._require_companion(companion_id, user_id)
        deleted = await self.storage.delete_messages(user_id, companion_id)
        log_event(logger, "history_deleted", user_id, companion_id, deleted=deleted)
        return deleted

    # === 情感成長 ===

    async def get_growth(self, user_id: str, companion_id: str) -> GrowthSnapshot:
        await self._require_companion(companion_id, user_id)
        progress = await self.progress_store.get(user_id, companion_id)
        memories = await self.storage.list_memories(user_id, companion_id)
        return GrowthSnapshot(
            progress=progress,
            milestones=RELATIONSHIP_MILESTONES,
            memories=memories,
        )

    async def create_conversation_memory(
        self,
        user_id: str,
        companion_id: str,
        title: str,
        content: str,
        emotional_value: int = 0,
    ) -> MemoryFragment:
        """ユーザーが会話の思い出を残す"""
        if not title or not title.strip():
            raise ValidationError("Memory title is required", field="title")
        if not content or not content.strip():
            raise ValidationError("Memory content is required", field="content")

        await self._require_companion(companion_id, user_id)
        memory = MemoryFragment(
            id=f"conversation_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            companion_id=companion_id,
            type=MemoryType.CONVERSATION,
            title=title.strip(),
            content=content.strip(),
            emotional_value=emotional_value,
            timestamp=self._clock(),
            tags=CONVERSATION_MEMORY_TAGS,
        )
        await self.storage.append_memory(memory)
        return memory

    # === 配額 ===

    async def quota_status(self, user_id: str) -> QuotaStatus:
        plan = await self.plan_provider.get_plan(user_id)
        return await self.quota.remaining(user_id, plan)

    # === 内部 ===

    def _validate(self, content: str, message_type: str) -> MessageType:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("消息内容不能为空", field="content")
        if len(content) > self.max_message_length:
            raise ValidationError(
                f"消息内容不能超过{self.max_message_length}个字符",
                field="content",
                value=len(content),
            )
        try:
            return MessageType(message_type)
        except ValueError:
            raise ValidationError(
                f"Unknown message type: {message_type!r}",
                field="message_type",
                value=message_type,
            ) from None

    async def _require_companion(self, companion_id: str, user_id: str) -> Companion:
        companion = await self.storage.load_companion(companion_id, user_id)
        if companion is None:
            raise CompanionNotFoundError("伴侣不存在", companion_id=companion_id)
        return companion
