"""
テスト共通のモックとフィクスチャ
"""

import asyncio
import random
from datetime import date, datetime
from typing import Optional

import pytest

from kizuna.core.cache import TTLCache
from kizuna.core.exceptions import PersistenceError
from kizuna.domain.models.companion import (
    Companion,
    CompanionType,
    PersonalityConfig,
    PersonalityType,
)
from kizuna.domain.models.message import ChatMessage, SenderType
from kizuna.domain.models.milestone import MemoryFragment
from kizuna.domain.models.progress import RelationshipProgress
from kizuna.domain.models.quota import Plan
from kizuna.domain.ports.ai_port import ChatTurn, IAIProvider
from kizuna.domain.ports.plan_port import IPlanProvider
from kizuna.domain.ports.storage_port import IStorage
from kizuna.domain.services.chat import ChatPipeline
from kizuna.domain.services.intimacy import IntimacyLedger
from kizuna.domain.services.milestone import MilestoneEngine
from kizuna.domain.services.moderation import ModerationGate
from kizuna.domain.services.progress_store import ProgressStore
from kizuna.domain.services.quota import QuotaLedger
from kizuna.domain.services.reply import FallbackSelector, ReplyAcquirer
from kizuna.domain.services.scoring import InteractionQualityEvaluator

TODAY = date(2025, 3, 1)
NOW = datetime(2025, 3, 1, 12, 0, 0)


# === モッククラス ===


class MockAIProvider(IAIProvider):
    """テスト用 AI プロバイダーモック"""

    def __init__(
        self,
        response: str = "你好呀，今天过得怎么样？",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self._response = response
        self._error = error
        self._delay = delay
        self.calls: list[tuple[str, list[ChatTurn], str]] = []

    async def generate(self, system_prompt: str, history: list[ChatTurn], message: str) -> str:
        self.calls.append((system_prompt, history, message))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._response

    async def health_check(self) -> bool:
        return self._error is None

    @property
    def model_name(self) -> str:
        return "mock-model"


class StaticPlanProvider(IPlanProvider):
    """固定プランを返すモック"""

    def __init__(self, plan: Plan):
        self.plan = plan

    async def get_plan(self, user_id: str) -> Plan:
        return self.plan


class InMemoryStorage(IStorage):
    """
    テスト用インメモリストレージ

    配額の加算は await を挟まないため、イベントループ上では原子的。
    fail_* 属性で障害を注入できる。
    """

    def __init__(self):
        self.companions: dict[str, Companion] = {}
        self.messages: list[ChatMessage] = []
        self.quotas: dict[tuple[str, date], int] = {}
        self.progress: dict[tuple[str, str], dict] = {}
        self.memories: list[MemoryFragment] = []

        # 障害注入
        self.fail_user_append = False
        self.reply_append_failures = 0
        self.fail_progress_save = False
        self.fail_load_companion = False

        self.load_progress_calls = 0
        self.reply_append_attempts = 0

    async def save_companion(self, companion: Companion) -> None:
        self.companions[companion.id] = companion

    async def load_companion(self, companion_id: str, user_id: str) -> Optional[Companion]:
        if self.fail_load_companion:
            raise PersistenceError("load failed", operation="load_companion")
        companion = self.companions.get(companion_id)
        if companion is None or companion.user_id != user_id:
            return None
        return companion

    async def update_companion_intimacy(
        self, companion_id: str, intimacy_level: int, intimacy_points: int
    ) -> None:
        companion = self.companions[companion_id]
        companion.intimacy_level = intimacy_level
        companion.intimacy_points = intimacy_points

    async def append_message(self, message: ChatMessage) -> None:
        if message.sender_type == SenderType.USER and self.fail_user_append:
            raise PersistenceError("append failed", operation="append_message")
        if message.sender_type == SenderType.COMPANION:
            self.reply_append_attempts += 1
            if self.reply_append_failures > 0:
                self.reply_append_failures -= 1
                raise PersistenceError("append failed", operation="append_message")
        self.messages.append(message)

    async def fetch_recent_messages(
        self, user_id: str, companion_id: str, limit: int
    ) -> list[ChatMessage]:
        matched = [
            m for m in self.messages
            if m.user_id == user_id and m.companion_id == companion_id
        ]
        return matched[-limit:] if limit > 0 else []

    async def delete_messages(self, user_id: str, companion_id: str) -> int:
        before = len(self.messages)
        self.messages = [
            m for m in self.messages
            if not (m.user_id == user_id and m.companion_id == companion_id)
        ]
        return before - len(self.messages)

    async def reserve_quota(self, user_id: str, quota_date: date, daily_limit: int) -> Optional[int]:
        key = (user_id, quota_date)
        count = self.quotas.get(key, 0)
        if daily_limit <= 0 or count >= daily_limit:
            return None
        self.quotas[key] = count + 1
        return count + 1

    async def release_quota(self, user_id: str, quota_date: date) -> None:
        key = (user_id, quota_date)
        if self.quotas.get(key, 0) > 0:
            self.quotas[key] -= 1

    async def get_quota_count(self, user_id: str, quota_date: date) -> int:
        return self.quotas.get((user_id, quota_date), 0)

    async def load_progress(self, user_id: str, companion_id: str) -> Optional[RelationshipProgress]:
        self.load_progress_calls += 1
        data = self.progress.get((user_id, companion_id))
        return RelationshipProgress.from_dict(data) if data else None

    async def save_progress(self, progress: RelationshipProgress) -> None:
        if self.fail_progress_save:
            raise PersistenceError("save failed", operation="save_progress")
        self.progress[(progress.user_id, progress.companion_id)] = progress.to_dict()

    async def append_memory(self, memory: MemoryFragment) -> None:
        self.memories.append(memory)

    async def list_memories(
        self, user_id: str, companion_id: str, limit: int = 50
    ) -> list[MemoryFragment]:
        matched = [
            m for m in self.memories
            if m.user_id == user_id and m.companion_id == companion_id
        ]
        return list(reversed(matched))[:limit]


# === ファクトリ ===


def make_companion(
    companion_id: str = "c1",
    user_id: str = "u1",
    personality_type: PersonalityType = PersonalityType.GENTLE,
    intimacy_level: int = 1,
    **kwargs,
) -> Companion:
    return Companion(
        id=companion_id,
        user_id=user_id,
        name=kwargs.pop("name", "小雪"),
        companion_type=kwargs.pop("companion_type", CompanionType.NEIGHBOR),
        personality=PersonalityConfig(
            type=personality_type,
            traits=["温柔", "体贴"],
            speaking_style="轻声细语",
            interests=["读书", "烘焙"],
            **kwargs,
        ),
        intimacy_level=intimacy_level,
    )


def build_pipeline(
    storage: InMemoryStorage,
    ai_provider: IAIProvider,
    plan: Plan = Plan.free(20),
    clock=lambda: NOW,
    today=lambda: TODAY,
    reply_timeout: float = 1.0,
    reply_persist_attempts: int = 3,
) -> ChatPipeline:
    return ChatPipeline(
        storage=storage,
        plan_provider=StaticPlanProvider(plan),
        quota_ledger=QuotaLedger(storage, today=today),
        moderation=ModerationGate(),
        reply_acquirer=ReplyAcquirer(
            ai_provider,
            timeout=reply_timeout,
            fallback=FallbackSelector(random.Random(7)),
        ),
        evaluator=InteractionQualityEvaluator(clock=clock),
        intimacy_ledger=IntimacyLedger(clock=clock),
        milestone_engine=MilestoneEngine(clock=clock),
        progress_store=ProgressStore(storage, TTLCache(ttl_seconds=1800)),
        reply_persist_attempts=reply_persist_attempts,
        reply_persist_backoff=0,
        clock=clock,
    )


# === フィクスチャ ===


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def ai_provider() -> MockAIProvider:
    return MockAIProvider()


@pytest.fixture
def companion(storage: InMemoryStorage) -> Companion:
    c = make_companion()
    storage.companions[c.id] = c
    return c
