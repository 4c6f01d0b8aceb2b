"""
ChatPipeline のテスト

- 配額切れ・審査拒否・コンパニオン不在では何も残さず配額を返却
- 返信の保存失敗はリトライし、最後は縮退レスポンス
- 進捗処理の失敗はレスポンスを妨げない
- 呼び出し側が切断しても返信の保存まで完了する
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, TODAY, MockAIProvider, build_pipeline
from kizuna.core.exceptions import (
    CompanionNotFoundError,
    GenerationError,
    ModerationRejectedError,
    PersistenceError,
    QuotaExceededError,
    ValidationError,
)
from kizuna.domain.models.message import SenderType
from kizuna.domain.models.milestone import MemoryType
from kizuna.domain.models.progress import RelationshipProgress
from kizuna.domain.models.quota import Plan
from kizuna.domain.services.reply import FALLBACK_RESPONSES


class TestSendMessage:
    """メッセージ送信"""

    @pytest.fixture
    def pipeline(self, storage, ai_provider, companion):
        return build_pipeline(storage, ai_provider)

    @pytest.mark.asyncio
    async def test_first_greeting(self, pipeline, storage, ai_provider):
        """最初の挨拶で2件保存され、台帳に 1..5 ポイント加算される"""
        result = await pipeline.send_message("u1", "c1", "你好")

        assert [m.sender_type for m in storage.messages] == [SenderType.USER, SenderType.COMPANION]
        assert storage.messages[0].content == "你好"
        assert result.message.id == storage.messages[0].id
        assert result.companion_response.content == "你好呀，今天过得怎么样？"
        assert result.companion_response.persisted is True
        assert result.degraded is False
        assert result.quota_remaining == 19
        assert storage.quotas[("u1", TODAY)] == 1

        growth = result.emotional_growth
        assert growth is not None
        # レベルが上がらない互動ではマイルストーンを判定しない
        assert growth.new_milestones == []
        assert 1 <= growth.progress.intimacy_points <= 5
        assert growth.progress.intimacy_level == 1
        assert result.intimacy_level == 1
        assert growth.leveled_up is False

        saved = storage.progress[("u1", "c1")]
        assert saved["milestones"] == []
        assert saved["total_interactions"] == 1
        assert storage.companions["c1"].intimacy_points == growth.progress.intimacy_points

        assert [m for m in storage.memories if m.type == MemoryType.MILESTONE] == []

    @pytest.mark.asyncio
    async def test_history_passed_to_reply(self, pipeline, ai_provider):
        await pipeline.send_message("u1", "c1", "你好")
        await pipeline.send_message("u1", "c1", "今天天气不错")

        _, history, message = ai_provider.calls[1]
        assert message == "今天天气不错"
        assert [t.role for t in history] == ["user", "assistant"]
        assert history[0].content == "你好"

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, pipeline, storage, ai_provider):
        """配額切れでは何も保存しない"""
        storage.quotas[("u1", TODAY)] = 20

        with pytest.raises(QuotaExceededError) as exc_info:
            await pipeline.send_message("u1", "c1", "你好")

        assert exc_info.value.details["daily_limit"] == 20
        assert storage.messages == []
        assert storage.progress == {}
        assert storage.quotas[("u1", TODAY)] == 20
        assert ai_provider.calls == []

    @pytest.mark.asyncio
    async def test_moderation_rejects_and_releases(self, pipeline, storage, ai_provider):
        with pytest.raises(ModerationRejectedError) as exc_info:
            await pipeline.send_message("u1", "c1", "我们去赌博吧")

        assert exc_info.value.details["category"] == "gambling"
        assert storage.messages == []
        assert storage.quotas[("u1", TODAY)] == 0
        assert ai_provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", "字" * 2001])
    async def test_invalid_content_before_quota(self, pipeline, storage, content):
        with pytest.raises(ValidationError):
            await pipeline.send_message("u1", "c1", content)
        assert storage.quotas == {}

    @pytest.mark.asyncio
    async def test_unknown_message_type(self, pipeline, storage):
        with pytest.raises(ValidationError):
            await pipeline.send_message("u1", "c1", "你好", message_type="video")
        assert storage.quotas == {}

    @pytest.mark.asyncio
    async def test_max_length_accepted(self, pipeline, storage):
        await pipeline.send_message("u1", "c1", "字" * 2000)
        assert len(storage.messages) == 2

    @pytest.mark.asyncio
    async def test_companion_not_found_releases(self, pipeline, storage):
        with pytest.raises(CompanionNotFoundError):
            await pipeline.send_message("u1", "missing", "你好")
        assert storage.quotas[("u1", TODAY)] == 0
        assert storage.messages == []

    @pytest.mark.asyncio
    async def test_other_users_companion(self, pipeline, storage):
        with pytest.raises(CompanionNotFoundError):
            await pipeline.send_message("u2", "c1", "你好")
        assert storage.quotas[("u2", TODAY)] == 0

    @pytest.mark.asyncio
    async def test_user_append_failure_releases(self, pipeline, storage, ai_provider):
        storage.fail_user_append = True

        with pytest.raises(PersistenceError):
            await pipeline.send_message("u1", "c1", "你好")

        assert storage.quotas[("u1", TODAY)] == 0
        assert ai_provider.calls == []

    @pytest.mark.asyncio
    async def test_unlimited_plan(self, storage, ai_provider, companion):
        pipeline = build_pipeline(storage, ai_provider, plan=Plan.premium())

        result = await pipeline.send_message("u1", "c1", "你好")

        assert result.quota_remaining is None
        assert storage.quotas == {}

    @pytest.mark.asyncio
    async def test_generation_failure_uses_fallback(self, storage, companion):
        ai = MockAIProvider(error=GenerationError("boom"))
        pipeline = build_pipeline(storage, ai)

        result = await pipeline.send_message("u1", "c1", "你好")

        assert result.companion_response.content in FALLBACK_RESPONSES[companion.personality.type]
        assert result.degraded is False
        assert len(storage.messages) == 2

    @pytest.mark.asyncio
    async def test_reply_persist_retry(self, pipeline, storage):
        """2回失敗しても3回目で保存できれば通常レスポンス"""
        storage.reply_append_failures = 2

        result = await pipeline.send_message("u1", "c1", "你好")

        assert storage.reply_append_attempts == 3
        assert result.degraded is False
        assert len(storage.messages) == 2

    @pytest.mark.asyncio
    async def test_reply_persist_exhausted(self, pipeline, storage):
        """保存に失敗し続けたら未保存の返信で縮退、配額は消費"""
        storage.reply_append_failures = 10

        result = await pipeline.send_message("u1", "c1", "你好")

        assert storage.reply_append_attempts == 3
        assert result.degraded is True
        assert result.companion_response.persisted is False
        assert result.companion_response.content
        assert [m.sender_type for m in storage.messages] == [SenderType.USER]
        assert storage.quotas[("u1", TODAY)] == 1

    @pytest.mark.asyncio
    async def test_progress_failure_does_not_block(self, pipeline, storage):
        storage.fail_progress_save = True

        result = await pipeline.send_message("u1", "c1", "你好")

        assert result.emotional_growth is None
        assert result.intimacy_level == 1
        assert len(storage.messages) == 2
        assert storage.quotas[("u1", TODAY)] == 1

    @pytest.mark.asyncio
    async def test_progress_accumulates(self, pipeline, storage):
        for text in ["你好", "今天好开心", "我想你了"]:
            await pipeline.send_message("u1", "c1", text)

        saved = storage.progress[("u1", "c1")]
        assert saved["total_interactions"] == 3
        assert saved["milestones"] == []
        assert 3 <= saved["intimacy_points"] <= 15
        assert len(saved["recent_interactions"]) == 3
        assert storage.quotas[("u1", TODAY)] == 3

    @pytest.mark.asyncio
    async def test_special_moment_memory(self, pipeline, storage):
        pipeline.special_moment_threshold = 0

        await pipeline.send_message("u1", "c1", "你好")

        special = [m for m in storage.memories if m.type == MemoryType.SPECIAL_MOMENT]
        assert len(special) == 1
        assert special[0].content == "你好"
        assert special[0].tags == ("特别时刻",)

    @pytest.mark.asyncio
    async def test_level_up_triggers_milestones(self, pipeline, storage):
        """レベル2に上がった互動でマイルストーンを判定する"""
        storage.progress[("u1", "c1")] = RelationshipProgress(
            user_id="u1",
            companion_id="c1",
            intimacy_points=49,
            total_interactions=9,
            first_interaction_at=NOW - timedelta(days=2),
        ).to_dict()

        result = await pipeline.send_message("u1", "c1", "你好")

        growth = result.emotional_growth
        assert growth.leveled_up is True
        assert [m.id for m in growth.new_milestones] == ["first_meeting", "getting_familiar"]
        # 台帳 1..5 + 報酬 10 + 25
        assert 85 <= growth.progress.intimacy_points <= 89
        assert growth.progress.intimacy_level == 2
        assert result.intimacy_level == 2
        assert storage.companions["c1"].intimacy_level == 2

        saved = storage.progress[("u1", "c1")]
        assert saved["milestones"] == ["first_meeting", "getting_familiar"]
        milestone_memories = [m for m in storage.memories if m.type == MemoryType.MILESTONE]
        assert len(milestone_memories) == 2

    @pytest.mark.asyncio
    async def test_thresholds_without_level_up(self, pipeline, storage):
        """閾値を満たしていてもレベルが変わらなければ付与しない"""
        storage.progress[("u1", "c1")] = RelationshipProgress(
            user_id="u1",
            companion_id="c1",
            intimacy_level=2,
            intimacy_points=60,
            total_interactions=20,
            first_interaction_at=NOW - timedelta(days=3),
        ).to_dict()

        result = await pipeline.send_message("u1", "c1", "你好")

        assert result.emotional_growth.leveled_up is False
        assert result.emotional_growth.new_milestones == []
        assert storage.progress[("u1", "c1")]["milestones"] == []

    @pytest.mark.asyncio
    async def test_caller_cancellation_still_completes(self, storage, companion):
        """ユーザーメッセージ保存後に呼び出し側が切断しても返信まで保存される"""
        pipeline = build_pipeline(storage, MockAIProvider(delay=0.2))

        task = asyncio.create_task(pipeline.send_message("u1", "c1", "你好"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await pipeline.drain()

        assert [m.sender_type for m in storage.messages] == [SenderType.USER, SenderType.COMPANION]
        assert storage.quotas[("u1", TODAY)] == 1
        assert storage.progress[("u1", "c1")]["total_interactions"] == 1

    @pytest.mark.asyncio
    async def test_drain_without_background(self, pipeline):
        await pipeline.drain()


class TestHistoryAndGrowth:
    """履歴・情感成長・配額の参照"""

    @pytest.fixture
    def pipeline(self, storage, ai_provider, companion):
        return build_pipeline(storage, ai_provider)

    @pytest.mark.asyncio
    async def test_get_history(self, pipeline):
        await pipeline.send_message("u1", "c1", "你好")

        history = await pipeline.get_history("u1", "c1", limit=10)

        assert [m.sender_type for m in history] == [SenderType.USER, SenderType.COMPANION]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 201])
    async def test_get_history_limit_bounds(self, pipeline, limit):
        with pytest.raises(ValidationError):
            await pipeline.get_history("u1", "c1", limit=limit)

    @pytest.mark.asyncio
    async def test_get_history_requires_owner(self, pipeline):
        with pytest.raises(CompanionNotFoundError):
            await pipeline.get_history("u2", "c1")

    @pytest.mark.asyncio
    async def test_delete_history_keeps_progress(self, pipeline, storage):
        await pipeline.send_message("u1", "c1", "你好")

        deleted = await pipeline.delete_history("u1", "c1")

        assert deleted == 2
        assert storage.messages == []
        assert ("u1", "c1") in storage.progress

    @pytest.mark.asyncio
    async def test_get_growth(self, pipeline):
        await pipeline.send_message("u1", "c1", "你好")

        snapshot = await pipeline.get_growth("u1", "c1")

        assert snapshot.progress.total_interactions == 1
        assert len(snapshot.milestones) == 6
        assert snapshot.memories == []

    @pytest.mark.asyncio
    async def test_get_growth_default(self, pipeline, storage):
        snapshot = await pipeline.get_growth("u1", "c1")

        assert snapshot.progress.intimacy_level == 1
        assert snapshot.memories == []
        assert storage.progress == {}

    @pytest.mark.asyncio
    async def test_create_conversation_memory(self, pipeline, storage):
        memory = await pipeline.create_conversation_memory(
            "u1", "c1", " 第一次聊天 ", "我们聊了很多", emotional_value=30
        )

        assert memory.type == MemoryType.CONVERSATION
        assert memory.title == "第一次聊天"
        assert memory.tags == ("对话", "回忆")
        assert memory.id.startswith("conversation_")
        assert storage.memories == [memory]

    @pytest.mark.asyncio
    async def test_create_memory_requires_title(self, pipeline):
        with pytest.raises(ValidationError):
            await pipeline.create_conversation_memory("u1", "c1", "  ", "内容")

    @pytest.mark.asyncio
    async def test_quota_status(self, pipeline):
        await pipeline.send_message("u1", "c1", "你好")

        status = await pipeline.quota_status("u1")

        assert status.used == 1
        assert status.daily_limit == 20
        assert status.remaining == 19
        assert status.unlimited is False
