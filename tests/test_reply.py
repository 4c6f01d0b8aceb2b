"""
ReplyAcquirer のテスト

- 生成成功時はそのまま返す
- 失敗・タイムアウト・空応答では性格別のフォールバック
- ペルソナプロンプトの内容
"""

import asyncio
import random
from datetime import datetime

import pytest

from conftest import MockAIProvider, make_companion
from kizuna.core.exceptions import GenerationError
from kizuna.domain.models.companion import Gender, PersonalityType
from kizuna.domain.models.message import ChatMessage, SenderType
from kizuna.domain.services.reply import (
    DEFAULT_BACKGROUND,
    FALLBACK_RESPONSES,
    FallbackSelector,
    PersonaPromptBuilder,
    ReplyAcquirer,
    format_history,
    intimacy_stage_label,
)


def _history(n: int) -> list[ChatMessage]:
    return [
        ChatMessage(
            id=f"m{i}",
            user_id="u1",
            companion_id="c1",
            sender_type=SenderType.USER if i % 2 == 0 else SenderType.COMPANION,
            content=f"message {i}",
            created_at=datetime(2025, 3, 1, 12, 0, i),
        )
        for i in range(n)
    ]


class TestReplyAcquirer:
    """返信取得"""

    @pytest.mark.asyncio
    async def test_returns_generated_reply(self):
        ai = MockAIProvider(response="  今天也很开心哦～  ")
        acquirer = ReplyAcquirer(ai)

        reply = await acquirer.get_reply(make_companion(), [], "你好")

        assert reply == "今天也很开心哦～"
        system_prompt, history, message = ai.calls[0]
        assert "小雪" in system_prompt
        assert history == []
        assert message == "你好"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("personality_type", list(PersonalityType))
    async def test_fallback_covers_every_personality(self, personality_type):
        """すべての性格タイプで空でないフォールバックを返す"""
        ai = MockAIProvider(error=GenerationError("boom", service_name="mock"))
        acquirer = ReplyAcquirer(ai)
        companion = make_companion(personality_type=personality_type)

        reply = await acquirer.get_reply(companion, [], "你好")

        assert reply
        assert reply in FALLBACK_RESPONSES[personality_type]

    @pytest.mark.asyncio
    async def test_fallback_on_unexpected_exception(self):
        ai = MockAIProvider(error=RuntimeError("connection reset"))
        reply = await ReplyAcquirer(ai).get_reply(make_companion(), [], "你好")
        assert reply in FALLBACK_RESPONSES[PersonalityType.GENTLE]

    @pytest.mark.asyncio
    async def test_fallback_on_timeout(self):
        """タイムアウトでもフォールバック"""
        ai = MockAIProvider(delay=1.0)
        acquirer = ReplyAcquirer(ai, timeout=0.05)

        reply = await acquirer.get_reply(make_companion(personality_type=PersonalityType.CUTE), [], "你好")

        assert reply in FALLBACK_RESPONSES[PersonalityType.CUTE]

    @pytest.mark.asyncio
    async def test_fallback_on_empty_reply(self):
        ai = MockAIProvider(response="   ")
        reply = await ReplyAcquirer(ai).get_reply(make_companion(), [], "你好")
        assert reply in FALLBACK_RESPONSES[PersonalityType.GENTLE]

    @pytest.mark.asyncio
    async def test_fallback_is_deterministic_with_seeded_rng(self):
        ai = MockAIProvider(error=GenerationError("boom"))
        acquirer = ReplyAcquirer(ai, fallback=FallbackSelector(random.Random(42)))

        reply = await acquirer.get_reply(make_companion(personality_type=PersonalityType.MATURE), [], "你好")

        expected = random.Random(42).choice(FALLBACK_RESPONSES[PersonalityType.MATURE])
        assert reply == expected

    @pytest.mark.asyncio
    async def test_history_trimmed_to_recent_turns(self):
        """履歴は直近10件だけ渡す"""
        ai = MockAIProvider()
        await ReplyAcquirer(ai).get_reply(make_companion(), _history(15), "你好")

        _, history, _ = ai.calls[0]
        assert len(history) == 10
        assert history[0].content == "message 5"
        assert history[-1].content == "message 14"

    @pytest.mark.asyncio
    async def test_cancellation_is_not_swallowed(self):
        ai = MockAIProvider(delay=5.0)
        acquirer = ReplyAcquirer(ai, timeout=10)

        task = asyncio.create_task(acquirer.get_reply(make_companion(), [], "你好"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestFormatHistory:
    """履歴のロール変換"""

    def test_roles_are_mapped(self):
        turns = format_history(_history(2))
        assert [t.role for t in turns] == ["user", "assistant"]

    def test_zero_turns(self):
        assert format_history(_history(3), turns=0) == []


class TestPersonaPromptBuilder:
    """ペルソナプロンプト"""

    @pytest.fixture
    def builder(self):
        return PersonaPromptBuilder()

    def test_contains_persona_fields(self, builder):
        prompt = builder.build(make_companion())

        assert "你是小雪，一个AI美女伴侣。" in prompt
        assert "邻家女孩" in prompt
        assert "- 性格：gentle" in prompt
        assert "- 特质：温柔、体贴" in prompt
        assert "- 说话风格：轻声细语" in prompt
        assert "- 兴趣爱好：读书、烘焙" in prompt
        assert "等级：1 (初次相识)" in prompt

    def test_default_background(self, builder):
        assert DEFAULT_BACKGROUND in builder.build(make_companion())

    def test_custom_background(self, builder):
        companion = make_companion()
        companion.background = "住在隔壁的大学生"
        prompt = builder.build(companion)
        assert "住在隔壁的大学生" in prompt
        assert DEFAULT_BACKGROUND not in prompt

    def test_optional_fields_omitted_when_missing(self, builder):
        prompt = builder.build(make_companion())
        assert "- 性别：" not in prompt
        assert "- 年龄：" not in prompt
        assert "- 职业：" not in prompt
        assert "- 爱好：" not in prompt
        assert "- 技能：" not in prompt

    def test_optional_fields_included(self, builder):
        companion = make_companion(
            gender=Gender.FEMALE,
            age=22,
            occupation="设计师",
            hobbies=["摄影"],
            skills=["弹钢琴"],
        )
        prompt = builder.build(companion)
        assert "- 性别：female" in prompt
        assert "- 年龄：22" in prompt
        assert "- 职业：设计师" in prompt
        assert "- 爱好：摄影" in prompt
        assert "- 技能：弹钢琴" in prompt

    @pytest.mark.parametrize(
        "level,label",
        [(0, "初次相识"), (1, "初次相识"), (2, "渐渐熟悉"), (3, "渐渐熟悉"),
         (4, "亲密朋友"), (5, "亲密朋友"), (6, "深度信任"), (8, "深度信任"), (9, "心灵相通")],
    )
    def test_stage_labels(self, level, label):
        assert intimacy_stage_label(level) == label
