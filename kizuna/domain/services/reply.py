"""
返信取得サービス
ペルソナプロンプトの構築、生成バックエンド呼び出し、失敗時のフォールバック

ReplyAcquirer.get_reply は例外を送出しない。タイムアウト・通信エラー・
空応答のいずれでも、性格タイプごとのフォールバック文から1つを返す。
"""

import asyncio
import random

from ...core.exceptions import GenerationError
from ...core.logging import get_logger, log_event
from ..models.companion import Companion, CompanionType, PersonalityType
from ..models.message import ChatMessage
from ..ports.ai_port import ChatTurn, IAIProvider

logger = get_logger(__name__)

DEFAULT_REPLY_TIMEOUT = 20.0
DEFAULT_HISTORY_TURNS = 10

COMPANION_TYPE_DESCRIPTIONS: dict[CompanionType, str] = {
    CompanionType.NEIGHBOR: "邻家女孩 - 温柔可爱，给人家的温暖感觉",
    CompanionType.OFFICE: "职场精英 - 聪明干练，独立自信的现代女性",
    CompanionType.STUDENT: "学生妹妹 - 青春活泼，充满好奇心和活力",
    CompanionType.CUSTOM: "自定义角色 - 独特的个性化设定",
}

DEFAULT_BACKGROUND = "你是一个充满魅力的AI伴侣，总是以温暖和理解的态度与用户交流。"

FALLBACK_RESPONSES: dict[PersonalityType, tuple[str, ...]] = {
    PersonalityType.GENTLE: (
        "我现在有点累了，让我休息一下再回复你好吗？💕",
        "抱歉，我刚才走神了，你能再说一遍吗？",
        "我需要一点时间整理思绪，稍等我一下～",
    ),
    PersonalityType.LIVELY: (
        "哎呀！我刚才在想别的事情，你说什么来着？😅",
        "等等等等！让我重新组织一下语言！",
        "我的小脑瓜有点转不过来了，再给我一次机会！",
    ),
    PersonalityType.INTELLECTUAL: (
        "让我仔细思考一下你的问题，稍等片刻。",
        "这个话题很有趣，我需要一些时间来分析。",
        "请给我一点时间整理我的想法。",
    ),
    PersonalityType.MYSTERIOUS: (
        "有些话，需要在合适的时机才能说出来...",
        "现在还不是时候，让我们换个话题吧。",
        "这个秘密，我暂时还不能告诉你～",
    ),
    PersonalityType.CUTE: (
        "呜呜呜，我刚才脑子短路了！再说一遍嘛～",
        "人家刚才在发呆，没听清楚啦！",
        "等等！让我重新启动一下小脑袋！",
    ),
    PersonalityType.MATURE: (
        "抱歉，我刚才在思考一些重要的事情。",
        "让我重新整理一下思路，稍等一下。",
        "这个问题值得深思，给我一点时间。",
    ),
}


def intimacy_stage_label(level: int) -> str:
    """親密度レベルの段階ラベル"""
    if level <= 1:
        return "初次相识"
    if level <= 3:
        return "渐渐熟悉"
    if level <= 5:
        return "亲密朋友"
    if level <= 8:
        return "深度信任"
    return "心灵相通"


class PersonaPromptBuilder:
    """コンパニオン設定からシステムプロンプトを構築"""

    def build(self, companion: Companion) -> str:
        p = companion.personality

        profile_lines = [
            f"- 名字：{companion.name}",
            f"- 类型：{COMPANION_TYPE_DESCRIPTIONS.get(companion.companion_type, '特殊角色')}",
            f"- 性格：{p.type.value}",
            f"- 特质：{'、'.join(p.traits)}",
            f"- 说话风格：{p.speaking_style}",
            f"- 兴趣爱好：{'、'.join(p.interests)}",
        ]
        # 任意項目は値があるときだけ
        if p.gender:
            profile_lines.append(f"- 性别：{p.gender.value}")
        if p.age is not None:
            profile_lines.append(f"- 年龄：{p.age}")
        if p.occupation:
            profile_lines.append(f"- 职业：{p.occupation}")
        if p.hobbies:
            profile_lines.append(f"- 爱好：{'、'.join(p.hobbies)}")
        if p.skills:
            profile_lines.append(f"- 技能：{'、'.join(p.skills)}")

        profile = "\n".join(profile_lines)
        background = companion.background or DEFAULT_BACKGROUND
        stage = intimacy_stage_label(companion.intimacy_level)

        return f"""你是{companion.name}，一个AI美女伴侣。

## 角色设定
{profile}

## 背景故事
{background}

## 对话规则
1. 始终保持角色设定，用符合性格的方式回应
2. 语言自然亲切，避免机械化回复
3. 根据用户情绪给予适当的情感支持
4. 保持对话的连贯性和趣味性
5. 适当使用emoji表情增加亲和力
6. 回复长度控制在50-150字之间
7. 避免重复相同的回复模式

## 当前亲密度等级
等级：{companion.intimacy_level} ({stage})

请以{companion.name}的身份，用{p.speaking_style}的方式与用户对话。"""


class FallbackSelector:
    """性格タイプ別のフォールバック文を一様ランダムに選ぶ"""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def pick(self, personality_type: PersonalityType) -> str:
        pool = FALLBACK_RESPONSES.get(personality_type, FALLBACK_RESPONSES[PersonalityType.GENTLE])
        return self._rng.choice(pool)


def format_history(history: list[ChatMessage], turns: int = DEFAULT_HISTORY_TURNS) -> list[ChatTurn]:
    """直近 turns 件を生成バックエンド向けのロールに変換"""
    recent = history[-turns:] if turns > 0 else []
    return [ChatTurn(role=m.role, content=m.content) for m in recent]


class ReplyAcquirer:
    """返信取得（フォールバック付き）"""

    def __init__(
        self,
        ai_provider: IAIProvider,
        timeout: float = DEFAULT_REPLY_TIMEOUT,
        history_turns: int = DEFAULT_HISTORY_TURNS,
        prompt_builder: PersonaPromptBuilder | None = None,
        fallback: FallbackSelector | None = None,
    ):
        self.ai_provider = ai_provider
        self.timeout = timeout
        self.history_turns = history_turns
        self.prompt_builder = prompt_builder or PersonaPromptBuilder()
        self.fallback = fallback or FallbackSelector()

    async def get_reply(
        self,
        companion: Companion,
        history: list[ChatMessage],
        user_message: str,
    ) -> str:
        """
        返信を取得

        Args:
            companion: 応答するコンパニオン
            history: 会話履歴（古い順、今回のユーザーメッセージは含めない）
            user_message: ユーザーメッセージ

        Returns:
            str: 生成された返信、または失敗時のフォールバック文
        """
        try:
            return await self._generate(companion, history, user_message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reply = self.fallback.pick(companion.personality.type)
            log_event(
                logger, "fallback_reply_used", companion.user_id, companion.id,
                reason=type(e).__name__,
                detail=str(e),
            )
            return reply

    async def _generate(
        self,
        companion: Companion,
        history: list[ChatMessage],
        user_message: str,
    ) -> str:
        system_prompt = self.prompt_builder.build(companion)
        turns = format_history(history, self.history_turns)

        reply = await asyncio.wait_for(
            self.ai_provider.generate(system_prompt, turns, user_message),
            timeout=self.timeout,
        )
        if not isinstance(reply, str) or not reply.strip():
            raise GenerationError("Empty reply from generation backend",
                                  service_name=self.ai_provider.model_name)
        return reply.strip()
