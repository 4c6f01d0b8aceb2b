"""
互動品質評価サービス
ユーザーメッセージと返信の組から 0-100 の品質スコアを算出する
"""

import math
import re
import uuid
from collections.abc import Callable
from datetime import datetime

from ..models.message import ChatMessage
from ..models.progress import InteractionFactors, InteractionQuality

EMOTIONAL_KEYWORDS = (
    "感觉", "情感", "心情", "开心", "难过", "兴奋", "紧张", "担心", "爱", "喜欢",
    "讨厌", "害怕", "愤怒", "失望", "希望", "梦想", "回忆", "想念", "感动", "温暖",
)
METAPHOR_MARKERS = ("像", "如同", "仿佛", "好比", "犹如")
RICH_VOCABULARY = ("绚烂", "温馨", "惬意", "宁静", "澎湃", "细腻", "深邃", "灿烂")
PERSONAL_EXPRESSIONS = ("我觉得", "在我看来", "我想", "我希望", "我记得")

QUESTION_PATTERN = re.compile(r"[？?]")
EXCLAMATION_PATTERN = re.compile(r"[！!]")
EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\U0001F1E0-\U0001F1FF]"
)

# 会話の一貫性は現状ベースライン固定
CONSISTENCY_BASELINE = 75.0

FACTOR_WEIGHTS = {
    "message_length": 0.15,
    "emotional_depth": 0.25,
    "engagement": 0.25,
    "creativity": 0.20,
    "consistency": 0.15,
}


def _count_present(text: str, markers: tuple[str, ...]) -> int:
    return sum(1 for marker in markers if marker in text)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class InteractionQualityEvaluator:
    """
    互動品質評価

    5要素（長さ・感情の深さ・参加度・創造性・一貫性）の加重和を
    四捨五入して [0, 100] に収める。
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def score(
        self,
        user_message: str,
        reply: str,
        history: list[ChatMessage] | None = None,
    ) -> InteractionQuality:
        factors = InteractionFactors(
            message_length=self.evaluate_message_length(user_message),
            emotional_depth=self.evaluate_emotional_depth(user_message, reply),
            engagement=self.evaluate_engagement(user_message, reply),
            creativity=self.evaluate_creativity(reply),
            consistency=self.evaluate_consistency(history),
        )
        composite = sum(getattr(factors, name) * w for name, w in FACTOR_WEIGHTS.items())
        quality_score = max(0, min(100, round_half_up(composite)))

        return InteractionQuality(
            message_id=str(uuid.uuid4()),
            quality_score=quality_score,
            factors=factors,
            timestamp=self._clock(),
        )

    @staticmethod
    def evaluate_message_length(message: str) -> float:
        length = len(message.strip())
        if length < 10:
            return 30.0
        if length < 50:
            return 60.0
        if length < 150:
            return 85.0
        if length < 300:
            return 95.0
        # 長すぎると質は下がる
        return 90.0

    @staticmethod
    def evaluate_emotional_depth(user_message: str, reply: str) -> float:
        total_length = len(user_message) + len(reply)
        if total_length == 0:
            return 30.0
        hits = _count_present(user_message, EMOTIONAL_KEYWORDS) + _count_present(
            reply, EMOTIONAL_KEYWORDS
        )
        density = hits / total_length * 1000
        return min(100.0, density * 50 + 30)

    @staticmethod
    def evaluate_engagement(user_message: str, reply: str) -> float:
        combined = user_message + reply
        score = 50.0
        score += min(20, len(QUESTION_PATTERN.findall(combined)) * 5)
        score += min(15, len(EXCLAMATION_PATTERN.findall(combined)) * 3)
        score += min(15, len(EMOJI_PATTERN.findall(combined)) * 2)
        return min(100.0, score)

    @staticmethod
    def evaluate_creativity(reply: str) -> float:
        score = 50.0
        score += min(20, _count_present(reply, METAPHOR_MARKERS) * 5)
        score += min(20, _count_present(reply, RICH_VOCABULARY) * 4)
        score += min(20, _count_present(reply, PERSONAL_EXPRESSIONS) * 4)
        return min(100.0, score)

    @staticmethod
    def evaluate_consistency(history: list[ChatMessage] | None = None) -> float:
        # TODO: 履歴から話題・口調の一貫性を評価する
        return CONSISTENCY_BASELINE
