"""
InteractionQualityEvaluator のテスト
"""

from datetime import datetime

import pytest

from kizuna.domain.services.scoring import InteractionQualityEvaluator, round_half_up


class TestFactors:
    """各要素の算出"""

    @pytest.mark.parametrize(
        "length,expected",
        [(0, 30), (9, 30), (10, 60), (49, 60), (50, 85), (149, 85), (150, 95), (299, 95), (300, 90), (1000, 90)],
    )
    def test_message_length_tiers(self, length, expected):
        assert InteractionQualityEvaluator.evaluate_message_length("字" * length) == expected

    def test_message_length_uses_trimmed_text(self):
        assert InteractionQualityEvaluator.evaluate_message_length("  你好  " + " " * 20) == 30

    def test_emotional_depth_without_keywords(self):
        assert InteractionQualityEvaluator.evaluate_emotional_depth("你好", "你好呀") == 30

    def test_emotional_depth_empty_texts(self):
        assert InteractionQualityEvaluator.evaluate_emotional_depth("", "") == 30

    def test_emotional_depth_density(self):
        """キーワード密度 1/100 → 0.01*1000*50+30 = 100 に上限"""
        user = "开心" + "啊" * 48
        reply = "嗯" * 50
        assert InteractionQualityEvaluator.evaluate_emotional_depth(user, reply) == 100

    def test_emotional_depth_partial(self):
        # 1 hit / 1000 chars → 1*50+30 = 80
        user = "开心" + "啊" * 498
        reply = "嗯" * 500
        assert InteractionQualityEvaluator.evaluate_emotional_depth(user, reply) == pytest.approx(80)

    def test_engagement_counts_marks_and_emoji(self):
        assert InteractionQualityEvaluator.evaluate_engagement("你好", "你好") == 50
        assert InteractionQualityEvaluator.evaluate_engagement("你好？", "嗯！") == 58
        assert InteractionQualityEvaluator.evaluate_engagement("😊", "") == 52

    def test_engagement_caps(self):
        text = "？" * 10 + "！" * 10 + "😊" * 10
        assert InteractionQualityEvaluator.evaluate_engagement(text, "") == 100

    def test_creativity(self):
        reply = "我觉得你像星星一样灿烂"
        assert InteractionQualityEvaluator.evaluate_creativity(reply) == 63

    def test_creativity_plain(self):
        assert InteractionQualityEvaluator.evaluate_creativity("好的") == 50

    def test_consistency_baseline(self):
        assert InteractionQualityEvaluator.evaluate_consistency() == 75


class TestScore:
    """総合スコア"""

    @pytest.fixture
    def evaluator(self):
        return InteractionQualityEvaluator(clock=lambda: datetime(2025, 3, 1, 12, 0))

    def test_greeting_score(self, evaluator):
        """30*.15 + 30*.25 + 50*.25 + 50*.2 + 75*.15 = 45.75 → 46"""
        quality = evaluator.score("你好", "你好呀")
        assert quality.quality_score == 46
        assert quality.factors.message_length == 30
        assert quality.timestamp == datetime(2025, 3, 1, 12, 0)
        assert quality.message_id

    @pytest.mark.parametrize(
        "user,reply",
        [
            ("", ""),
            ("你好", ""),
            ("？！😊" * 100, "像如同仿佛好比犹如绚烂温馨惬意宁静澎湃细腻深邃灿烂我觉得在我看来我想我希望我记得" * 5),
            ("开心难过兴奋紧张担心爱喜欢讨厌害怕愤怒", "失望希望梦想回忆想念感动温暖感觉情感心情"),
            ("a" * 5000, "b" * 5000),
        ],
    )
    def test_score_is_bounded_integer(self, evaluator, user, reply):
        quality = evaluator.score(user, reply)
        assert isinstance(quality.quality_score, int)
        assert 0 <= quality.quality_score <= 100

    def test_round_half_up(self):
        assert round_half_up(45.5) == 46
        assert round_half_up(44.5) == 45
        assert round_half_up(44.49) == 44
