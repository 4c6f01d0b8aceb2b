"""
親密度台帳サービス
互動品質を関係性進捗に反映し、ポイントからレベルを導出する
"""

from collections.abc import Callable, Sequence
from datetime import datetime

from ...core.logging import get_logger, log_event
from ..models.progress import GrowthTrend, InteractionQuality, RelationshipProgress

logger = get_logger(__name__)

# (下限ポイント, レベル) 降順
LEVEL_THRESHOLDS: tuple[tuple[int, int], ...] = (
    (1000, 6),
    (500, 5),
    (200, 4),
    (100, 3),
    (50, 2),
)

TREND_MIN_SAMPLES = 10
TREND_SPAN = 5
TREND_DELTA = 5.0


def points_for_quality(quality_score: int) -> int:
    """品質スコアから獲得ポイントを算出"""
    if quality_score >= 90:
        return 5
    if quality_score >= 80:
        return 4
    if quality_score >= 70:
        return 3
    if quality_score >= 60:
        return 2
    return 1


def level_for_points(points: int) -> int:
    """ポイントからレベルを導出（純粋関数）"""
    for minimum, level in LEVEL_THRESHOLDS:
        if points >= minimum:
            return level
    return 1


def analyze_growth_trend(scores: Sequence[float]) -> GrowthTrend:
    """
    成長トレンドを分析

    直近5件の平均と、その前の5件の平均の差で判定する。
    サンプルが10件未満なら stable。
    """
    if len(scores) < TREND_MIN_SAMPLES:
        return GrowthTrend.STABLE

    recent = scores[-TREND_SPAN:]
    earlier = scores[-2 * TREND_SPAN:-TREND_SPAN]
    diff = sum(recent) / len(recent) - sum(earlier) / len(earlier)

    if diff > TREND_DELTA:
        return GrowthTrend.INCREASING
    if diff < -TREND_DELTA:
        return GrowthTrend.DECREASING
    return GrowthTrend.STABLE


class IntimacyLedger:
    """親密度台帳"""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def apply(
        self, progress: RelationshipProgress, interaction: InteractionQuality
    ) -> tuple[RelationshipProgress, bool]:
        """
        互動を進捗に反映

        Returns:
            tuple[RelationshipProgress, bool]: 更新後の進捗とレベルアップしたか
        """
        now = self._clock()
        previous_level = progress.intimacy_level

        progress.total_interactions += 1
        progress.add_interaction(interaction)

        scores = progress.recent_scores()
        progress.quality_score = sum(scores) / len(scores)

        progress.intimacy_points += points_for_quality(interaction.quality_score)
        progress.intimacy_level = level_for_points(progress.intimacy_points)

        if progress.first_interaction_at is None:
            progress.first_interaction_at = now
        progress.relationship_days = max(0, (now - progress.first_interaction_at).days)

        progress.growth_trend = analyze_growth_trend(scores)
        progress.last_updated = now

        leveled_up = progress.intimacy_level > previous_level
        if leveled_up:
            log_event(
                logger, "intimacy_level_up", progress.user_id, progress.companion_id,
                from_level=previous_level,
                to_level=progress.intimacy_level,
            )
        return progress, leveled_up
