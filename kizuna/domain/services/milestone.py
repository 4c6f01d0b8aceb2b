"""
マイルストーンサービス
関係性の節目の判定と、到達記念の回想フラグメント生成
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

from ...core.logging import get_logger, log_event
from ..models.milestone import RELATIONSHIP_MILESTONES, MemoryFragment, MemoryType, Milestone
from ..models.progress import RelationshipProgress
from .intimacy import level_for_points

logger = get_logger(__name__)

MILESTONE_TAG = "里程碑"


class MilestoneEngine:
    """
    マイルストーン判定

    テーブルを順に走査し、未付与かつ3つの閾値をすべて満たすものを付与する。
    報酬ポイントでレベルが上がり次の節目を満たすことがあるため、
    何も付与されない走査になるまで繰り返す。
    """

    def __init__(
        self,
        milestones: Sequence[Milestone] = RELATIONSHIP_MILESTONES,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.milestones = tuple(milestones)
        self._clock = clock

    def evaluate(self, progress: RelationshipProgress) -> tuple[list[Milestone], RelationshipProgress]:
        awarded: list[Milestone] = []

        while True:
            awarded_in_pass = 0
            for milestone in self.milestones:
                if progress.has_milestone(milestone.id):
                    continue
                if not milestone.is_met_by(
                    progress.intimacy_level,
                    progress.total_interactions,
                    progress.relationship_days,
                ):
                    continue

                progress.milestones.append(milestone.id)
                progress.intimacy_points += milestone.reward.intimacy_points
                progress.intimacy_level = level_for_points(progress.intimacy_points)
                awarded.append(milestone)
                awarded_in_pass += 1

                log_event(
                    logger, "milestone_awarded", progress.user_id, progress.companion_id,
                    milestone_id=milestone.id,
                    reward_points=milestone.reward.intimacy_points,
                )
            if awarded_in_pass == 0:
                break

        return awarded, progress

    def memories_for(
        self, progress: RelationshipProgress, milestones: Sequence[Milestone]
    ) -> list[MemoryFragment]:
        """到達したマイルストーンの回想フラグメントを生成"""
        now = self._clock()
        return [
            MemoryFragment(
                id=f"milestone_{m.id}_{uuid.uuid4().hex[:12]}",
                user_id=progress.user_id,
                companion_id=progress.companion_id,
                type=MemoryType.MILESTONE,
                title=m.name,
                content=m.description,
                emotional_value=m.reward.intimacy_points,
                timestamp=now,
                tags=(MILESTONE_TAG, m.name),
            )
            for m in milestones
        ]
