"""
Record a day of health data across every progression service.

ProgressRecorder is the entry point for the health-data aggregator: one call
updates the streak, checks step milestones, advances the week's challenges
and forwards any challenge rewards.
"""

import logging
from dataclasses import dataclass, field

from src.achievements import Achievement, AchievementEngine
from src.challenge_generator import DailyHealth, calculate_challenge_progress
from src.challenge_manager import ChallengeManager, ChallengeReward
from src.cosmetics import CosmeticInventoryManager
from src.streak_tracker import StreakTracker, StreakUpdate

logger = logging.getLogger(__name__)

WEEKLY_BONUS_ACHIEVEMENT_ID = "challenge_weekly_all"
CUSTOMIZATION_ACHIEVEMENT_ID = "explore_customization"


@dataclass
class DayResult:
    """Everything that changed while recording one day."""

    streak: StreakUpdate
    unlocked_achievements: list[Achievement] = field(default_factory=list)
    completed_challenges: list[str] = field(default_factory=list)
    rewards: list[ChallengeReward] = field(default_factory=list)
    weekly_bonus_awarded: bool = False

    def to_dict(self) -> dict:
        return {
            "streak": self.streak.to_dict(),
            "unlocked_achievements": [a.to_dict() for a in self.unlocked_achievements],
            "completed_challenges": list(self.completed_challenges),
            "rewards": [r.to_dict() for r in self.rewards],
            "weekly_bonus_awarded": self.weekly_bonus_awarded,
        }


class ProgressRecorder:
    """Coordinates the progression services for one recorded day."""

    def __init__(
        self,
        streaks: StreakTracker,
        achievements: AchievementEngine,
        challenges: ChallengeManager,
        cosmetics: CosmeticInventoryManager | None = None,
    ):
        self.streaks = streaks
        self.achievements = achievements
        self.challenges = challenges
        self.cosmetics = cosmetics

    def record_day(
        self,
        day: DailyHealth,
        criteria_met: bool,
        weekly_data: list[DailyHealth] | None = None,
    ) -> DayResult:
        """
        Record one day of health data.

        Args:
            day: Today's aggregated health data
            criteria_met: Whether the daily health criteria were met
            weekly_data: Every recorded day of the current week, today
                included. Defaults to the days recorded so far this week.
                Challenges are left alone when today falls outside the
                active week and no weekly data is given.

        Returns:
            DayResult describing streak, unlocks and challenge changes
        """
        in_week = self.challenges.record_health_day(day.to_dict())
        if weekly_data is None and in_week:
            weekly_data = [DailyHealth.from_dict(d) for d in self.challenges.get_week_health()]

        earned_before = {a.id for a in self.achievements.get_earned_achievements()}

        streak_update = self.streaks.record_daily_progress(day.date, criteria_met)
        self.achievements.check_milestone({"steps": day.steps})

        result = DayResult(streak=streak_update)

        active = self.challenges.get_active_challenges() if weekly_data is not None else []
        for challenge in active:
            if challenge.completed:
                continue
            progress = calculate_challenge_progress(
                challenge, day, weekly_data, current_streak=streak_update.new_streak
            )
            reward = self.challenges.update_challenge_progress(challenge.id, progress)
            if reward is not None:
                result.completed_challenges.append(challenge.id)
                result.rewards.append(reward)
                self.apply_reward(reward)

        if result.completed_challenges:
            result.weekly_bonus_awarded = self.award_weekly_bonus()

        result.unlocked_achievements = [
            a for a in self.achievements.get_earned_achievements() if a.id not in earned_before
        ]
        logger.info(
            "Recorded %s: streak %d, %d new achievements, %d challenges completed",
            day.date,
            streak_update.new_streak,
            len(result.unlocked_achievements),
            len(result.completed_challenges),
        )
        return result

    def apply_reward(self, reward: ChallengeReward) -> None:
        """Forward a challenge reward to the achievement and cosmetic services."""
        if reward.achievement_id is not None:
            self.achievements.unlock_achievement(reward.achievement_id)
        if reward.cosmetic_id is not None and self.cosmetics is not None:
            self.cosmetics.add_to_inventory_by_id(reward.cosmetic_id)
        self.achievements.unlock_by_condition("challenge", self.challenges.get_total_completed())

    def award_weekly_bonus(self) -> bool:
        """
        Award the perfect-week achievement if every challenge is done.

        Returns:
            True if the bonus was newly awarded
        """
        if not self.challenges.check_all_completed():
            return False
        result = self.achievements.unlock_achievement(WEEKLY_BONUS_ACHIEVEMENT_ID)
        return result is not None and result.is_new_unlock

    def complete_challenge(self, challenge_id: str) -> ChallengeReward | None:
        """Force a challenge to completion and forward its reward."""
        already_completed = challenge_id in self.challenges.get_completed_challenge_ids()
        reward = self.challenges.complete_challenge(challenge_id)
        if reward is None or already_completed:
            return reward
        self.apply_reward(reward)
        self.award_weekly_bonus()
        return reward

    def update_challenge(self, challenge_id: str, value: float) -> ChallengeReward | None:
        """Set a challenge's progress and forward the reward if it completed."""
        reward = self.challenges.update_challenge_progress(challenge_id, value)
        if reward is not None:
            self.apply_reward(reward)
            self.award_weekly_bonus()
        return reward

    def equip_cosmetic(self, cosmetic_id: str) -> bool:
        """Equip a cosmetic; the first equip unlocks the customization achievement."""
        if self.cosmetics is None or not self.cosmetics.equip(cosmetic_id):
            return False
        self.achievements.unlock_achievement(CUSTOMIZATION_ACHIEVEMENT_ID)
        return True
