"""
Generate weekly challenges from recent health history.

Each week (Monday to Sunday) gets three challenges picked from a fixed set of
templates, with targets personalised to the user's recent averages.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date, timedelta
from types import MappingProxyType

from src.achievements import round_half_up
from src.challenge_manager import Challenge, ChallengeObjective, ChallengeReward

logger = logging.getLogger(__name__)

CHALLENGES_PER_WEEK = 3

DEFAULT_AVERAGE_STEPS = 7500
DEFAULT_AVERAGE_SLEEP_HOURS = 7
DEFAULT_AVERAGE_HRV = 40

# Thresholds for a "combined" active day
ACTIVE_DAY_STEPS = 8000
ACTIVE_DAY_SLEEP_HOURS = 7


@dataclass
class DailyHealth:
    """One day of aggregated health data."""

    date: str  # YYYY-MM-DD
    steps: int = 0
    sleep_hours: float | None = None
    hrv: float | None = None

    def to_dict(self) -> dict:
        data = {"date": self.date, "steps": self.steps}
        if self.sleep_hours is not None:
            data["sleep_hours"] = self.sleep_hours
        if self.hrv is not None:
            data["hrv"] = self.hrv
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DailyHealth":
        return cls(
            date=data["date"],
            steps=data.get("steps", 0),
            sleep_hours=data.get("sleep_hours"),
            hrv=data.get("hrv"),
        )


@dataclass(frozen=True)
class ChallengeTemplate:
    id: str
    title: str
    description: str  # "{target}" and "{threshold}" are filled in per user
    objective_type: str
    base_target: float
    unit: str
    reward: ChallengeReward
    difficulty_multiplier: float = 1.0
    # Day-count templates: target is this many days, base_target is the per-day threshold
    required_days: int | None = None


CHALLENGE_TEMPLATES: tuple[ChallengeTemplate, ...] = (
    ChallengeTemplate("steps_weekly_total", "Step Master", "Walk {target} steps this week",
                      "steps", 50000, "steps", ChallengeReward(bonus_xp=100), 1.1),
    ChallengeTemplate("steps_daily_goal", "Daily Walker", "Hit {target} steps in a single day",
                      "steps", 10000, "steps", ChallengeReward(bonus_xp=50), 1.2),
    ChallengeTemplate("steps_consistency", "Consistent Stepper",
                      "Walk at least {threshold} steps on {target} days",
                      "steps", 5000, "days", ChallengeReward(bonus_xp=75), 0.8,
                      required_days=5),
    ChallengeTemplate("sleep_weekly_avg", "Sleep Champion",
                      "Average {target} hours of sleep this week",
                      "sleep", 7, "hours", ChallengeReward(bonus_xp=100)),
    ChallengeTemplate("sleep_quality", "Rest Master",
                      "Get {threshold}+ hours of sleep on {target} nights",
                      "sleep", 7, "nights", ChallengeReward(bonus_xp=75), required_days=4),
    ChallengeTemplate("hrv_improvement", "Stress Buster",
                      "Keep HRV at {threshold}ms or above on {target} days",
                      "hrv", 40, "days", ChallengeReward(bonus_xp=100), required_days=3),
    ChallengeTemplate("streak_maintain", "Streak Keeper",
                      "Maintain your streak for {target} more days",
                      "streak", 3, "days", ChallengeReward(bonus_xp=50)),
    ChallengeTemplate("combined_active_day", "Active Day",
                      "Hit step goal AND sleep goal in the same day",
                      "combined", 1, "days",
                      ChallengeReward(bonus_xp=150, achievement_id="challenge_first")),
)


TEMPLATES_BY_ID = MappingProxyType({t.id: t for t in CHALLENGE_TEMPLATES})


def week_bounds(day: date) -> tuple[date, date]:
    """
    Get the Monday and Sunday of the week containing day.

    Args:
        day: Any calendar day

    Returns:
        Tuple of (week_start, week_end)
    """
    week_start = day - timedelta(days=day.weekday())
    return week_start, week_start + timedelta(days=6)


def average_steps(history: list[DailyHealth]) -> int:
    if not history:
        return DEFAULT_AVERAGE_STEPS
    return round_half_up(sum(d.steps for d in history) / len(history))


def average_sleep(history: list[DailyHealth]) -> float:
    values = [d.sleep_hours for d in history if d.sleep_hours is not None]
    if not values:
        return DEFAULT_AVERAGE_SLEEP_HOURS
    return round_half_up(sum(values) / len(values) * 10) / 10


def average_hrv(history: list[DailyHealth]) -> int:
    values = [d.hrv for d in history if d.hrv is not None]
    if not values:
        return DEFAULT_AVERAGE_HRV
    return round_half_up(sum(values) / len(values))


def select_templates(
    history: list[DailyHealth], rng: random.Random | None = None
) -> list[ChallengeTemplate]:
    """
    Pick the week's templates, favouring variety of objective types.

    Step, sleep and HRV templates are only eligible when the history has
    data of that kind; streak and combined templates are always eligible.
    """
    rng = rng or random.Random()

    eligible_types = {"streak", "combined"}
    if any(d.steps > 0 for d in history):
        eligible_types.add("steps")
    if any(d.sleep_hours is not None for d in history):
        eligible_types.add("sleep")
    if any(d.hrv is not None for d in history):
        eligible_types.add("hrv")

    candidates = [t for t in CHALLENGE_TEMPLATES if t.objective_type in eligible_types]
    rng.shuffle(candidates)

    selected = []
    used_types = set()
    for template in candidates:
        if len(selected) >= CHALLENGES_PER_WEEK:
            break
        if template.objective_type not in used_types or len(selected) < 2:
            selected.append(template)
            used_types.add(template.objective_type)

    # Top up if variety left us short
    for template in candidates:
        if len(selected) >= CHALLENGES_PER_WEEK:
            break
        if template not in selected:
            selected.append(template)

    return selected


def _scaled_amount(
    template: ChallengeTemplate, avg_steps: float, avg_sleep: float, avg_hrv: float
) -> float:
    multiplier = template.difficulty_multiplier
    if template.objective_type == "steps":
        if template.id == "steps_weekly_total":
            return round_half_up(avg_steps * 7 * multiplier)
        return round_half_up(avg_steps * multiplier)
    if template.objective_type == "sleep":
        return round_half_up(avg_sleep * multiplier * 10) / 10
    if template.objective_type == "hrv":
        return round_half_up(avg_hrv * multiplier)
    return template.base_target


def personalised_target(
    template: ChallengeTemplate, avg_steps: float, avg_sleep: float, avg_hrv: float
) -> float:
    """Scale a template's target to the user's recent averages."""
    if template.required_days is not None:
        return template.required_days
    return _scaled_amount(template, avg_steps, avg_sleep, avg_hrv)


def personalised_threshold(
    template: ChallengeTemplate, avg_steps: float, avg_sleep: float, avg_hrv: float
) -> float | None:
    """Per-day amount for day-count templates; None for the others."""
    if template.required_days is None:
        return None
    return _scaled_amount(template, avg_steps, avg_sleep, avg_hrv)


def _format_target(target: float) -> str:
    return str(int(target)) if float(target).is_integer() else str(target)


def generate_weekly_challenges(
    history: list[DailyHealth],
    today: date,
    rng: random.Random | None = None,
) -> tuple[list[Challenge], date]:
    """
    Build the challenge set for the week containing today.

    Args:
        history: Recent daily health data used to personalise targets
        today: Any day in the target week
        rng: Random source for template selection

    Returns:
        Tuple of (challenges, week_start)
    """
    week_start, week_end = week_bounds(today)
    avg_steps = average_steps(history)
    avg_sleep = average_sleep(history)
    avg_hrv = average_hrv(history)

    challenges = []
    for template in select_templates(history, rng):
        target = personalised_target(template, avg_steps, avg_sleep, avg_hrv)
        threshold = personalised_threshold(template, avg_steps, avg_sleep, avg_hrv)
        description = template.description.replace("{target}", _format_target(target))
        if threshold is not None:
            description = description.replace("{threshold}", _format_target(threshold))
        challenges.append(
            Challenge(
                id=f"{template.id}_{week_start.isoformat()}",
                title=template.title,
                description=description,
                objective=ChallengeObjective(
                    type=template.objective_type,
                    target=target,
                    unit=template.unit,
                    threshold=threshold,
                ),
                reward=template.reward,
                start_date=week_start.isoformat(),
                end_date=week_end.isoformat(),
            )
        )

    logger.info(
        "Generated %d challenges for week of %s", len(challenges), week_start.isoformat()
    )
    return challenges, week_start


def template_id_for(challenge: Challenge) -> str:
    """Recover the template ID from a generated challenge ID."""
    template_id, _, _ = challenge.id.rpartition("_")
    return template_id or challenge.id


def day_threshold(challenge: Challenge) -> float:
    """Per-day amount a day-count challenge counts towards its target."""
    if challenge.objective.threshold is not None:
        return challenge.objective.threshold
    template = TEMPLATES_BY_ID.get(template_id_for(challenge))
    return template.base_target if template is not None else challenge.objective.target


def calculate_challenge_progress(
    challenge: Challenge,
    today: DailyHealth,
    weekly_data: list[DailyHealth],
    current_streak: int = 0,
) -> float:
    """
    Derive a challenge's progress from this week's health data.

    Args:
        challenge: The challenge to measure
        today: Today's snapshot
        weekly_data: Every recorded day of the current week
        current_streak: Current day streak, for streak objectives

    Returns:
        The progress value (the manager clamps it to the target)
    """
    template_id = template_id_for(challenge)
    threshold = day_threshold(challenge)

    if template_id == "steps_weekly_total":
        return sum(d.steps for d in weekly_data)
    if template_id == "steps_daily_goal":
        return max([d.steps for d in weekly_data] + [today.steps])
    if template_id == "steps_consistency":
        return sum(1 for d in weekly_data if d.steps >= threshold)

    sleep_days = [d.sleep_hours for d in weekly_data if d.sleep_hours is not None]
    if template_id == "sleep_weekly_avg":
        if not sleep_days:
            return 0
        return round_half_up(sum(sleep_days) / len(sleep_days) * 10) / 10
    if template_id == "sleep_quality":
        return sum(1 for hours in sleep_days if hours >= threshold)

    if challenge.objective.type == "hrv":
        return sum(1 for d in weekly_data if d.hrv is not None and d.hrv >= threshold)
    if challenge.objective.type == "streak":
        return current_streak
    if challenge.objective.type == "combined":
        return sum(
            1
            for d in weekly_data
            if d.steps >= ACTIVE_DAY_STEPS and (d.sleep_hours or 0) >= ACTIVE_DAY_SLEEP_HOURS
        )

    return challenge.progress
