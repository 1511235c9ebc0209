"""Tests for weekly challenge generation."""

import random
from datetime import date

import pytest

from src.challenge_generator import (
    CHALLENGE_TEMPLATES,
    DailyHealth,
    average_hrv,
    average_sleep,
    average_steps,
    calculate_challenge_progress,
    generate_weekly_challenges,
    personalised_target,
    personalised_threshold,
    select_templates,
    template_id_for,
    week_bounds,
)
from src.challenge_manager import Challenge, ChallengeObjective

TEMPLATES = {t.id: t for t in CHALLENGE_TEMPLATES}


def history(steps=(8000, 9000, 10000), sleep=(7.0, 8.0, 6.5), hrv=(42, 45, 39)):
    return [
        DailyHealth(date=f"2026-03-0{i + 2}", steps=s, sleep_hours=h, hrv=v)
        for i, (s, h, v) in enumerate(zip(steps, sleep, hrv))
    ]


class TestWeekBounds:
    """Tests for week_bounds."""

    @pytest.mark.parametrize(
        "day",
        [date(2026, 3, 2), date(2026, 3, 4), date(2026, 3, 8)],
    )
    def test_monday_to_sunday(self, day):
        """Every day of a week maps to the same Monday and Sunday."""
        assert week_bounds(day) == (date(2026, 3, 2), date(2026, 3, 8))

    def test_next_monday_starts_new_week(self):
        """Monday opens the following week."""
        assert week_bounds(date(2026, 3, 9))[0] == date(2026, 3, 9)


class TestAverages:
    """Tests for the history averages."""

    def test_defaults_without_history(self):
        """Defaults apply when there is no data."""
        assert average_steps([]) == 7500
        assert average_sleep([]) == 7
        assert average_hrv([]) == 40

    def test_averages(self):
        """Averages round like the displayed targets."""
        data = history()

        assert average_steps(data) == 9000
        assert average_sleep(data) == 7.2
        assert average_hrv(data) == 42

    def test_missing_sleep_ignored(self):
        """Days without sleep data do not pull the average down."""
        data = [DailyHealth("2026-03-02", 5000, 8.0), DailyHealth("2026-03-03", 5000, None)]

        assert average_sleep(data) == 8.0


class TestTargets:
    """Tests for personalised targets."""

    def test_weekly_total_scales_by_week(self):
        """The weekly step total is seven days of the average with a 10% stretch."""
        assert personalised_target(TEMPLATES["steps_weekly_total"], 8000, 7, 40) == 61600

    def test_daily_goal(self):
        """The daily goal stretches the average by 20%."""
        assert personalised_target(TEMPLATES["steps_daily_goal"], 8000, 7, 40) == 9600

    def test_sleep_rounds_to_tenth(self):
        """Sleep targets keep one decimal."""
        assert personalised_target(TEMPLATES["sleep_weekly_avg"], 8000, 7.26, 40) == 7.3

    def test_fixed_targets(self):
        """Streak and combined templates use their base target."""
        assert personalised_target(TEMPLATES["streak_maintain"], 1, 1, 1) == 3
        assert personalised_target(TEMPLATES["combined_active_day"], 1, 1, 1) == 1

    @pytest.mark.parametrize(
        "template_id, days",
        [("steps_consistency", 5), ("sleep_quality", 4), ("hrv_improvement", 3)],
    )
    def test_day_count_targets(self, template_id, days):
        """Day-count templates target a number of days."""
        assert personalised_target(TEMPLATES[template_id], 8000, 7.5, 45) == days

    def test_day_count_thresholds(self):
        """The per-day threshold is scaled to the averages."""
        assert personalised_threshold(TEMPLATES["steps_consistency"], 8000, 7, 40) == 6400
        assert personalised_threshold(TEMPLATES["sleep_quality"], 8000, 7.5, 40) == 7.5
        assert personalised_threshold(TEMPLATES["hrv_improvement"], 8000, 7, 45) == 45

    def test_no_threshold_for_amount_targets(self):
        """Templates that measure an amount have no per-day threshold."""
        assert personalised_threshold(TEMPLATES["steps_weekly_total"], 8000, 7, 40) is None
        assert personalised_threshold(TEMPLATES["streak_maintain"], 8000, 7, 40) is None


class TestSelection:
    """Tests for template selection."""

    @pytest.mark.parametrize("seed", range(20))
    def test_selects_three_distinct(self, seed):
        """Three distinct templates are picked every week."""
        selected = select_templates(history(), random.Random(seed))

        assert len(selected) == 3
        assert len({t.id for t in selected}) == 3

    @pytest.mark.parametrize("seed", range(20))
    def test_no_data_limits_types(self, seed):
        """Without health data only streak and combined templates qualify."""
        selected = select_templates([], random.Random(seed))

        assert {t.objective_type for t in selected} <= {"streak", "combined"}
        assert len(selected) == 2

    @pytest.mark.parametrize("seed", range(20))
    def test_variety(self, seed):
        """The third pick prefers a new objective type when one is available."""
        selected = select_templates(history(), random.Random(seed))

        assert len({t.objective_type for t in selected}) >= 2


class TestGenerate:
    """Tests for generate_weekly_challenges."""

    def test_generated_challenges(self):
        """Challenges are dated to the week and start at zero progress."""
        challenges, week_start = generate_weekly_challenges(
            history(), date(2026, 3, 4), random.Random(1)
        )

        assert week_start == date(2026, 3, 2)
        assert len(challenges) == 3
        for challenge in challenges:
            assert challenge.id.endswith("_2026-03-02")
            assert challenge.start_date == "2026-03-02"
            assert challenge.end_date == "2026-03-08"
            assert challenge.progress == 0
            assert challenge.completed is False
            assert "{target}" not in challenge.description
            assert "{threshold}" not in challenge.description
            assert template_id_for(challenge) in TEMPLATES

    def test_day_count_challenges_can_complete(self):
        """Day-count challenges target days and carry their per-day threshold."""
        full_week = [DailyHealth(f"2026-03-0{i + 2}", 100000, 24.0, 500) for i in range(7)]
        seen = set()
        for seed in range(50):
            challenges, _ = generate_weekly_challenges(
                history(), date(2026, 3, 4), random.Random(seed)
            )
            for challenge in challenges:
                template = TEMPLATES[template_id_for(challenge)]
                if template.required_days is None:
                    assert challenge.objective.threshold is None
                    continue
                seen.add(template.id)
                assert challenge.objective.target == template.required_days
                assert challenge.objective.threshold is not None
                progress = calculate_challenge_progress(challenge, full_week[-1], full_week)
                assert progress >= challenge.objective.target

        assert seen == {"steps_consistency", "sleep_quality", "hrv_improvement"}

    def test_deterministic_with_seed(self):
        """The same seed generates the same week."""
        first, _ = generate_weekly_challenges(history(), date(2026, 3, 4), random.Random(5))
        second, _ = generate_weekly_challenges(history(), date(2026, 3, 4), random.Random(5))

        assert first == second


class TestProgressCalculation:
    """Tests for deriving challenge progress from health data."""

    @pytest.fixture
    def week(self):
        return [
            DailyHealth("2026-03-02", 9000, 7.5, 45),
            DailyHealth("2026-03-03", 4000, 6.0, 38),
            DailyHealth("2026-03-04", 12000, 8.0, 41),
        ]

    def challenge_for(self, template_id, target=None, threshold=None):
        template = TEMPLATES[template_id]
        return Challenge(
            id=f"{template_id}_2026-03-02",
            title=template.title,
            description=template.description,
            objective=ChallengeObjective(
                template.objective_type,
                target if target is not None else template.base_target,
                template.unit,
                threshold,
            ),
            reward=template.reward,
            start_date="2026-03-02",
            end_date="2026-03-08",
        )

    def test_weekly_total(self, week):
        """Weekly totals sum the week's steps."""
        challenge = self.challenge_for("steps_weekly_total")
        assert calculate_challenge_progress(challenge, week[-1], week) == 25000

    def test_daily_goal(self, week):
        """Daily goals track the best day."""
        challenge = self.challenge_for("steps_daily_goal")
        assert calculate_challenge_progress(challenge, week[-1], week) == 12000

    def test_consistency(self, week):
        """Consistency counts days at or above the per-day threshold."""
        challenge = self.challenge_for("steps_consistency", target=5, threshold=5000)
        assert calculate_challenge_progress(challenge, week[-1], week) == 2

    def test_sleep_average(self, week):
        """Sleep averages keep one decimal."""
        challenge = self.challenge_for("sleep_weekly_avg")
        assert calculate_challenge_progress(challenge, week[-1], week) == 7.2

    def test_hrv_days(self, week):
        """HRV counts days at or above the per-day threshold."""
        challenge = self.challenge_for("hrv_improvement", target=3, threshold=40)
        assert calculate_challenge_progress(challenge, week[-1], week) == 2

    def test_sleep_nights(self, week):
        """Sleep quality counts nights at or above the per-night threshold."""
        challenge = self.challenge_for("sleep_quality", target=4, threshold=7.5)
        assert calculate_challenge_progress(challenge, week[-1], week) == 2

    def test_threshold_defaults_to_template(self, week):
        """Without a stored threshold the template's base amount applies."""
        challenge = self.challenge_for("steps_consistency", target=5)
        assert challenge.objective.threshold is None
        assert calculate_challenge_progress(challenge, week[-1], week) == 2

    def test_streak(self, week):
        """Streak objectives follow the current streak."""
        challenge = self.challenge_for("streak_maintain")
        assert calculate_challenge_progress(challenge, week[-1], week, current_streak=4) == 4

    def test_combined(self, week):
        """Active days need 8000 steps and 7 hours of sleep."""
        challenge = self.challenge_for("combined_active_day")
        assert calculate_challenge_progress(challenge, week[-1], week) == 2
