"""Tests for recording a day across the progression services."""

import tempfile
from pathlib import Path

import pytest

from src.challenge_generator import DailyHealth
from src.challenge_manager import Challenge, ChallengeObjective, ChallengeReward
from src.container import ServiceContainer
from src.notifications import DeliveryScheduler, NotificationQueue
from src.storage import ProgressStorage

WEEK_START = "2026-03-02"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def millis(self) -> int:
        return int(self.now * 1000)


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return NotificationQueue(scheduler=DeliveryScheduler(timefunc=clock), clock=clock.millis)


@pytest.fixture
def delivered(queue):
    received = []
    queue.add_listener(received.append)
    return received


@pytest.fixture
def container(temp_db, queue):
    """A container backed by a temporary database and the fake-clock queue."""
    return ServiceContainer(storage=ProgressStorage(temp_db), notifications=queue)


def challenge(template_id: str, target: float, objective_type: str, reward: ChallengeReward):
    return Challenge(
        id=f"{template_id}_{WEEK_START}",
        title=template_id.replace("_", " ").title(),
        description=f"Reach {target}",
        objective=ChallengeObjective(objective_type, target, "units"),
        reward=reward,
        start_date=WEEK_START,
        end_date="2026-03-08",
    )


@pytest.fixture
def week(container):
    """Start a week with a step, an active-day and a streak challenge."""
    challenges = [
        challenge("steps_daily_goal", 10000, "steps", ChallengeReward(bonus_xp=50)),
        challenge(
            "combined_active_day",
            1,
            "combined",
            ChallengeReward(bonus_xp=150, achievement_id="challenge_first"),
        ),
        challenge(
            "streak_maintain",
            3,
            "streak",
            ChallengeReward(bonus_xp=75, cosmetic_id="accessory_medal"),
        ),
    ]
    container.challenges.start_week(challenges, WEEK_START)
    return challenges


def earned_ids(container):
    return {a.id for a in container.achievements.get_earned_achievements()}


class TestRecordDay:
    """Tests for ProgressRecorder.record_day."""

    def test_step_milestones(self, container):
        """A 12,000-step day starts the streak and unlocks the step milestones."""
        result = container.recorder.record_day(DailyHealth("2026-03-02", 12000, 7.5), True)

        assert result.streak.new_streak == 1
        assert [a.id for a in result.unlocked_achievements] == ["steps_5000", "steps_10000"]
        assert container.cosmetics.is_owned("hat_crown")
        assert result.completed_challenges == []

    def test_missed_day(self, container):
        """A missed day records no streak and unlocks nothing below threshold."""
        result = container.recorder.record_day(DailyHealth("2026-03-02", 2000), False)

        assert result.streak.new_streak == 0
        assert result.unlocked_achievements == []

    def test_challenge_rewards_forwarded(self, container, week):
        """Completed challenges report rewards and count towards challenge achievements."""
        result = container.recorder.record_day(DailyHealth("2026-03-02", 12000, 8.0), True)

        assert result.completed_challenges == [
            "steps_daily_goal_2026-03-02",
            "combined_active_day_2026-03-02",
        ]
        assert result.rewards == [
            ChallengeReward(bonus_xp=50),
            ChallengeReward(bonus_xp=150, achievement_id="challenge_first"),
        ]
        assert "challenge_first" in earned_ids(container)
        assert result.weekly_bonus_awarded is False

    def test_streak_challenge_and_weekly_bonus(self, container, week):
        """Finishing the last challenge grants its cosmetic and the perfect-week bonus."""
        recorder = container.recorder
        recorder.record_day(DailyHealth("2026-03-02", 12000, 8.0), True)
        recorder.record_day(DailyHealth("2026-03-03", 6000, 7.0), True)

        result = recorder.record_day(DailyHealth("2026-03-04", 6000, 7.0), True)

        assert result.completed_challenges == ["streak_maintain_2026-03-02"]
        assert result.weekly_bonus_awarded is True
        assert container.cosmetics.is_owned("accessory_medal")
        assert container.cosmetics.is_owned("hat_champion")
        assert "challenge_weekly_all" in earned_ids(container)

    def test_result_serializes(self, container, week):
        """The day result converts to plain data."""
        data = container.recorder.record_day(DailyHealth("2026-03-02", 12000, 8.0), True).to_dict()

        assert data["streak"]["new_streak"] == 1
        assert data["rewards"][0] == {"bonus_xp": 50}
        assert {a["id"] for a in data["unlocked_achievements"]} >= {"steps_10000"}


class TestWeeklyAccumulation:
    """Tests for challenges measured across the whole week."""

    @pytest.fixture
    def weekly_total(self, container):
        container.challenges.start_week(
            [challenge("steps_weekly_total", 50000, "steps", ChallengeReward(bonus_xp=100))],
            WEEK_START,
        )

    def progress(self, container):
        return container.challenges.get_challenge_by_id(f"steps_weekly_total_{WEEK_START}").progress

    def test_days_accumulate(self, container, weekly_total):
        """Steps from every recorded day of the week add up."""
        container.recorder.record_day(DailyHealth("2026-03-02", 10000), True)
        container.recorder.record_day(DailyHealth("2026-03-03", 9000), True)

        assert self.progress(container) == 19000

    def test_accumulates_across_restarts(self, temp_db, queue, container, weekly_total):
        """A fresh container picks up the days already recorded this week."""
        container.recorder.record_day(DailyHealth("2026-03-02", 10000), True)

        fresh = ServiceContainer(storage=ProgressStorage(temp_db), notifications=queue)
        fresh.recorder.record_day(DailyHealth("2026-03-03", 9000), True)

        assert self.progress(fresh) == 19000

    def test_same_day_recorded_once(self, container, weekly_total):
        """Re-recording a day replaces its steps instead of adding them."""
        container.recorder.record_day(DailyHealth("2026-03-02", 4000), True)
        container.recorder.record_day(DailyHealth("2026-03-02", 10000), True)

        assert self.progress(container) == 10000

    def test_day_outside_week(self, container, weekly_total):
        """A day outside the active week leaves the challenges alone."""
        result = container.recorder.record_day(DailyHealth("2026-03-10", 60000), True)

        assert self.progress(container) == 0
        assert result.completed_challenges == []

    def test_explicit_weekly_data(self, container, weekly_total):
        """Weekly data passed by the caller is used as given."""
        week_so_far = [DailyHealth("2026-03-02", 30000), DailyHealth("2026-03-03", 5000)]

        container.recorder.record_day(week_so_far[-1], True, week_so_far)

        assert self.progress(container) == 35000


class TestChallengeHelpers:
    """Tests for completing and updating challenges through the recorder."""

    def test_complete_forwards_reward_once(self, container, week):
        """Forced completion forwards the reward the first time only."""
        recorder = container.recorder

        reward = recorder.complete_challenge("streak_maintain_2026-03-02")
        again = recorder.complete_challenge("streak_maintain_2026-03-02")

        assert reward == again == ChallengeReward(bonus_xp=75, cosmetic_id="accessory_medal")
        assert container.challenges.get_total_completed() == 1
        assert container.cosmetics.is_owned("accessory_medal")

    def test_complete_unknown(self, container, week):
        """Unknown challenges return None."""
        assert container.recorder.complete_challenge("missing") is None

    def test_update_completes_and_awards(self, container, week):
        """Progress updates that complete the last challenge award the bonus."""
        recorder = container.recorder
        recorder.complete_challenge("steps_daily_goal_2026-03-02")
        recorder.complete_challenge("combined_active_day_2026-03-02")

        reward = recorder.update_challenge("streak_maintain_2026-03-02", 3)

        assert reward is not None
        assert "challenge_weekly_all" in earned_ids(container)

    def test_update_partial(self, container, week):
        """Partial progress forwards nothing."""
        assert container.recorder.update_challenge("streak_maintain_2026-03-02", 1) is None
        assert earned_ids(container) == set()


class TestEquipCosmetic:
    """Tests for equipping through the recorder."""

    def test_first_equip_unlocks_customization(self, container):
        """Equipping an owned cosmetic unlocks the customization achievement."""
        container.cosmetics.add_to_inventory_by_id("hat_crown")

        assert container.recorder.equip_cosmetic("hat_crown") is True
        assert "explore_customization" in earned_ids(container)

    def test_unowned_cosmetic(self, container):
        """Unowned cosmetics are not equipped and unlock nothing."""
        assert container.recorder.equip_cosmetic("hat_crown") is False
        assert earned_ids(container) == set()


class TestNotificationDelivery:
    """Tests for notifications produced while recording a day."""

    def test_delivery_starts_on_next_tick(self, container, queue, delivered):
        """Nothing is delivered during the call; the first item arrives on the next tick."""
        container.recorder.record_day(DailyHealth("2026-03-02", 12000), True)

        assert delivered == []

        queue.run_pending()

        assert len(delivered) == 1
        assert delivered[0].type == "achievement"
        assert delivered[0].message == "First Steps"

    def test_suppressed_day_delivers_nothing(self, container, queue, delivered, clock):
        """With delivery disabled, the day's notifications are buffered and never shown."""
        queue.set_notifications_enabled(False)

        container.recorder.record_day(DailyHealth("2026-03-02", 12000), True)
        for _ in range(10):
            clock.advance(10)
            queue.run_pending()

        assert delivered == []
        # steps_5000, steps_10000 and the hat_crown cosmetic
        assert queue.get_queue_length() == 3

        queue.set_notifications_enabled(True)
        queue.run_pending()

        assert delivered == []
        assert queue.get_queue_length() == 0
