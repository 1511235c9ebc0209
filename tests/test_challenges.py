"""Tests for the weekly challenge manager."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from src.challenge_manager import (
    Challenge,
    ChallengeManager,
    ChallengeObjective,
    ChallengeReward,
)
from src.storage import CHALLENGES_KEY, ProgressStorage

WEEK_START = "2026-03-02"  # a Monday


@pytest.fixture
def temp_db():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    if db_path.exists():
        db_path.unlink()


@pytest.fixture
def storage(temp_db):
    """Create a ProgressStorage instance with a temporary database."""
    return ProgressStorage(temp_db)


@pytest.fixture
def now():
    return datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager(storage, now):
    """Create a ChallengeManager with a fixed clock."""
    return ChallengeManager(storage, clock=lambda: now)


def make_challenge(id: str, target: float = 100, **reward) -> Challenge:
    return Challenge(
        id=id,
        title=id.title(),
        description=f"Reach {target}",
        objective=ChallengeObjective(type="steps", target=target, unit="steps"),
        reward=ChallengeReward(**reward) if reward else ChallengeReward(bonus_xp=50),
        start_date=WEEK_START,
        end_date="2026-03-08",
    )


@pytest.fixture
def week(manager):
    """Start a week with three challenges."""
    challenges = [
        make_challenge("walk", 100),
        make_challenge("sleep", 7, bonus_xp=75),
        make_challenge("active", 1, bonus_xp=150, achievement_id="challenge_first"),
    ]
    manager.start_week(challenges, WEEK_START)
    return challenges


class TestChallengeRecord:
    """Tests for challenge serialization."""

    def test_round_trip(self):
        """A challenge survives to_dict/from_dict."""
        challenge = make_challenge("a", 10, bonus_xp=5, achievement_id="x", cosmetic_id="y")
        assert Challenge.from_dict(challenge.to_dict()) == challenge

    def test_reward_omits_absent_fields(self):
        """Rewards only carry the fields they set."""
        assert ChallengeReward(bonus_xp=100).to_dict() == {"bonus_xp": 100}
        assert ChallengeReward.from_dict({}) == ChallengeReward()

    def test_objective_threshold(self):
        """Day-count objectives keep their per-day threshold; others omit it."""
        objective = ChallengeObjective("steps", 5, "days", threshold=6400)
        data = {**make_challenge("a").to_dict(), "objective": objective.to_dict()}

        challenge = Challenge.from_dict(data)

        assert challenge.objective == objective
        assert "threshold" not in ChallengeObjective("steps", 100, "steps").to_dict()


class TestStartWeek:
    """Tests for week rollover."""

    def test_start_week_sets_active_set(self, manager, week):
        """The active set and week start are replaced."""
        assert [c.id for c in manager.get_active_challenges()] == ["walk", "sleep", "active"]
        assert manager.get_week_start_date() == WEEK_START
        assert manager.get_completed_challenge_ids() == []

    def test_new_week_clears_completed(self, manager, week):
        """Completed ids belong to their week; the lifetime total is kept."""
        manager.complete_challenge("walk")

        manager.start_week([make_challenge("next")], "2026-03-09")

        assert manager.get_completed_challenge_ids() == []
        assert manager.get_total_completed() == 1
        assert manager.get_week_start_date() == "2026-03-09"


class TestProgress:
    """Tests for update_challenge_progress."""

    def test_partial_progress(self, manager, week):
        """Progress below target is stored as given."""
        assert manager.update_challenge_progress("walk", 40) is None

        challenge = manager.get_challenge_by_id("walk")
        assert challenge.progress == 40
        assert challenge.completed is False

    @pytest.mark.parametrize("value", [100, 101, 150, 10_000])
    def test_progress_clamps_to_target(self, manager, week, value):
        """Reaching or passing the target clamps and completes."""
        reward = manager.update_challenge_progress("walk", value)

        challenge = manager.get_challenge_by_id("walk")
        assert challenge.progress == 100
        assert challenge.completed is True
        assert reward == ChallengeReward(bonus_xp=50)

    def test_completed_is_frozen(self, manager, week):
        """Updates after completion are no-ops."""
        manager.update_challenge_progress("walk", 120)

        assert manager.update_challenge_progress("walk", 5) is None
        assert manager.get_challenge_by_id("walk").progress == 100
        assert manager.get_total_completed() == 1

    def test_unknown_id_is_noop(self, manager, week):
        """Unknown challenges are ignored."""
        assert manager.update_challenge_progress("missing", 50) is None

    def test_progress_can_decrease_before_completion(self, manager, week):
        """Progress is set, not accumulated."""
        manager.update_challenge_progress("walk", 60)
        manager.update_challenge_progress("walk", 30)

        assert manager.get_challenge_by_id("walk").progress == 30


class TestCompletion:
    """Tests for complete_challenge and check_all_completed."""

    def test_complete_returns_reward(self, manager, week):
        """Forced completion returns the reward descriptor."""
        reward = manager.complete_challenge("active")

        assert reward == ChallengeReward(bonus_xp=150, achievement_id="challenge_first")
        assert manager.get_challenge_by_id("active").progress == 1
        assert manager.get_completed_challenge_ids() == ["active"]

    def test_complete_unknown(self, manager, week):
        """Unknown challenges return None."""
        assert manager.complete_challenge("missing") is None

    def test_complete_twice_counts_once(self, manager, week):
        """Re-completing returns the reward without double counting."""
        manager.complete_challenge("walk")
        reward = manager.complete_challenge("walk")

        assert reward == ChallengeReward(bonus_xp=50)
        assert manager.get_total_completed() == 1

    def test_all_completed(self, manager, week):
        """True only once every active challenge is completed."""
        assert manager.check_all_completed() is False

        for challenge in week:
            manager.complete_challenge(challenge.id)

        assert manager.check_all_completed() is True

    def test_all_completed_requires_challenges(self, manager):
        """An empty week is never all completed."""
        assert manager.check_all_completed() is False


class TestWeekHealth:
    """Tests for the recorded health days of the current week."""

    def test_days_kept_in_order(self, manager, week):
        """Recorded days come back oldest first."""
        assert manager.record_health_day({"date": "2026-03-04", "steps": 9000}) is True
        assert manager.record_health_day({"date": "2026-03-02", "steps": 10000}) is True

        assert [d["date"] for d in manager.get_week_health()] == ["2026-03-02", "2026-03-04"]

    def test_same_date_replaces(self, manager, week):
        """A second entry for a date replaces the first."""
        manager.record_health_day({"date": "2026-03-02", "steps": 4000})
        manager.record_health_day({"date": "2026-03-02", "steps": 10000})

        assert manager.get_week_health() == [{"date": "2026-03-02", "steps": 10000}]

    @pytest.mark.parametrize("day", ["2026-03-01", "2026-03-09"])
    def test_outside_week_ignored(self, manager, week, day):
        """Days before Monday or after Sunday are not recorded."""
        assert manager.record_health_day({"date": day, "steps": 10000}) is False
        assert manager.get_week_health() == []

    def test_no_week(self, manager):
        """Without a week nothing is recorded."""
        assert manager.record_health_day({"date": WEEK_START, "steps": 10000}) is False

    def test_new_week_clears_days(self, manager, week):
        """Starting a week forgets the previous week's days."""
        manager.record_health_day({"date": WEEK_START, "steps": 10000})

        manager.start_week(week, "2026-03-09")

        assert manager.get_week_health() == []

    def test_days_survive_reload(self, storage, manager, week, now):
        """Recorded days are stored with the challenge record."""
        manager.record_health_day({"date": WEEK_START, "steps": 10000, "hrv": 42})

        reloaded = ChallengeManager(storage, clock=lambda: now)

        assert reloaded.get_week_health() == [{"date": WEEK_START, "steps": 10000, "hrv": 42}]


class TestTimeRemaining:
    """Tests for get_time_remaining."""

    def test_mid_week(self, manager, week):
        """Wednesday noon leaves four and a half days."""
        assert manager.get_time_remaining() == int(4.5 * 86400)

    def test_no_week(self, manager):
        """Without a week there is no time remaining."""
        assert manager.get_time_remaining() == 0

    def test_expired(self, storage, week):
        """After Sunday the week has expired."""
        late = ChallengeManager(storage, clock=lambda: datetime(2026, 3, 10, tzinfo=timezone.utc))

        assert late.get_time_remaining() == 0


class TestPersistence:
    """Tests for the stored challenge record."""

    def test_record_shape(self, storage, manager, week):
        """The record holds the active set, completed ids and week start."""
        manager.complete_challenge("walk")

        record = storage.load_record(CHALLENGES_KEY)

        assert record["completed_challenges"] == ["walk"]
        assert record["week_start_date"] == WEEK_START
        assert record["total_completed"] == 1
        assert len(record["active_challenges"]) == 3

    def test_reload(self, storage, manager, week, now):
        """A new manager restores the week and its progress."""
        manager.update_challenge_progress("walk", 55)
        manager.complete_challenge("sleep")

        reloaded = ChallengeManager(storage, clock=lambda: now)

        assert reloaded.get_active_challenges() == manager.get_active_challenges()
        assert reloaded.get_completed_challenge_ids() == ["sleep"]
        assert reloaded.get_total_completed() == 1

    def test_corrupt_record(self, storage):
        """An unreadable record starts with no challenges."""
        storage.save_record(CHALLENGES_KEY, {"active_challenges": [{"id": "x"}]})

        assert ChallengeManager(storage).get_active_challenges() == []
