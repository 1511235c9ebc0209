"""
Track daily health streaks and streak milestones.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable

from src.achievements import AchievementEngine
from src.notifications import NotificationQueue
from src.storage import STREAK_KEY, PersistResult, ProgressStorage

logger = logging.getLogger(__name__)

MAX_HISTORY_DAYS = 90


@dataclass(frozen=True)
class StreakMilestone:
    """A streak length that unlocks an achievement."""

    days: int
    achievement_id: str

    def to_dict(self) -> dict:
        return {"days": self.days, "achievement_id": self.achievement_id}


STREAK_MILESTONES: tuple[StreakMilestone, ...] = tuple(
    StreakMilestone(days=days, achievement_id=f"streak_{days}") for days in (7, 14, 30, 60, 90)
)


@dataclass
class StreakRecord:
    """One recorded day."""

    date: str  # YYYY-MM-DD
    met_criteria: bool
    streak_count: int

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "met_criteria": self.met_criteria,
            "streak_count": self.streak_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StreakRecord":
        return cls(
            date=data["date"],
            met_criteria=bool(data["met_criteria"]),
            streak_count=int(data["streak_count"]),
        )


@dataclass
class StreakState:
    """Current and longest streak plus recent history."""

    current_streak: int = 0
    longest_streak: int = 0
    last_recorded_date: str | None = None
    streak_history: list[StreakRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "streak_history": [r.to_dict() for r in self.streak_history],
        }
        if self.last_recorded_date is not None:
            data["last_recorded_date"] = self.last_recorded_date
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "StreakState":
        current = int(data["current_streak"])
        longest = int(data["longest_streak"])
        if current < 0 or longest < current:
            raise ValueError(f"inconsistent streak counters: current={current}, longest={longest}")
        return cls(
            current_streak=current,
            longest_streak=longest,
            last_recorded_date=data.get("last_recorded_date") or None,
            streak_history=[StreakRecord.from_dict(r) for r in data.get("streak_history", [])],
        )


@dataclass
class StreakUpdate:
    """Outcome of recording one day."""

    previous_streak: int
    new_streak: int
    was_reset: bool
    milestone_reached: StreakMilestone | None = None

    def to_dict(self) -> dict:
        data = {
            "previous_streak": self.previous_streak,
            "new_streak": self.new_streak,
            "was_reset": self.was_reset,
        }
        if self.milestone_reached is not None:
            data["milestone_reached"] = self.milestone_reached.to_dict()
        return data


def _parse_day(day: date | str) -> date:
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    return datetime.strptime(day, "%Y-%m-%d").date()


def _is_next_day(previous: str, current: date) -> bool:
    return (current - _parse_day(previous)).days == 1


def milestone_for(streak: int) -> StreakMilestone | None:
    """Return the milestone whose length equals streak, if any."""
    for milestone in STREAK_MILESTONES:
        if streak == milestone.days:
            return milestone
    return None


def rebuild_streak_state(history: list[StreakRecord]) -> StreakState:
    """
    Rebuild streak counters by replaying history in date order.

    Args:
        history: Recorded days, in any order

    Returns:
        A StreakState consistent with the replayed history
    """
    records = sorted(history, key=lambda r: r.date)[-MAX_HISTORY_DAYS:]

    current = 0
    longest = 0
    last_date = None
    rebuilt = []

    for record in records:
        day = _parse_day(record.date)
        if record.met_criteria:
            if last_date is None or _is_next_day(last_date, day):
                current += 1
            elif last_date != record.date:
                current = 1
            longest = max(longest, current)
        else:
            current = 0
        last_date = record.date
        rebuilt.append(StreakRecord(record.date, record.met_criteria, current))

    return StreakState(
        current_streak=current,
        longest_streak=longest,
        last_recorded_date=last_date,
        streak_history=rebuilt,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StreakTracker:
    """Maintains the day streak and triggers milestone achievements."""

    def __init__(
        self,
        storage: ProgressStorage | None = None,
        achievements: AchievementEngine | None = None,
        notifications: NotificationQueue | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the tracker and load the persisted streak.

        Args:
            storage: ProgressStorage instance. Creates default if not provided.
            achievements: Engine that unlocks streak_N achievements. Optional.
            notifications: Queue for milestone celebrations. Optional.
            clock: Returns the current time for record timestamps.
        """
        self.storage = storage or ProgressStorage()
        self.achievements = achievements
        self.notifications = notifications
        self._clock = clock or _utc_now
        self._state = self._load()

    def _load(self) -> StreakState:
        data = self.storage.load_record(STREAK_KEY)
        if not data:
            return StreakState()

        try:
            return StreakState.from_dict(data["state"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Corrupt streak record, starting from default state: %s", e)
            return StreakState()

    def _persist(self) -> PersistResult:
        result = self.storage.save_record(
            STREAK_KEY,
            {"state": self._state.to_dict(), "last_updated": self._clock().isoformat()},
        )
        if not result.ok:
            logger.warning("Streak state kept in memory only: %s", result.error)
        return result

    def record_daily_progress(self, day: date | str, criteria_met: bool) -> StreakUpdate:
        """
        Record whether the daily criteria were met and update the streak.

        A met day directly after the last recorded day extends the streak, a
        repeat of the last recorded day leaves it unchanged, and any other
        met day starts a new streak of 1. A missed day resets to 0.

        Args:
            day: Calendar day as a date or YYYY-MM-DD string
            criteria_met: Whether the user met the daily health criteria

        Returns:
            StreakUpdate with previous/new streak and any milestone reached
        """
        current_day = _parse_day(day)
        day_str = current_day.isoformat()
        state = self._state
        previous = state.current_streak
        was_reset = False

        if not criteria_met:
            new_streak = 0
            was_reset = previous > 0
        elif state.last_recorded_date is None:
            new_streak = 1
        elif state.last_recorded_date == day_str:
            new_streak = previous
        elif _is_next_day(state.last_recorded_date, current_day):
            new_streak = previous + 1
        else:
            # Missed days in between break the streak
            new_streak = 1
            was_reset = previous > 0

        same_day = state.last_recorded_date == day_str
        state.current_streak = new_streak
        state.longest_streak = max(state.longest_streak, new_streak)
        state.last_recorded_date = day_str

        record = StreakRecord(date=day_str, met_criteria=criteria_met, streak_count=new_streak)
        if same_day and state.streak_history and state.streak_history[-1].date == day_str:
            state.streak_history[-1] = record
        else:
            state.streak_history.append(record)
        state.streak_history = state.streak_history[-MAX_HISTORY_DAYS:]

        self._persist()

        milestone = self.check_milestone_reached()
        if milestone is not None:
            self._trigger_milestone(milestone, counter_moved=new_streak != previous)

        return StreakUpdate(
            previous_streak=previous,
            new_streak=new_streak,
            was_reset=was_reset,
            milestone_reached=milestone,
        )

    def _trigger_milestone(self, milestone: StreakMilestone, counter_moved: bool) -> None:
        if self.achievements is not None:
            result = self.achievements.unlock_achievement(milestone.achievement_id)
            if result is not None and result.is_new_unlock:
                logger.info("Streak milestone %d unlocked %s", milestone.days, milestone.achievement_id)

        if counter_moved and self.notifications is not None:
            self.notifications.notify_streak_milestone(milestone, self._state.current_streak)

    # Queries

    def check_milestone_reached(self) -> StreakMilestone | None:
        return milestone_for(self._state.current_streak)

    def get_current_streak(self) -> int:
        return self._state.current_streak

    def get_longest_streak(self) -> int:
        return self._state.longest_streak

    def get_streak_state(self) -> StreakState:
        return StreakState.from_dict(self._state.to_dict())

    def get_streak_history(self) -> list[StreakRecord]:
        return list(self._state.streak_history)

    def get_next_milestone(self) -> StreakMilestone | None:
        """The first milestone longer than the current streak."""
        for milestone in STREAK_MILESTONES:
            if self._state.current_streak < milestone.days:
                return milestone
        return None

    def get_days_until_milestone(self) -> int:
        """Days left until the next milestone; 0 once all are reached."""
        milestone = self.get_next_milestone()
        if milestone is None:
            return 0
        return milestone.days - self._state.current_streak

    # Recovery

    def recover_from_corruption(self) -> StreakState:
        """
        Rebuild the streak from the persisted history.

        Falls back to the default state when no usable history is stored.
        """
        logger.warning("Attempting to recover streak state from history")
        data = self.storage.load_record(STREAK_KEY) or {}

        try:
            raw_history = data["state"]["streak_history"]
            history = [StreakRecord.from_dict(r) for r in raw_history]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Streak history unusable: %s", e)
            history = []

        if history:
            self._state = rebuild_streak_state(history)
            logger.info("Recovered streak of %d days from history", self._state.current_streak)
        else:
            self._state = StreakState()
            logger.info("Reset streak to default state")

        self._persist()
        return self.get_streak_state()

    def set_state(self, state: StreakState) -> None:
        """Replace the streak state (used to seed or restore a snapshot)."""
        self._state = StreakState.from_dict(state.to_dict())
        self._persist()

    def reset(self) -> None:
        self._state = StreakState()
