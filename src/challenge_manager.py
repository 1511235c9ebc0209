"""
Weekly challenge management for symbi-progress.

Tracks progress within the current week's challenge set: progress updates
clamped to each objective's target, completion, and the reward descriptors
handed back to the caller. Generating the set for a new week is done by
src.challenge_generator.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from src.storage import CHALLENGES_KEY, PersistResult, ProgressStorage

logger = logging.getLogger(__name__)

OBJECTIVE_TYPES = ("steps", "sleep", "hrv", "streak", "combined")

DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class ChallengeObjective:
    """What a challenge asks for."""

    type: str  # one of OBJECTIVE_TYPES
    target: float
    unit: str
    threshold: float | None = None  # per-day amount when the target counts days

    def to_dict(self) -> dict:
        data = {"type": self.type, "target": self.target, "unit": self.unit}
        if self.threshold is not None:
            data["threshold"] = self.threshold
        return data


@dataclass(frozen=True)
class ChallengeReward:
    """What completing a challenge grants."""

    bonus_xp: int | None = None
    achievement_id: str | None = None
    cosmetic_id: str | None = None

    def to_dict(self) -> dict:
        data = {}
        if self.bonus_xp is not None:
            data["bonus_xp"] = self.bonus_xp
        if self.achievement_id is not None:
            data["achievement_id"] = self.achievement_id
        if self.cosmetic_id is not None:
            data["cosmetic_id"] = self.cosmetic_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChallengeReward":
        return cls(
            bonus_xp=data.get("bonus_xp"),
            achievement_id=data.get("achievement_id"),
            cosmetic_id=data.get("cosmetic_id"),
        )


@dataclass(frozen=True)
class Challenge:
    """A weekly objective with its own progress and reward."""

    id: str
    title: str
    description: str
    objective: ChallengeObjective
    reward: ChallengeReward
    start_date: str  # YYYY-MM-DD
    end_date: str  # YYYY-MM-DD
    progress: float = 0
    completed: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "objective": self.objective.to_dict(),
            "reward": self.reward.to_dict(),
            "start_date": self.start_date,
            "end_date": self.end_date,
            "progress": self.progress,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Challenge":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            objective=ChallengeObjective(**data["objective"]),
            reward=ChallengeReward.from_dict(data.get("reward", {})),
            start_date=data["start_date"],
            end_date=data["end_date"],
            progress=data.get("progress", 0),
            completed=bool(data.get("completed", False)),
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeManager:
    """Manages the active weekly challenge set."""

    def __init__(
        self,
        storage: ProgressStorage | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the challenge manager.

        Args:
            storage: ProgressStorage instance. Creates default if not provided.
            clock: Returns the current time; used for time remaining.
        """
        self.storage = storage or ProgressStorage()
        self._clock = clock or _utc_now
        self._challenges: list[Challenge] = []
        self._completed_ids: list[str] = []
        self._week_start_date: str | None = None
        self._total_completed = 0
        self._week_health: dict[str, dict] = {}  # YYYY-MM-DD -> day snapshot
        self._load()

    def _load(self) -> None:
        data = self.storage.load_record(CHALLENGES_KEY)
        if not data:
            return

        try:
            challenges = [Challenge.from_dict(c) for c in data.get("active_challenges", [])]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Corrupt challenge record, starting empty: %s", e)
            return

        self._challenges = challenges
        self._completed_ids = list(data.get("completed_challenges", []))
        self._week_start_date = data.get("week_start_date") or None
        self._total_completed = int(data.get("total_completed", len(self._completed_ids)))
        self._week_health = {
            day["date"]: day
            for day in data.get("week_health", [])
            if isinstance(day, dict) and isinstance(day.get("date"), str)
        }

    def _persist(self) -> PersistResult:
        data = {
            "active_challenges": [c.to_dict() for c in self._challenges],
            "completed_challenges": list(self._completed_ids),
            "total_completed": self._total_completed,
            "week_health": [self._week_health[d] for d in sorted(self._week_health)],
        }
        if self._week_start_date is not None:
            data["week_start_date"] = self._week_start_date
        result = self.storage.save_record(CHALLENGES_KEY, data)
        if not result.ok:
            logger.warning("Challenge state kept in memory only: %s", result.error)
        return result

    def _index_of(self, challenge_id: str) -> int | None:
        for i, challenge in enumerate(self._challenges):
            if challenge.id == challenge_id:
                return i
        return None

    def start_week(self, challenges: list[Challenge], week_start_date: date | str) -> None:
        """
        Replace the active set with a new week's challenges.

        Args:
            challenges: The week's challenges
            week_start_date: Monday of the week, as a date or YYYY-MM-DD
        """
        if isinstance(week_start_date, date):
            week_start_date = week_start_date.isoformat()

        self._challenges = list(challenges)
        self._completed_ids = [c.id for c in self._challenges if c.completed]
        self._week_start_date = week_start_date
        self._week_health = {}
        self._persist()
        logger.info(
            "Started week %s with %d challenges", week_start_date, len(self._challenges)
        )

    def update_challenge_progress(self, challenge_id: str, value: float) -> ChallengeReward | None:
        """
        Set a challenge's progress, clamped to its target.

        Completed challenges are frozen and unknown IDs are ignored.

        Args:
            challenge_id: The challenge to update
            value: The new progress value

        Returns:
            The reward if this call completed the challenge, else None
        """
        index = self._index_of(challenge_id)
        if index is None:
            logger.warning("Challenge not found: %s", challenge_id)
            return None

        challenge = self._challenges[index]
        if challenge.completed:
            return None

        progress = min(value, challenge.objective.target)
        completed = progress >= challenge.objective.target
        self._challenges[index] = replace(challenge, progress=progress, completed=completed)

        if completed:
            self._record_completion(challenge_id)
            logger.info("Challenge completed: %s", challenge_id)

        self._persist()
        return challenge.reward if completed else None

    def complete_challenge(self, challenge_id: str) -> ChallengeReward | None:
        """
        Force a challenge to completion.

        Returns:
            The challenge's reward, or None if the ID is unknown
        """
        index = self._index_of(challenge_id)
        if index is None:
            logger.warning("Challenge not found: %s", challenge_id)
            return None

        challenge = self._challenges[index]
        if challenge.completed:
            return challenge.reward

        self._challenges[index] = replace(
            challenge, progress=challenge.objective.target, completed=True
        )
        self._record_completion(challenge_id)
        self._persist()
        logger.info("Challenge completed manually: %s", challenge_id)
        return challenge.reward

    def _record_completion(self, challenge_id: str) -> None:
        if challenge_id not in self._completed_ids:
            self._completed_ids.append(challenge_id)
            self._total_completed += 1

    def record_health_day(self, day: dict) -> bool:
        """
        Remember one day of health data for the active week.

        Recording the same date again replaces the earlier snapshot.

        Args:
            day: Snapshot with at least a YYYY-MM-DD "date"

        Returns:
            True if the day falls inside the active week and was stored
        """
        if self._week_start_date is None:
            return False

        week_start = datetime.strptime(self._week_start_date, "%Y-%m-%d").date()
        day_date = datetime.strptime(day["date"], "%Y-%m-%d").date()
        if not week_start <= day_date < week_start + timedelta(days=DAYS_PER_WEEK):
            logger.debug("%s is outside the week of %s", day["date"], self._week_start_date)
            return False

        self._week_health[day["date"]] = dict(day)
        self._persist()
        return True

    def get_week_health(self) -> list[dict]:
        """This week's recorded days, oldest first."""
        return [dict(self._week_health[d]) for d in sorted(self._week_health)]

    def check_all_completed(self) -> bool:
        """True when the week has challenges and every one is completed."""
        return bool(self._challenges) and all(c.completed for c in self._challenges)

    # Queries

    def get_active_challenges(self) -> list[Challenge]:
        return list(self._challenges)

    def get_challenge_by_id(self, challenge_id: str) -> Challenge | None:
        index = self._index_of(challenge_id)
        return self._challenges[index] if index is not None else None

    def get_completed_challenge_ids(self) -> list[str]:
        return list(self._completed_ids)

    def get_total_completed(self) -> int:
        """Challenges completed across all weeks."""
        return self._total_completed

    def get_week_start_date(self) -> str | None:
        return self._week_start_date

    def get_time_remaining(self) -> int:
        """
        Seconds until the end of the current week (Sunday midnight UTC).

        Returns:
            Remaining seconds, 0 when no week is active or it has ended
        """
        if self._week_start_date is None:
            return 0

        week_start = datetime.strptime(self._week_start_date, "%Y-%m-%d").date()
        week_end = datetime.combine(
            week_start + timedelta(days=DAYS_PER_WEEK), time.min, tzinfo=timezone.utc
        )
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return max(0, int((week_end - now).total_seconds()))

    def reset(self) -> None:
        self._challenges = []
        self._completed_ids = []
        self._week_start_date = None
        self._total_completed = 0
        self._week_health = {}
