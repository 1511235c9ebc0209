"""
Achievement engine for symbi-progress.

Provides the achievement catalog, milestone detection against health metrics,
unlocking with cosmetic rewards, progress tracking and statistics.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Mapping

from src.cosmetics import RARITY_ORDER, CosmeticInventoryManager
from src.notifications import NotificationQueue
from src.storage import ACHIEVEMENTS_KEY, PersistResult, ProgressStorage

logger = logging.getLogger(__name__)

ACHIEVEMENT_CATEGORIES = (
    "health_milestones",
    "streak_rewards",
    "challenge_completion",
    "exploration",
    "special_events",
)

CONDITION_TYPES = ("steps", "streak", "challenge", "evolution", "custom")
COMPARISONS = ("gte", "eq", "consecutive")

RECENT_UNLOCKS_LIMIT = 5


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class UnlockCondition:
    """The criteria for unlocking an achievement."""

    type: str  # one of CONDITION_TYPES
    threshold: int
    comparison: str  # one of COMPARISONS

    def is_met(self, value: float) -> bool:
        if self.comparison == "gte":
            return value >= self.threshold
        if self.comparison == "eq":
            return value == self.threshold
        if self.comparison == "consecutive":
            # value is a count of consecutive days
            return value >= self.threshold
        return False


@dataclass(frozen=True)
class AchievementProgress:
    """Progress toward an achievement's target."""

    current: float
    target: float
    percentage: int

    def to_dict(self) -> dict:
        return {"current": self.current, "target": self.target, "percentage": self.percentage}

    @classmethod
    def from_dict(cls, data: dict) -> "AchievementProgress":
        return cls(current=data["current"], target=data["target"], percentage=data["percentage"])


@dataclass(frozen=True)
class Achievement:
    """Represents an achievement definition and its unlock state."""

    id: str
    name: str
    description: str
    category: str
    rarity: str
    icon_url: str
    unlock_condition: UnlockCondition
    cosmetic_rewards: tuple[str, ...] = ()
    unlocked_at: str | None = None
    progress: AchievementProgress | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "rarity": self.rarity,
            "icon_url": self.icon_url,
            "unlock_condition": {
                "type": self.unlock_condition.type,
                "threshold": self.unlock_condition.threshold,
                "comparison": self.unlock_condition.comparison,
            },
            "cosmetic_rewards": list(self.cosmetic_rewards),
        }
        if self.unlocked_at is not None:
            data["unlocked_at"] = self.unlocked_at
        if self.progress is not None:
            data["progress"] = self.progress.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Achievement":
        progress = data.get("progress")
        return cls(
            id=data["id"],
            name=data["name"],
            description=data["description"],
            category=data["category"],
            rarity=data["rarity"],
            icon_url=data["icon_url"],
            unlock_condition=UnlockCondition(**data["unlock_condition"]),
            cosmetic_rewards=tuple(data.get("cosmetic_rewards", ())),
            unlocked_at=data.get("unlocked_at"),
            progress=AchievementProgress.from_dict(progress) if progress is not None else None,
        )


@dataclass
class AchievementStatistics:
    """Aggregate metrics about earned achievements."""

    total_earned: int
    total_available: int
    completion_percentage: int
    rarest_badge: Achievement | None
    recent_unlocks: list[Achievement]

    def to_dict(self) -> dict:
        data = {
            "total_earned": self.total_earned,
            "total_available": self.total_available,
            "completion_percentage": self.completion_percentage,
            "recent_unlocks": [a.to_dict() for a in self.recent_unlocks],
        }
        if self.rarest_badge is not None:
            data["rarest_badge"] = self.rarest_badge.to_dict()
        return data


@dataclass
class UnlockResult:
    """Result of an unlock attempt."""

    achievement: Achievement
    is_new_unlock: bool
    cosmetics_unlocked: list[str]


def _achievement(
    id: str,
    name: str,
    description: str,
    category: str,
    rarity: str,
    condition: tuple[str, int, str],
    rewards: tuple[str, ...] = (),
) -> Achievement:
    condition_type, threshold, comparison = condition
    return Achievement(
        id=id,
        name=name,
        description=description,
        category=category,
        rarity=rarity,
        icon_url=f"achievements/{id}.png",
        unlock_condition=UnlockCondition(condition_type, threshold, comparison),
        cosmetic_rewards=rewards,
    )


ACHIEVEMENT_CATALOG: tuple[Achievement, ...] = (
    # Health milestones - steps
    _achievement("steps_5000", "First Steps", "Walk 5,000 steps in a single day",
                 "health_milestones", "common", ("steps", 5000, "gte")),
    _achievement("steps_10000", "Step Champion", "Walk 10,000 steps in a single day",
                 "health_milestones", "common", ("steps", 10000, "gte"), ("hat_crown",)),
    _achievement("steps_15000", "Marathon Walker", "Walk 15,000 steps in a single day",
                 "health_milestones", "rare", ("steps", 15000, "gte"), ("accessory_medal",)),
    _achievement("steps_20000", "Ultra Walker", "Walk 20,000 steps in a single day",
                 "health_milestones", "epic", ("steps", 20000, "gte"), ("color_gold",)),
    _achievement("steps_30000", "Legendary Strider", "Walk 30,000 steps in a single day",
                 "health_milestones", "legendary", ("steps", 30000, "gte"), ("theme_golden",)),
    # Streak rewards
    _achievement("streak_7", "Week Warrior", "Maintain a 7-day health streak",
                 "streak_rewards", "common", ("streak", 7, "consecutive"), ("hat_headband",)),
    _achievement("streak_14", "Fortnight Fighter", "Maintain a 14-day health streak",
                 "streak_rewards", "rare", ("streak", 14, "consecutive"), ("accessory_cape",)),
    _achievement("streak_30", "Monthly Master", "Maintain a 30-day health streak",
                 "streak_rewards", "epic", ("streak", 30, "consecutive"), ("background_stars",)),
    _achievement("streak_60", "Dedication Champion", "Maintain a 60-day health streak",
                 "streak_rewards", "epic", ("streak", 60, "consecutive"), ("color_rainbow",)),
    _achievement("streak_90", "Legendary Dedication", "Maintain a 90-day health streak",
                 "streak_rewards", "legendary", ("streak", 90, "consecutive"), ("theme_legendary",)),
    # Challenge completion
    _achievement("challenge_first", "Challenge Accepted", "Complete your first weekly challenge",
                 "challenge_completion", "common", ("challenge", 1, "gte")),
    _achievement("challenge_5", "Challenge Seeker", "Complete 5 weekly challenges",
                 "challenge_completion", "rare", ("challenge", 5, "gte"), ("accessory_trophy",)),
    _achievement("challenge_weekly_all", "Perfect Week", "Complete all challenges in a single week",
                 "challenge_completion", "epic", ("custom", 1, "eq"), ("hat_champion",)),
    # Exploration
    _achievement("explore_customization", "Fashion Forward", "Equip your first cosmetic item",
                 "exploration", "common", ("custom", 1, "eq")),
    _achievement("explore_evolution", "Evolution Witness", "Witness your first Symbi evolution",
                 "exploration", "rare", ("evolution", 1, "gte"), ("background_evolution",)),
    # Special events
    _achievement("special_halloween", "Spooky Spirit", "Be active during Halloween season",
                 "special_events", "rare", ("custom", 1, "eq"),
                 ("hat_witch", "background_haunted")),
)

ACHIEVEMENTS_BY_ID = MappingProxyType({a.id: a for a in ACHIEVEMENT_CATALOG})
_CATALOG_INDEX = MappingProxyType({a.id: i for i, a in enumerate(ACHIEVEMENT_CATALOG)})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AchievementEngine:
    """
    Tracks unlocked achievements and progress on top of the static catalog.

    The catalog is never mutated; unlock timestamps and progress snapshots
    live in separate dictionaries keyed by achievement ID.
    """

    def __init__(
        self,
        storage: ProgressStorage | None = None,
        cosmetics: CosmeticInventoryManager | None = None,
        notifications: NotificationQueue | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the engine and load persisted unlocks.

        Args:
            storage: ProgressStorage instance. Creates default if not provided.
            cosmetics: Receives cosmetic rewards on unlock. Optional.
            notifications: Queue for unlock announcements. Optional.
            clock: Returns the current time; used for unlock timestamps.
        """
        self.storage = storage or ProgressStorage()
        self.cosmetics = cosmetics
        self.notifications = notifications
        self._clock = clock or _utc_now
        self._unlocked: dict[str, str] = {}
        self._progress: dict[str, AchievementProgress] = {}
        self._load()

    def _load(self) -> None:
        data = self.storage.load_record(ACHIEVEMENTS_KEY)
        if not data:
            return

        for entry in data.get("achievements", []):
            try:
                achievement = Achievement.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable achievement entry: %s", e)
                continue

            if achievement.id not in ACHIEVEMENTS_BY_ID:
                logger.warning("Skipping unknown achievement %s", achievement.id)
                continue

            if achievement.unlocked_at is not None:
                self._unlocked[achievement.id] = achievement.unlocked_at
            elif achievement.progress is not None:
                self._progress[achievement.id] = achievement.progress

    def _persist(self) -> PersistResult:
        tracked = [
            self._enrich(a)
            for a in ACHIEVEMENT_CATALOG
            if a.id in self._unlocked or a.id in self._progress
        ]
        result = self.storage.save_record(
            ACHIEVEMENTS_KEY,
            {
                "achievements": [a.to_dict() for a in tracked],
                "statistics": self.get_statistics().to_dict(),
                "last_updated": self._clock().isoformat(),
            },
        )
        if not result.ok:
            logger.warning("Achievement state kept in memory only: %s", result.error)
        return result

    @staticmethod
    def _full_progress(definition: Achievement) -> AchievementProgress:
        target = definition.unlock_condition.threshold
        return AchievementProgress(current=target, target=target, percentage=100)

    def _enrich(self, definition: Achievement) -> Achievement:
        """Combine a catalog entry with its current unlock state and progress."""
        if definition.id in self._unlocked:
            return replace(
                definition,
                unlocked_at=self._unlocked[definition.id],
                progress=self._full_progress(definition),
            )
        progress = self._progress.get(definition.id) or AchievementProgress(
            current=0, target=definition.unlock_condition.threshold, percentage=0
        )
        return replace(definition, unlocked_at=None, progress=progress)

    # Queries

    def get_all_achievements(self) -> list[Achievement]:
        return [self._enrich(a) for a in ACHIEVEMENT_CATALOG]

    def get_earned_achievements(self) -> list[Achievement]:
        return [self._enrich(a) for a in ACHIEVEMENT_CATALOG if a.id in self._unlocked]

    def get_achievements_by_category(self, category: str) -> list[Achievement]:
        return self.filter_achievements(category=category)

    def get_achievement_by_id(self, achievement_id: str) -> Achievement | None:
        definition = ACHIEVEMENTS_BY_ID.get(achievement_id)
        return self._enrich(definition) if definition else None

    def is_achievement_earned(self, achievement_id: str) -> bool:
        return achievement_id in self._unlocked

    # Milestone detection

    def check_milestone(self, metrics: Mapping[str, float]) -> list[Achievement]:
        """
        Check metrics against the catalog and unlock every newly met milestone.

        Args:
            metrics: Current metric snapshot keyed by condition type,
                e.g. {"steps": 12000}. Conditions of type "custom"
                never match a metric.

        Returns:
            List of newly unlocked achievements (empty when nothing new)
        """
        newly_unlocked = []

        for definition in ACHIEVEMENT_CATALOG:
            if definition.id in self._unlocked:
                continue
            # custom achievements are awarded explicitly through unlock_achievement
            if definition.unlock_condition.type == "custom":
                continue

            value = metrics.get(definition.unlock_condition.type)
            if value is None:
                continue

            if definition.unlock_condition.is_met(value):
                result = self.unlock_achievement(definition.id)
                if result is not None and result.is_new_unlock:
                    newly_unlocked.append(result.achievement)

        return newly_unlocked

    def unlock_by_condition(self, condition_type: str, value: float) -> list[Achievement]:
        """Unlock every achievement of one condition type satisfied by value."""
        return self.check_milestone({condition_type: value})

    # Unlocking

    def unlock_achievement(self, achievement_id: str) -> UnlockResult | None:
        """
        Unlock an achievement by ID.

        Re-unlocking is a no-op that reports is_new_unlock=False and grants
        nothing.

        Returns:
            UnlockResult, or None if the ID is not in the catalog
        """
        definition = ACHIEVEMENTS_BY_ID.get(achievement_id)
        if definition is None:
            logger.warning("Achievement not found: %s", achievement_id)
            return None

        if achievement_id in self._unlocked:
            return UnlockResult(
                achievement=self._enrich(definition),
                is_new_unlock=False,
                cosmetics_unlocked=[],
            )

        self._unlocked[achievement_id] = self._clock().isoformat()
        self._progress.pop(achievement_id, None)
        achievement = self._enrich(definition)

        self._persist()
        logger.info("Unlocked achievement %s (%s)", achievement_id, definition.name)

        if self.notifications is not None:
            self.notifications.notify_achievement(achievement)

        cosmetics_unlocked = list(definition.cosmetic_rewards)
        if self.cosmetics is not None:
            for cosmetic_id in cosmetics_unlocked:
                self.cosmetics.add_to_inventory_by_id(
                    cosmetic_id, source_achievement=achievement_id
                )

        return UnlockResult(
            achievement=achievement,
            is_new_unlock=True,
            cosmetics_unlocked=cosmetics_unlocked,
        )

    # Progress tracking

    def get_achievement_progress(self, achievement_id: str) -> AchievementProgress:
        definition = ACHIEVEMENTS_BY_ID.get(achievement_id)
        if definition is None:
            return AchievementProgress(current=0, target=0, percentage=0)
        return self._enrich(definition).progress

    def update_progress(self, achievement_id: str, current: float) -> AchievementProgress:
        """
        Record partial progress toward an achievement.

        percentage = min(100, round(100 * current / target)). Unlocked
        achievements always report full progress.

        Returns:
            The stored progress (zeros for an unknown ID)
        """
        definition = ACHIEVEMENTS_BY_ID.get(achievement_id)
        if definition is None:
            logger.warning("Cannot update progress for unknown achievement %s", achievement_id)
            return AchievementProgress(current=0, target=0, percentage=0)

        if achievement_id in self._unlocked:
            return self._full_progress(definition)

        target = definition.unlock_condition.threshold
        percentage = max(0, min(100, round_half_up(100 * current / target)))
        progress = AchievementProgress(current=current, target=target, percentage=percentage)
        self._progress[achievement_id] = progress
        self._persist()
        return progress

    def get_remaining(self, achievement_id: str) -> float:
        """How much is left to reach the target (0 once reached)."""
        progress = self.get_achievement_progress(achievement_id)
        return max(0, progress.target - progress.current)

    # Statistics

    def get_completion_percentage(self) -> int:
        total = len(ACHIEVEMENT_CATALOG)
        if total == 0:
            return 0
        return round_half_up(100 * len(self._unlocked) / total)

    def get_statistics(self) -> AchievementStatistics:
        """Derive statistics from the current unlock set."""
        earned = self.get_earned_achievements()

        rarest_badge = None
        if earned:
            # Ties on rarity go to the earliest unlock, then catalog order
            rarest_badge = min(
                earned,
                key=lambda a: (-RARITY_ORDER[a.rarity], a.unlocked_at, _CATALOG_INDEX[a.id]),
            )

        recent_unlocks = sorted(earned, key=lambda a: a.unlocked_at, reverse=True)

        return AchievementStatistics(
            total_earned=len(earned),
            total_available=len(ACHIEVEMENT_CATALOG),
            completion_percentage=self.get_completion_percentage(),
            rarest_badge=rarest_badge,
            recent_unlocks=recent_unlocks[:RECENT_UNLOCKS_LIMIT],
        )

    # Filtering

    def filter_achievements(
        self,
        category: str | None = None,
        rarity: str | None = None,
        status: str = "all",
    ) -> list[Achievement]:
        """
        Filter achievements; every supplied criterion must match.

        Args:
            category: Achievement category, or None for any
            rarity: Rarity tier, or None for any
            status: 'earned', 'locked' or 'all'
        """
        results = []
        for definition in ACHIEVEMENT_CATALOG:
            if category is not None and definition.category != category:
                continue
            if rarity is not None and definition.rarity != rarity:
                continue
            earned = definition.id in self._unlocked
            if status == "earned" and not earned:
                continue
            if status == "locked" and earned:
                continue
            results.append(self._enrich(definition))
        return results

    def reset(self) -> None:
        """Clear unlocks and progress (for tests or data reset)."""
        self._unlocked.clear()
        self._progress.clear()
