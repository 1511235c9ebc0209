"""
Service Container - wires the progression services together.

One container is built per process (or per test) and handed to callers
explicitly; services are created lazily on first access and share the same
storage and notification queue.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from src import config
from src.achievements import AchievementEngine
from src.challenge_manager import ChallengeManager
from src.cosmetics import CosmeticInventoryManager
from src.notifications import NotificationQueue
from src.progression import ProgressRecorder
from src.storage import ProgressStorage
from src.streak_tracker import StreakTracker

logger = logging.getLogger(__name__)

NOTIFICATIONS_SETTING = "notifications_enabled"


@dataclass
class ServiceContainer:
    """
    Dependency container for the progression services.

    Infrastructure (storage, notification queue) is injected; the services
    are lazy-loaded via properties.
    """

    storage: ProgressStorage
    notifications: NotificationQueue

    _cosmetics: Optional[CosmeticInventoryManager] = field(default=None, init=False, repr=False)
    _achievements: Optional[AchievementEngine] = field(default=None, init=False, repr=False)
    _streaks: Optional[StreakTracker] = field(default=None, init=False, repr=False)
    _challenges: Optional[ChallengeManager] = field(default=None, init=False, repr=False)
    _recorder: Optional[ProgressRecorder] = field(default=None, init=False, repr=False)

    @property
    def cosmetics(self) -> CosmeticInventoryManager:
        """Get CosmeticInventoryManager instance (lazy-loaded)"""
        if self._cosmetics is None:
            self._cosmetics = CosmeticInventoryManager(self.storage, self.notifications)
            logger.debug("CosmeticInventoryManager instantiated")
        return self._cosmetics

    @property
    def achievements(self) -> AchievementEngine:
        """Get AchievementEngine instance (lazy-loaded)"""
        if self._achievements is None:
            self._achievements = AchievementEngine(
                self.storage, self.cosmetics, self.notifications
            )
            logger.debug("AchievementEngine instantiated")
        return self._achievements

    @property
    def streaks(self) -> StreakTracker:
        """Get StreakTracker instance (lazy-loaded)"""
        if self._streaks is None:
            self._streaks = StreakTracker(self.storage, self.achievements, self.notifications)
            logger.debug("StreakTracker instantiated")
        return self._streaks

    @property
    def challenges(self) -> ChallengeManager:
        """Get ChallengeManager instance (lazy-loaded)"""
        if self._challenges is None:
            self._challenges = ChallengeManager(self.storage)
            logger.debug("ChallengeManager instantiated")
        return self._challenges

    @property
    def recorder(self) -> ProgressRecorder:
        """Get ProgressRecorder instance (lazy-loaded)"""
        if self._recorder is None:
            self._recorder = ProgressRecorder(
                streaks=self.streaks,
                achievements=self.achievements,
                challenges=self.challenges,
                cosmetics=self.cosmetics,
            )
            logger.debug("ProgressRecorder instantiated")
        return self._recorder

    def set_notifications_enabled(self, enabled: bool) -> None:
        """Toggle notification delivery and remember the choice across restarts."""
        self.notifications.set_notifications_enabled(enabled)
        result = self.storage.set_setting(NOTIFICATIONS_SETTING, "true" if enabled else "false")
        if not result.ok:
            logger.warning("Notification setting applied for this run only: %s", result.error)

    def reset(self) -> None:
        """Wipe persisted records and return every service to a fresh state."""
        self.storage.clear()
        self.notifications.reset()
        for service in (self._cosmetics, self._achievements, self._streaks, self._challenges):
            if service is not None:
                service.reset()
        logger.info("Progression state reset")


def build_container(
    storage: ProgressStorage | None = None,
    notifications: NotificationQueue | None = None,
) -> ServiceContainer:
    """
    Build a container from configuration.

    Args:
        storage: Storage override (tests pass a temp database)
        notifications: Notification queue override

    Returns:
        ServiceContainer: The wired container
    """
    storage = storage or ProgressStorage()
    if notifications is None:
        stored = storage.get_setting(NOTIFICATIONS_SETTING)
        notifications = NotificationQueue(
            enabled=config.NOTIFICATIONS_ENABLED if stored is None else stored == "true",
            display_duration_ms=config.get_notification_duration_ms(),
        )
    return ServiceContainer(storage=storage, notifications=notifications)
