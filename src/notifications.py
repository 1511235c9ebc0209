"""
Notification queue for progression events.

Achievement unlocks, streak milestones and cosmetic grants are announced to
the presentation layer one at a time. The buffer is ordered by timestamp,
with higher priority first for equal timestamps, and each delivered
notification stays on screen for a display duration before the next one is
delivered.
"""

import itertools
import logging
import sched
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("achievement", "streak_milestone", "cosmetic_unlock")

PRIORITY_ORDER = {
    "low": 1,
    "normal": 2,
    "high": 3,
}

RARITY_PRIORITY = {
    "common": "low",
    "rare": "normal",
    "epic": "high",
    "legendary": "high",
}

DEFAULT_NOTIFICATION_DURATION_MS = 4000
RARE_NOTIFICATION_DURATION_MS = 5000
LEGENDARY_NOTIFICATION_DURATION_MS = 6000


@dataclass
class Notification:
    """A display-once message describing a state change."""

    id: str
    type: str
    title: str
    message: str
    priority: str
    timestamp: int  # milliseconds since the epoch
    rarity: str | None = None
    icon_url: str | None = None
    payload: dict | None = field(default=None)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "timestamp": self.timestamp,
        }
        if self.rarity is not None:
            data["rarity"] = self.rarity
        if self.icon_url is not None:
            data["icon_url"] = self.icon_url
        if self.payload is not None:
            data["payload"] = self.payload
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            id=data["id"],
            type=data["type"],
            title=data["title"],
            message=data["message"],
            priority=data["priority"],
            timestamp=data["timestamp"],
            rarity=data.get("rarity"),
            icon_url=data.get("icon_url"),
            payload=data.get("payload"),
        )


def _sort_key(notification: Notification) -> tuple[int, int]:
    return (notification.timestamp, -PRIORITY_ORDER.get(notification.priority, 0))


def _now_ms() -> int:
    return int(time.time() * 1000)


class DeliveryScheduler:
    """
    Cooperative, single-threaded timer for notification delivery.

    Nothing runs in the background: the host calls run_pending() from its own
    loop and every callback that is due fires on the caller's thread.
    """

    def __init__(self, timefunc: Callable[[], float] = time.monotonic):
        self._scheduler = sched.scheduler(timefunc, time.sleep)

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> sched.Event:
        return self._scheduler.enter(delay_seconds, 0, callback)

    def cancel(self, event: sched.Event) -> None:
        try:
            self._scheduler.cancel(event)
        except ValueError:
            pass  # already fired

    def run_pending(self) -> None:
        """Fire every callback that is due, without blocking."""
        self._scheduler.run(blocking=False)

    def pending_count(self) -> int:
        return len(self._scheduler.queue)


NotificationListener = Callable[[Notification], None]
DismissListener = Callable[[str], None]


class NotificationQueue:
    """Priority-ordered delivery buffer shared by the progression services."""

    def __init__(
        self,
        scheduler: DeliveryScheduler | None = None,
        clock: Callable[[], int] | None = None,
        enabled: bool = True,
        display_duration_ms: int | None = None,
    ):
        """
        Initialize the notification queue.

        Args:
            scheduler: Timer driving deliveries and display timeouts.
            clock: Returns the current time in milliseconds; used to stamp
                notifications built by the notify_* helpers.
            enabled: Whether notifications are delivered to listeners.
            display_duration_ms: Fixed display duration. Defaults to a
                rarity-based duration.
        """
        self._scheduler = scheduler or DeliveryScheduler()
        self._clock = clock or _now_ms
        self._enabled = enabled
        self._display_duration_ms = display_duration_ms
        self._queue: list[Notification] = []
        self._suppressed_ids: set[str] = set()
        self._listeners: list[NotificationListener] = []
        self._dismiss_listeners: list[DismissListener] = []
        self._current: Notification | None = None
        self._pending_dismissal: sched.Event | None = None
        self._pending_delivery: sched.Event | None = None
        self._sequence = itertools.count(1)

    # Configuration

    def set_notifications_enabled(self, enabled: bool) -> None:
        """
        Enable or disable delivery to listeners.

        Notifications produced while disabled stay in the buffer for
        introspection and are discarded, undelivered, when delivery is
        re-enabled.
        """
        if enabled and not self._enabled:
            dropped = len(self._suppressed_ids)
            self._queue = [n for n in self._queue if n.id not in self._suppressed_ids]
            self._suppressed_ids.clear()
            self._enabled = True
            if dropped:
                logger.info("Discarded %d notifications queued while suppressed", dropped)
            self._schedule_delivery()
        elif not enabled:
            self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    # Listeners

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """
        Subscribe to delivered notifications.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)
        return lambda: self._remove(self._listeners, listener)

    def add_dismiss_listener(self, listener: DismissListener) -> Callable[[], None]:
        """Subscribe to dismissals; receives the dismissed notification id."""
        self._dismiss_listeners.append(listener)
        return lambda: self._remove(self._dismiss_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _notify_listeners(self, notification: Notification) -> None:
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed for %s", notification.id)

    def _notify_dismiss_listeners(self, notification_id: str) -> None:
        for listener in list(self._dismiss_listeners):
            try:
                listener(notification_id)
            except Exception:
                logger.exception("Dismiss listener failed for %s", notification_id)

    # Building notifications

    def _next_id(self, prefix: str, timestamp: int) -> str:
        return f"{prefix}_{timestamp}_{next(self._sequence)}"

    def notify_achievement(self, achievement) -> Notification:
        """Queue an 'Achievement Unlocked!' notification."""
        timestamp = self._clock()
        notification = Notification(
            id=self._next_id(f"achievement_{achievement.id}", timestamp),
            type="achievement",
            title="Achievement Unlocked!",
            message=achievement.name,
            priority=RARITY_PRIORITY.get(achievement.rarity, "normal"),
            timestamp=timestamp,
            rarity=achievement.rarity,
            icon_url=achievement.icon_url,
            payload={"achievement": achievement.to_dict()},
        )
        self.queue_notification(notification)
        return notification

    def notify_streak_milestone(self, milestone, current_streak: int) -> Notification:
        """Queue a streak milestone celebration."""
        timestamp = self._clock()
        notification = Notification(
            id=self._next_id(f"streak_{milestone.days}", timestamp),
            type="streak_milestone",
            title=f"{milestone.days}-Day Streak!",
            message=(
                f"Amazing! You've maintained your health streak for "
                f"{current_streak} days!"
            ),
            priority="high" if milestone.days >= 30 else "normal",
            timestamp=timestamp,
            payload={
                "milestone": {
                    "days": milestone.days,
                    "achievement_id": milestone.achievement_id,
                }
            },
        )
        self.queue_notification(notification)
        return notification

    def notify_cosmetic_unlock(self, cosmetic_id: str, name: str, rarity: str) -> Notification:
        """Queue a 'New Cosmetic Unlocked!' notification."""
        timestamp = self._clock()
        notification = Notification(
            id=self._next_id(f"cosmetic_{cosmetic_id}", timestamp),
            type="cosmetic_unlock",
            title="New Cosmetic Unlocked!",
            message=name,
            priority=RARITY_PRIORITY.get(rarity, "normal"),
            timestamp=timestamp,
            rarity=rarity,
            payload={"cosmetic_id": cosmetic_id},
        )
        self.queue_notification(notification)
        return notification

    # Queue management

    def queue_notification(self, notification: Notification) -> None:
        """
        Add a notification to the buffer.

        The buffer stays sorted by timestamp, then by priority (high first).
        When nothing is on screen, delivery starts on the next scheduler tick,
        so everything produced by one synchronous call is ordered first.
        """
        self._queue.append(notification)
        self._queue.sort(key=_sort_key)

        if not self._enabled:
            self._suppressed_ids.add(notification.id)

        logger.debug(
            "Queued notification %s, queue length: %d, enabled: %s",
            notification.id,
            len(self._queue),
            self._enabled,
        )

        self._schedule_delivery()

    def _schedule_delivery(self) -> None:
        if self._current is not None or self._pending_delivery is not None:
            return
        if not self._enabled or not self._queue:
            return
        self._pending_delivery = self._scheduler.call_later(0, self._on_delivery_due)

    def _on_delivery_due(self) -> None:
        self._pending_delivery = None
        if self._current is None:
            self._deliver_next()

    def _deliver_next(self) -> None:
        if not self._queue or not self._enabled:
            return

        notification = self._queue.pop(0)
        self._current = notification
        self._notify_listeners(notification)

        duration_ms = self._get_duration_ms(notification)
        self._pending_dismissal = self._scheduler.call_later(
            duration_ms / 1000, self._on_display_elapsed
        )

    def _get_duration_ms(self, notification: Notification) -> int:
        if self._display_duration_ms:
            return self._display_duration_ms
        if notification.rarity == "legendary":
            return LEGENDARY_NOTIFICATION_DURATION_MS
        if notification.rarity in ("epic", "rare"):
            return RARE_NOTIFICATION_DURATION_MS
        return DEFAULT_NOTIFICATION_DURATION_MS

    def _on_display_elapsed(self) -> None:
        self._pending_dismissal = None
        self.dismiss_current_notification()

    def run_pending(self) -> None:
        """Advance the delivery loop; call this from the host's loop."""
        self._scheduler.run_pending()

    def dismiss_current_notification(self) -> None:
        """Dismiss the notification on screen and deliver the next one."""
        if self._pending_dismissal is not None:
            self._scheduler.cancel(self._pending_dismissal)
            self._pending_dismissal = None

        if self._current is not None:
            notification_id = self._current.id
            self._current = None
            self._notify_dismiss_listeners(notification_id)

        self._deliver_next()

    def dismiss_notification(self, notification_id: str) -> None:
        """Remove a notification from the buffer, or dismiss it if on screen."""
        self._queue = [n for n in self._queue if n.id != notification_id]
        self._suppressed_ids.discard(notification_id)

        if self._current is not None and self._current.id == notification_id:
            self.dismiss_current_notification()

    # Queries

    def get_current_notification(self) -> Notification | None:
        return self._current

    def get_queue_length(self) -> int:
        return len(self._queue)

    def get_queued_notifications(self) -> list[Notification]:
        return list(self._queue)

    def is_displaying(self) -> bool:
        return self._current is not None

    # Cleanup

    def clear_queue(self) -> None:
        """Drop all buffered notifications and stop the current display."""
        self._queue = []
        self._suppressed_ids.clear()
        for event in (self._pending_dismissal, self._pending_delivery):
            if event is not None:
                self._scheduler.cancel(event)
        self._pending_dismissal = None
        self._pending_delivery = None
        self._current = None

    def reset(self) -> None:
        """Reset to a freshly constructed state (for tests or data reset)."""
        self.clear_queue()
        self._listeners.clear()
        self._dismiss_listeners.clear()
        self._enabled = True
