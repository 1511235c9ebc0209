"""
FastAPI web application for symbi-progress.

Provides REST API endpoints for achievements, streaks, challenges,
cosmetics and notifications. Endpoints are coroutines so they share the event
loop thread with the notification delivery loop; the services are not
thread-safe.
"""

import asyncio
import contextlib
import datetime
import logging
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from src.challenge_generator import DailyHealth, generate_weekly_challenges
from src.config import configure_logging, validate_config
from src.container import ServiceContainer, build_container
from src.cosmetics import COSMETIC_CATEGORIES, COSMETICS_BY_ID

logger = logging.getLogger(__name__)

DELIVERY_POLL_SECONDS = 0.1

_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Return the process-wide container, building it on first use."""
    global _container
    if _container is None:
        _container = build_container()
    return _container


async def _pump_notifications(container: ServiceContainer):
    while True:
        container.notifications.run_pending()
        await asyncio.sleep(DELIVERY_POLL_SECONDS)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and drive notification delivery while serving."""
    configure_logging()
    validate_config()
    container = app.dependency_overrides.get(get_container, get_container)()
    task = asyncio.create_task(_pump_notifications(container))
    logger.info("Notification delivery loop started")

    yield

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    logger.info("Notification delivery loop stopped")


app = FastAPI(
    title="symbi-progress",
    description="Gamification engine for a biometric-driven virtual companion",
    version="0.1.0",
    lifespan=lifespan,
)


class HealthDay(BaseModel):
    """One day of aggregated health data."""

    date: datetime.date
    steps: int = Field(0, ge=0, description="Total steps for the day")
    sleep_hours: float | None = Field(None, ge=0, le=24, description="Hours slept")
    hrv: float | None = Field(None, ge=0, description="Heart-rate variability in ms")

    def to_daily_health(self) -> DailyHealth:
        return DailyHealth(
            date=self.date.isoformat(),
            steps=self.steps,
            sleep_hours=self.sleep_hours,
            hrv=self.hrv,
        )


class ProgressSnapshot(HealthDay):
    """Request model for recording a day of progress."""

    criteria_met: bool = Field(..., description="Whether the daily health criteria were met")
    weekly_data: list[HealthDay] | None = Field(
        None, description="Every recorded day of the current week, today included"
    )


class ChallengeProgressUpdate(BaseModel):
    """Request model for setting challenge progress."""

    value: float = Field(..., ge=0, description="New progress value")


class WeekRequest(BaseModel):
    """Request model for generating the week's challenges."""

    today: datetime.date
    history: list[HealthDay] = Field(default_factory=list)


class NotificationSettings(BaseModel):
    """Request model for notification settings."""

    enabled: bool


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


# Achievements


@app.get("/api/achievements")
async def get_achievements(
    category: str | None = None,
    rarity: str | None = None,
    status: Literal["all", "earned", "locked"] = "all",
    container: ServiceContainer = Depends(get_container),
):
    """Get achievements, optionally filtered by category, rarity and status."""
    engine = container.achievements
    achievements = engine.filter_achievements(category=category, rarity=rarity, status=status)
    return {
        "achievements": [a.to_dict() for a in achievements],
        "completion_percentage": engine.get_completion_percentage(),
    }


@app.get("/api/achievements/statistics")
async def get_achievement_statistics(container: ServiceContainer = Depends(get_container)):
    """Get aggregate achievement statistics."""
    return container.achievements.get_statistics().to_dict()


@app.post("/api/achievements/{achievement_id}/unlock")
async def unlock_achievement(
    achievement_id: str, container: ServiceContainer = Depends(get_container)
):
    """Unlock an achievement and grant its cosmetic rewards."""
    result = container.achievements.unlock_achievement(achievement_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Achievement not found")

    return {
        "achievement": result.achievement.to_dict(),
        "is_new_unlock": result.is_new_unlock,
        "cosmetics_unlocked": result.cosmetics_unlocked,
    }


# Progress and streaks


@app.post("/api/progress")
async def record_progress(
    snapshot: ProgressSnapshot, container: ServiceContainer = Depends(get_container)
):
    """Record a day of health data across streaks, achievements and challenges."""
    weekly_data = None
    if snapshot.weekly_data is not None:
        weekly_data = [d.to_daily_health() for d in snapshot.weekly_data]

    result = container.recorder.record_day(
        snapshot.to_daily_health(), snapshot.criteria_met, weekly_data
    )
    return result.to_dict()


@app.get("/api/streak")
async def get_streak(container: ServiceContainer = Depends(get_container)):
    """Get the current streak and the next milestone."""
    streaks = container.streaks
    next_milestone = streaks.get_next_milestone()
    return {
        "current_streak": streaks.get_current_streak(),
        "longest_streak": streaks.get_longest_streak(),
        "last_recorded_date": streaks.get_streak_state().last_recorded_date,
        "next_milestone": next_milestone.to_dict() if next_milestone else None,
        "days_until_milestone": streaks.get_days_until_milestone(),
        "history": [r.to_dict() for r in streaks.get_streak_history()],
    }


# Challenges


@app.get("/api/challenges")
async def get_challenges(container: ServiceContainer = Depends(get_container)):
    """Get the active challenges for the current week."""
    manager = container.challenges
    return {
        "challenges": [c.to_dict() for c in manager.get_active_challenges()],
        "week_start_date": manager.get_week_start_date(),
        "time_remaining_seconds": manager.get_time_remaining(),
        "all_completed": manager.check_all_completed(),
        "total_completed": manager.get_total_completed(),
    }


@app.post("/api/challenges/generate")
async def generate_challenges(
    request: WeekRequest, container: ServiceContainer = Depends(get_container)
):
    """Generate and start the challenge set for the week containing today."""
    history = [d.to_daily_health() for d in request.history]
    challenges, week_start = generate_weekly_challenges(history, request.today)
    container.challenges.start_week(challenges, week_start)
    return {
        "challenges": [c.to_dict() for c in challenges],
        "week_start_date": week_start.isoformat(),
    }


@app.post("/api/challenges/{challenge_id}/progress")
async def update_challenge_progress(
    challenge_id: str,
    update: ChallengeProgressUpdate,
    container: ServiceContainer = Depends(get_container),
):
    """Set a challenge's progress; completing it forwards the reward."""
    if container.challenges.get_challenge_by_id(challenge_id) is None:
        raise HTTPException(status_code=404, detail="Challenge not found")

    reward = container.recorder.update_challenge(challenge_id, update.value)
    challenge = container.challenges.get_challenge_by_id(challenge_id)
    return {
        "challenge": challenge.to_dict(),
        "reward": reward.to_dict() if reward else None,
    }


@app.post("/api/challenges/{challenge_id}/complete")
async def complete_challenge(
    challenge_id: str, container: ServiceContainer = Depends(get_container)
):
    """Force a challenge to completion."""
    reward = container.recorder.complete_challenge(challenge_id)
    if reward is None:
        raise HTTPException(status_code=404, detail="Challenge not found")

    return {
        "challenge": container.challenges.get_challenge_by_id(challenge_id).to_dict(),
        "reward": reward.to_dict(),
        "all_completed": container.challenges.check_all_completed(),
    }


# Cosmetics


@app.get("/api/cosmetics")
async def get_cosmetics(container: ServiceContainer = Depends(get_container)):
    """Get the cosmetic inventory."""
    inventory = container.cosmetics.get_inventory()
    return {
        "inventory": inventory.to_dict(),
        "statistics": container.cosmetics.get_statistics(),
    }


@app.get("/api/cosmetics/layers")
async def get_cosmetic_layers(container: ServiceContainer = Depends(get_container)):
    """Get equipped cosmetics in back-to-front render order."""
    return {"layers": [layer.to_dict() for layer in container.cosmetics.get_cosmetic_layers()]}


@app.post("/api/cosmetics/{cosmetic_id}/equip")
async def equip_cosmetic(cosmetic_id: str, container: ServiceContainer = Depends(get_container)):
    """Equip an owned cosmetic."""
    if cosmetic_id not in COSMETICS_BY_ID:
        raise HTTPException(status_code=404, detail="Cosmetic not found")
    if not container.cosmetics.is_owned(cosmetic_id):
        raise HTTPException(status_code=409, detail="Cosmetic not owned")

    container.recorder.equip_cosmetic(cosmetic_id)
    return {"equipped": container.cosmetics.get_equipped()}


@app.post("/api/cosmetics/unequip/{category}")
async def unequip_category(category: str, container: ServiceContainer = Depends(get_container)):
    """Clear a category slot."""
    if category not in COSMETIC_CATEGORIES:
        raise HTTPException(status_code=404, detail="Unknown cosmetic category")

    removed = container.cosmetics.unequip(category)
    return {"unequipped": removed, "equipped": container.cosmetics.get_equipped()}


# Notifications


@app.get("/api/notifications")
async def get_notifications(container: ServiceContainer = Depends(get_container)):
    """Get the notification on screen and those waiting."""
    queue = container.notifications
    current = queue.get_current_notification()
    return {
        "enabled": queue.is_enabled(),
        "current": current.to_dict() if current else None,
        "queue_length": queue.get_queue_length(),
        "queued": [n.to_dict() for n in queue.get_queued_notifications()],
    }


@app.post("/api/notifications/settings")
async def update_notification_settings(
    settings: NotificationSettings, container: ServiceContainer = Depends(get_container)
):
    """Enable or disable notification delivery; the choice is persisted."""
    container.set_notifications_enabled(settings.enabled)
    return {"enabled": container.notifications.is_enabled()}
