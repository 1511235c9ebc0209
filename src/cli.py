"""
CLI display functions for symbi-progress.
"""

from src.achievements import Achievement, AchievementStatistics
from src.challenge_manager import Challenge
from src.cosmetics import CosmeticLayer
from src.notifications import Notification
from src.streak_tracker import StreakMilestone

RARITY_MARKERS = {
    "common": "·",
    "rare": "◆",
    "epic": "★",
    "legendary": "✪",
}


def get_milestone_message(streak_days: int) -> str | None:
    """
    Get milestone message for a given streak length.

    Args:
        streak_days: Current streak in days

    Returns:
        Milestone message string or None if no milestone
    """
    milestones = {
        7: "One week strong!",
        14: "Two weeks of consistency!",
        30: "One month champion!",
        60: "Two months unstoppable!",
        90: "90 days - legendary!",
    }
    return milestones.get(streak_days)


def display_streak(
    current: int,
    longest: int,
    next_milestone: StreakMilestone | None = None,
    days_until: int = 0,
) -> None:
    """
    Display streak information to the console with milestone messages.

    Args:
        current: Current streak in days
        longest: Longest streak in days
        next_milestone: The milestone being worked toward, if any
        days_until: Days left until next_milestone
    """
    if current == 0:
        status = "No active streak"
    else:
        day_word = "day" if current == 1 else "days"
        status = f"Current Streak: {current} {day_word}"

        milestone = get_milestone_message(current)
        if milestone:
            status = f"{status} - {milestone}"

    print(f"🔥 {status}")
    print(f"   Longest: {longest} day{'s' if longest != 1 else ''}")
    if next_milestone is not None:
        print(f"   Next milestone: {next_milestone.days} days ({days_until} to go)")
    print()


def format_achievement(achievement: Achievement) -> str:
    """
    Format an achievement as one line.

    Earned achievements show a check mark, locked ones show their progress.
    """
    marker = RARITY_MARKERS.get(achievement.rarity, " ")
    if achievement.unlocked_at:
        status = "[x]"
        detail = achievement.unlocked_at[:10]
    else:
        status = "[ ]"
        percentage = achievement.progress.percentage if achievement.progress else 0
        detail = f"{percentage}%"
    return f"  {status} {marker} {achievement.name:<24} {detail}"


def display_achievements(
    achievements: list[Achievement], statistics: AchievementStatistics
) -> None:
    """Display achievements and the completion summary."""
    print(
        f"🏆 Achievements: {statistics.total_earned}/{statistics.total_available} "
        f"({statistics.completion_percentage}%)"
    )
    for achievement in achievements:
        print(format_achievement(achievement))
    if statistics.rarest_badge is not None:
        print(f"   Rarest badge: {statistics.rarest_badge.name}")
    print()


def format_challenge(challenge: Challenge) -> str:
    """
    Format a challenge with a text progress bar.

    Args:
        challenge: The challenge to format

    Returns:
        Formatted string for display
    """
    target = challenge.objective.target
    filled = int(10 * challenge.progress / target) if target else 10
    bar = "#" * filled + "-" * (10 - filled)
    status = "done" if challenge.completed else f"{challenge.progress:g}/{target:g}"
    return f"  [{bar}] {challenge.title:<20} {status}"


def display_challenges(challenges: list[Challenge], seconds_remaining: int) -> None:
    """Display the week's challenges and time left."""
    days, remainder = divmod(seconds_remaining, 86400)
    hours = remainder // 3600

    print("🎯 Weekly Challenges:")
    if not challenges:
        print("   No challenges this week")
    for challenge in challenges:
        print(format_challenge(challenge))
    if seconds_remaining:
        print(f"   {days}d {hours}h remaining")
    else:
        print("   Expired")
    print()


def display_layers(layers: list[CosmeticLayer]) -> None:
    """Display equipped cosmetics in render order, back to front."""
    print("🎨 Equipped:")
    if not layers:
        print("   Nothing equipped")
    for layer in layers:
        print(f"   {layer.layer_index}. {layer.category:<10} {layer.cosmetic_id}")
    print()


def format_notification(notification: Notification) -> str:
    """Format a delivered notification as a one-line banner."""
    marker = RARITY_MARKERS.get(notification.rarity, "!") if notification.rarity else "!"
    return f"{marker} {notification.title} {notification.message}"
