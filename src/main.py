"""
symbi-progress: gamification engine for a biometric-driven virtual companion

Entry point for the application.
"""

import argparse
from datetime import date

from src.challenge_generator import DailyHealth, generate_weekly_challenges
from src.cli import (
    display_achievements,
    display_challenges,
    display_layers,
    display_streak,
    format_notification,
)
from src.config import configure_logging, validate_config
from src.container import ServiceContainer, build_container
from src.notifications import NotificationQueue


def _drain_notifications(queue: NotificationQueue) -> None:
    """Print every pending notification without waiting for display timeouts."""
    unsubscribe = queue.add_listener(lambda n: print(format_notification(n)))
    queue.run_pending()
    while queue.is_displaying():
        queue.dismiss_current_notification()
    unsubscribe()


def _show_status(container: ServiceContainer) -> None:
    streaks = container.streaks
    display_streak(
        streaks.get_current_streak(),
        streaks.get_longest_streak(),
        streaks.get_next_milestone(),
        streaks.get_days_until_milestone(),
    )
    display_challenges(
        container.challenges.get_active_challenges(),
        container.challenges.get_time_remaining(),
    )
    display_achievements(
        container.achievements.get_all_achievements(),
        container.achievements.get_statistics(),
    )
    display_layers(container.cosmetics.get_cosmetic_layers())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="symbi-progress", description=__doc__)
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show streak, challenges and achievements")

    record = subparsers.add_parser("record", help="Record a day of health data")
    record.add_argument("--date", type=date.fromisoformat, default=date.today())
    record.add_argument("--steps", type=int, default=0)
    record.add_argument("--sleep", type=float, default=None)
    record.add_argument("--hrv", type=float, default=None)
    record.add_argument("--missed", action="store_true", help="Daily criteria not met")

    subparsers.add_parser("new-week", help="Generate this week's challenges")

    unlock = subparsers.add_parser("unlock", help="Unlock an achievement by ID")
    unlock.add_argument("achievement_id")

    equip = subparsers.add_parser("equip", help="Equip an owned cosmetic")
    equip.add_argument("cosmetic_id")

    subparsers.add_parser("reset", help="Erase all progress")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    print("symbi-progress - Keep your Symbi thriving!")
    print("-" * 50)

    try:
        validate_config()
    except ValueError as e:
        print(f"\nConfiguration Error:\n{e}")
        return 1

    configure_logging()
    container = build_container()

    if args.command == "record":
        day = DailyHealth(
            date=args.date.isoformat(), steps=args.steps, sleep_hours=args.sleep, hrv=args.hrv
        )
        result = container.recorder.record_day(day, criteria_met=not args.missed)
        print(f"\nRecorded {day.date}: streak {result.streak.new_streak}\n")
    elif args.command == "new-week":
        challenges, week_start = generate_weekly_challenges([], date.today())
        container.challenges.start_week(challenges, week_start)
        print(f"\nStarted week of {week_start.isoformat()}\n")
    elif args.command == "unlock":
        if container.achievements.unlock_achievement(args.achievement_id) is None:
            print(f"\nError: unknown achievement {args.achievement_id}")
            return 1
    elif args.command == "equip":
        if not container.recorder.equip_cosmetic(args.cosmetic_id):
            print(f"\nError: {args.cosmetic_id} is not in your inventory")
            return 1
    elif args.command == "reset":
        container.reset()
        print("\nAll progress erased.\n")
        return 0

    _drain_notifications(container.notifications)
    print()
    _show_status(container)
    return 0


if __name__ == "__main__":
    exit(main())
