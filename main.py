#!/usr/bin/env python3
"""
Reef - Main Entry Point

Digital-wellbeing controller: per-app usage limits, scheduled and manual
routines, and a global focus mode.

Usage:
    python main.py routines                 # List routines
    python main.py add-defaults             # Seed the built-in routines
    python main.py toggle ROUTINE_ID        # Enable/disable a routine
    python main.py delete ROUTINE_ID        # Delete a routine
    python main.py limit PACKAGE MINUTES    # Set a daily limit
    python main.py whitelist PACKAGE        # Never block a package
    python main.py focus --minutes 25       # Start focus mode
    python main.py check PACKAGE --used 50  # Simulate a foreground change
"""

import argparse
import logging
import sys
from datetime import timedelta

import config
from core.engine import WellbeingEngine
from routine.models import DAY_NAMES, Routine, ScheduleType

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def describe_routine(routine: Routine, active_id) -> str:
    """One-line summary of a routine for the console."""
    schedule = routine.schedule
    if schedule.type == ScheduleType.MANUAL:
        when = "manual"
    else:
        start = schedule.time.strftime("%H:%M") if schedule.time else "--:--"
        end = schedule.end_time.strftime("%H:%M") if schedule.end_time else "--:--"
        when = f"{schedule.type.value.lower()} {start}-{end}"
        if schedule.type == ScheduleType.WEEKLY:
            days = ",".join(DAY_NAMES[d][:3].title() for d in sorted(schedule.days_of_week))
            when += f" [{days}]"

    flags = "on " if routine.is_enabled else "off"
    if routine.id == active_id:
        flags += " ACTIVE"
    limits = ", ".join(f"{l.package_name}={l.limit_minutes}m" for l in routine.limits) or "no limits"
    return f"{routine.id}  {flags:<10} {routine.name} ({when}; {limits})"


def cmd_routines(engine: WellbeingEngine, args) -> int:
    routines = engine.store.list()
    if not routines:
        print("No routines.")
        return 0
    active_id = engine.executor.active_routine_id()
    for routine in routines:
        print(describe_routine(routine, active_id))
    return 0


def cmd_add_defaults(engine: WellbeingEngine, args) -> int:
    for routine in engine.store.create_default_routines():
        print(f"Added {routine.name} ({routine.id})")
    return 0


def cmd_toggle(engine: WellbeingEngine, args) -> int:
    routine = engine.store.toggle(args.routine_id)
    if routine is None:
        print(f"No routine with id {args.routine_id}")
        return 1
    print(f"{routine.name} is now {'enabled' if routine.is_enabled else 'disabled'}")
    return 0


def cmd_delete(engine: WellbeingEngine, args) -> int:
    if not engine.store.delete(args.routine_id):
        print(f"No routine with id {args.routine_id}")
        return 1
    print("Deleted.")
    return 0


def cmd_limit(engine: WellbeingEngine, args) -> int:
    if args.minutes < 0:
        engine.regular_limits.remove_limit(args.package)
        print(f"Removed limit for {args.package}")
    else:
        engine.regular_limits.set_limit(args.package, args.minutes)
        print(f"{args.package}: {args.minutes} minutes per day")
    return 0


def cmd_whitelist(engine: WellbeingEngine, args) -> int:
    if engine.whitelist.add(args.package):
        print(f"Whitelisted {args.package}")
    else:
        print(f"{args.package} was already whitelisted")
    return 0


def cmd_focus(engine: WellbeingEngine, args) -> int:
    if args.stop:
        engine.focus_mode.stop()
        print("Focus mode off")
        return 0
    until = engine.focus_mode.start(args.minutes)
    print(f"Focus mode on until {until:%H:%M}")
    return 0


def cmd_check(engine: WellbeingEngine, args) -> int:
    if args.used and engine.usage_recorder is not None:
        engine.usage_recorder.record_foreground(
            args.package, at=engine.clock() - timedelta(minutes=args.used)
        )
    result = engine.on_foreground_change(args.package)
    verdict = "BLOCK" if result.blocked else "allow"
    detail = f" ({result.reason})" if result.reason else ""
    print(f"{args.package}: {verdict}{detail}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reef - app limits, routines and focus mode",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py routines
  python main.py limit com.instagram.android 30
  python main.py check com.instagram.android --used 31
        """
    )
    parser.add_argument(
        "--launcher",
        action="append",
        default=[],
        help="Home-screen launcher package to whitelist (repeatable)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("routines", help="List routines").set_defaults(func=cmd_routines)
    sub.add_parser("add-defaults", help="Add the built-in routines").set_defaults(func=cmd_add_defaults)

    p = sub.add_parser("toggle", help="Enable or disable a routine")
    p.add_argument("routine_id")
    p.set_defaults(func=cmd_toggle)

    p = sub.add_parser("delete", help="Delete a routine")
    p.add_argument("routine_id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("limit", help="Set a daily limit (negative minutes removes it)")
    p.add_argument("package")
    p.add_argument("minutes", type=int)
    p.set_defaults(func=cmd_limit)

    p = sub.add_parser("whitelist", help="Never block a package")
    p.add_argument("package")
    p.set_defaults(func=cmd_whitelist)

    p = sub.add_parser("focus", help="Start or stop focus mode")
    p.add_argument("--minutes", type=int, default=None)
    p.add_argument("--stop", action="store_true")
    p.set_defaults(func=cmd_focus)

    p = sub.add_parser("check", help="Simulate a foreground change and print the decision")
    p.add_argument("package")
    p.add_argument("--used", type=float, default=0, help="Minutes already used today")
    p.set_defaults(func=cmd_check)

    return parser


def main(argv=None) -> int:
    """Main entry point: parses arguments and runs one command."""
    args = build_parser().parse_args(argv)

    engine = WellbeingEngine()
    try:
        engine.start(launcher_packages=args.launcher)
        return args.func(engine, args)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        return 1
    finally:
        engine.shutdown()


if __name__ == "__main__":
    sys.exit(main())
