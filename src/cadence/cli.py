"""Command-line interface.

Each subcommand maps to one boundary operation of ``SchedulerService``.
"""

import argparse
import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from .checker import DailyCheck
from .config import load_config
from .logging import configure_logger
from .service import OperationResult, SchedulerContext, SchedulerService

Command = Callable[[SchedulerService, argparse.Namespace], Awaitable[int]]


def _report(result: OperationResult) -> int:
    """Print a result and return the exit code."""
    if not result.success:
        print(f"\033[31mError:\033[0m {result.error}", file=sys.stderr)
        return 1
    if result.output:
        print(result.output)
    return 0


async def cmd_goal(service: SchedulerService, args: argparse.Namespace) -> int:
    """Create a goal from free text."""
    text = " ".join(args.text)
    return _report(await service.create_goal_from_text(text, args.user))


async def cmd_goals(service: SchedulerService, args: argparse.Namespace) -> int:
    """List active goals."""
    return _report(await service.list_goals(args.user))


async def cmd_suggest(service: SchedulerService, args: argparse.Namespace) -> int:
    """Generate suggestions for every active goal."""
    result = await service.generate_suggestions_for_user(args.user)
    code = _report(result)
    if result.data:
        for error in result.data["errors"]:
            print(f"\033[33mWarning:\033[0m {error}", file=sys.stderr)
    return code


async def cmd_pending(service: SchedulerService, args: argparse.Namespace) -> int:
    """List pending suggestions."""
    return _report(await service.list_pending(args.user))


async def cmd_accept(service: SchedulerService, args: argparse.Namespace) -> int:
    return _report(await service.accept_suggestion(args.id))


async def cmd_reject(service: SchedulerService, args: argparse.Namespace) -> int:
    return _report(await service.reject_suggestion(args.id))


async def cmd_disable(service: SchedulerService, args: argparse.Namespace) -> int:
    return _report(await service.deactivate_goal(args.goal_id))


async def cmd_expire(service: SchedulerService, args: argparse.Namespace) -> int:
    return _report(await service.expire_stale())


async def cmd_reconcile(service: SchedulerService, args: argparse.Namespace) -> int:
    return _report(await service.reconcile())


async def cmd_tickets(service: SchedulerService, args: argparse.Namespace) -> int:
    """Show overlays for tickets happening around now."""
    return _report(await service.active_tickets())


async def cmd_calendars(service: SchedulerService, args: argparse.Namespace) -> int:
    """Show or set the selected calendars."""
    if args.ids:
        return _report(await service.set_selected_calendars(args.ids))
    return _report(await service.selected_calendars())


async def cmd_check(service: SchedulerService, args: argparse.Namespace) -> int:
    """Run the daily check once."""
    report = await DailyCheck(service, args.user).run_once()
    print(
        f"Expired: {report.expired}, reconciled: {report.reconciled}, "
        f"generated: {report.generated}"
    )
    for error in report.errors:
        print(f"\033[33mWarning:\033[0m {error}", file=sys.stderr)
    return 0 if report.ok else 1


COMMANDS: dict[str, Command] = {
    "goal": cmd_goal,
    "goals": cmd_goals,
    "suggest": cmd_suggest,
    "pending": cmd_pending,
    "accept": cmd_accept,
    "reject": cmd_reject,
    "disable": cmd_disable,
    "expire": cmd_expire,
    "reconcile": cmd_reconcile,
    "tickets": cmd_tickets,
    "calendars": cmd_calendars,
    "check": cmd_check,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cadence",
        description="Turn goals into calendar suggestions",
    )
    parser.add_argument("-u", "--user", help="User id (defaults to config user_id)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    goal_parser = subparsers.add_parser("goal", help="Create a goal from a description")
    goal_parser.add_argument("text", nargs="+", help="Free-text goal description")

    subparsers.add_parser("goals", help="List active goals")
    subparsers.add_parser("suggest", help="Generate suggestions for active goals")
    subparsers.add_parser("pending", help="List pending suggestions")

    accept_parser = subparsers.add_parser("accept", help="Accept a suggestion")
    accept_parser.add_argument("id", help="Suggestion id")

    reject_parser = subparsers.add_parser("reject", help="Reject a suggestion")
    reject_parser.add_argument("id", help="Suggestion id")

    disable_parser = subparsers.add_parser("disable", help="Disable a goal")
    disable_parser.add_argument("goal_id", help="Goal id")

    subparsers.add_parser("expire", help="Expire pending suggestions already in the past")
    subparsers.add_parser("reconcile", help="Retry calendar events for accepted suggestions")
    subparsers.add_parser("tickets", help="Show tickets for events happening now")

    calendars_parser = subparsers.add_parser("calendars", help="Show or set selected calendars")
    calendars_parser.add_argument("ids", nargs="*", help="Calendar ids to select")

    subparsers.add_parser("check", help="Run the daily check once")

    return parser


async def run_command(service: SchedulerService, args: argparse.Namespace) -> int:
    handler = COMMANDS[args.command]
    try:
        return await handler(service, args)
    finally:
        service.context.close()


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        config = load_config()
    except ValueError as e:
        print(f"\033[31mError:\033[0m invalid config: {e}", file=sys.stderr)
        return 1

    args.user = args.user or config.user_id
    configure_logger(config.log_dir).set_user_id(args.user)

    context = SchedulerContext.from_config(config, os.getenv("GROQ_API_KEY"))
    return asyncio.run(run_command(SchedulerService(context), args))


if __name__ == "__main__":
    sys.exit(run_cli())
