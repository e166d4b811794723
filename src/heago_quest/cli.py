from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import uvicorn
import yaml

from .api import create_app
from .catalog import CatalogError
from .models import local_date
from .service import TrackerService


def _service() -> TrackerService:
    return TrackerService.create(source="cli")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=True))


def _print_status(service: TrackerService) -> None:
    player = service.get_player()
    print(
        f"Level {player['level']}  XP {player['xp']}/{player['xp_to_next_level']}  "
        f"HP {player['hp']}  Gold {player['gold']}"
    )
    state = service.state
    print("Habits:")
    for habit in state.habits:
        goal = f"  goal {habit.goal}" if habit.goal else ""
        print(f"  - [{habit.kind}] {habit.title} (value {habit.value}{goal})  {habit.id}")
    print("Dailies:")
    for daily in state.dailies:
        mark = "x" if daily.done else " "
        print(f"  - [{mark}] {daily.title} (streak {daily.streak}, best {daily.best_streak})  {daily.id}")
    print("To-dos:")
    for todo in state.todos:
        mark = "x" if todo.done else " "
        print(f"  - [{mark}] {todo.title}  {todo.id}")
    print("Rewards:")
    for reward in state.rewards:
        print(f"  - {reward.title} ({reward.cost} gold)  {reward.id}")


def _print_action(result: dict[str, Any]) -> None:
    if not result.get("applied"):
        print("Nothing changed.")
        return
    effect = result["effect"]
    parts = []
    if effect["xp_granted"]:
        parts.append(f"+{effect['xp_granted']} XP")
    if effect["gold_delta"]:
        parts.append(f"{effect['gold_delta']:+d} gold")
    if effect["hp_delta"]:
        parts.append(f"{effect['hp_delta']:+d} HP")
    if effect["levels_gained"]:
        parts.append(f"level up x{effect['levels_gained']}")
    print(", ".join(parts) if parts else "Done.")


def _print_calendar(view: dict[str, Any]) -> None:
    shades = [".", "░", "▒", "▓", "█"]
    print(f"{view['month_name']} {view['year']}  (current streak: {view['current_streak_days']} days)")
    print(" Su Mo Tu We Th Fr Sa")
    cells = ["   "] * view["leading_blanks"]
    for day in view["days"]:
        marker = "*" if day["is_today"] else " "
        cells.append(f"{marker}{shades[day['activity_level']]} ")
    for start in range(0, len(cells), 7):
        print("".join(cells[start : start + 7]))


def main() -> int:
    parser = argparse.ArgumentParser(description="Heago Quest habit tracker CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Print player stats and all tasks")
    sub.add_parser("state", help="Print the full save state as JSON")

    habit_cmd = sub.add_parser("habit", help="Habit operations")
    habit_sub = habit_cmd.add_subparsers(dest="habit_command", required=True)
    habit_add = habit_sub.add_parser("add", help="Add a habit")
    habit_add.add_argument("title")
    habit_add.add_argument("--kind", default="both", choices=["good", "bad", "both"])
    habit_add.add_argument("--goal", type=int, default=None, help="Daily goal (optional)")
    habit_add.add_argument("--notes", default=None)
    habit_tap = habit_sub.add_parser("tap", help="Tap a habit + or -")
    habit_tap.add_argument("habit_id")
    habit_tap.add_argument("direction", choices=["+", "-"])

    daily_cmd = sub.add_parser("daily", help="Daily operations")
    daily_sub = daily_cmd.add_subparsers(dest="daily_command", required=True)
    daily_add = daily_sub.add_parser("add", help="Add a daily")
    daily_add.add_argument("title")
    daily_add.add_argument("--notes", default=None)
    daily_toggle = daily_sub.add_parser("toggle", help="Check or uncheck a daily")
    daily_toggle.add_argument("daily_id")

    todo_cmd = sub.add_parser("todo", help="To-do operations")
    todo_sub = todo_cmd.add_subparsers(dest="todo_command", required=True)
    todo_add = todo_sub.add_parser("add", help="Add a to-do")
    todo_add.add_argument("title")
    todo_add.add_argument("--notes", default=None)
    todo_toggle = todo_sub.add_parser("toggle", help="Complete or reopen a to-do")
    todo_toggle.add_argument("todo_id")

    reward_cmd = sub.add_parser("reward", help="Reward shop operations")
    reward_sub = reward_cmd.add_subparsers(dest="reward_command", required=True)
    reward_add = reward_sub.add_parser("add", help="Add a reward")
    reward_add.add_argument("title")
    reward_add.add_argument("--cost", type=int, default=10)
    reward_add.add_argument("--notes", default=None)
    reward_buy = reward_sub.add_parser("buy", help="Spend gold on a reward")
    reward_buy.add_argument("reward_id")

    remove_cmd = sub.add_parser("remove", help="Remove an item from a collection")
    remove_cmd.add_argument("collection", choices=["habits", "dailies", "todos", "rewards"])
    remove_cmd.add_argument("item_id")

    sub.add_parser("reset", help="Run the daily reset check now")

    analytics_cmd = sub.add_parser("analytics", help="Print progress analytics")
    analytics_cmd.add_argument("--date", default=None, help="Show completions for one day (YYYY-MM-DD)")

    calendar_cmd = sub.add_parser("calendar", help="Print the activity heatmap for a month")
    calendar_cmd.add_argument("--year", type=int, default=None, help="Defaults to the current local year")
    calendar_cmd.add_argument("--month", type=int, default=None, help="Defaults to the current local month")

    challenge_cmd = sub.add_parser("challenge", help="Challenge catalog operations")
    challenge_sub = challenge_cmd.add_subparsers(dest="challenge_command", required=True)
    challenge_list = challenge_sub.add_parser("list", help="List catalog challenges")
    challenge_list.add_argument("--search", default=None)
    challenge_list.add_argument("--category", action="append", default=[], help="Category filter (repeatable)")
    challenge_create = challenge_sub.add_parser("create", help="Create a challenge from a YAML or JSON file")
    challenge_create.add_argument("--file", required=True, help="Path to a challenge document")
    challenge_join = challenge_sub.add_parser("join", help="Add a challenge's tasks to your tracker")
    challenge_join.add_argument("challenge_id")

    telemetry_cmd = sub.add_parser("telemetry", help="Event log operations")
    telemetry_sub = telemetry_cmd.add_subparsers(dest="telemetry_command", required=True)
    telemetry_sub.add_parser("status", help="Show event log status")
    telemetry_export = telemetry_sub.add_parser("export", help="Export an aggregated event summary")
    telemetry_export.add_argument("--range", default="7d", help="Range window like 7d or 24h")
    telemetry_export.add_argument("--out", default=None, help="Optional output JSON path")
    telemetry_sub.add_parser("purge", help="Delete the local event log")

    api_cmd = sub.add_parser("api", help="Run local API server")
    api_cmd.add_argument("--host", default="127.0.0.1")
    api_cmd.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()

    try:
        return _dispatch(args)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except KeyError as exc:
        print(f"error: {exc.args[0] if exc.args else exc}", file=sys.stderr)
        return 2
    except CatalogError as exc:
        print(f"error: {exc.message} ({exc.code})", file=sys.stderr)
        return 1


def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "api":
        service = TrackerService.create(source="api")
        uvicorn.run(create_app(service), host=args.host, port=args.port)
        return 0

    service = _service()

    if args.command == "status":
        _print_status(service)
        return 0

    if args.command == "state":
        _print_json(service.get_state())
        return 0

    if args.command == "habit":
        if args.habit_command == "add":
            _print_json(service.add_habit(args.title, args.kind, args.goal, args.notes))
        else:
            _print_action(service.tap_habit(args.habit_id, args.direction))
        return 0

    if args.command == "daily":
        if args.daily_command == "add":
            _print_json(service.add_daily(args.title, args.notes))
        else:
            _print_action(service.toggle_daily(args.daily_id))
        return 0

    if args.command == "todo":
        if args.todo_command == "add":
            _print_json(service.add_todo(args.title, args.notes))
        else:
            _print_action(service.toggle_todo(args.todo_id))
        return 0

    if args.command == "reward":
        if args.reward_command == "add":
            _print_json(service.add_reward(args.title, args.cost, args.notes))
            return 0
        result = service.buy_reward(args.reward_id)
        if not result["applied"] and result["item"] is not None:
            print("Not enough gold.")
            return 1
        _print_action(result)
        return 0

    if args.command == "remove":
        result = service.remove(args.collection, args.item_id)
        print("Removed." if result["applied"] else "Nothing changed.")
        return 0

    if args.command == "reset":
        result = service.check_daily_reset(source="cli")
        print("Dailies reset." if result["reset"] else "Already reset today.")
        return 0

    if args.command == "analytics":
        if args.date:
            _print_json(service.day_details(date.fromisoformat(args.date)))
        else:
            _print_json(service.analytics_summary())
        return 0

    if args.command == "calendar":
        today = local_date(service.clock(), service.tz)
        year = today.year if args.year is None else args.year
        month = today.month if args.month is None else args.month
        _print_calendar(service.month_calendar(year, month))
        return 0

    if args.command == "challenge":
        if args.challenge_command == "list":
            for challenge in service.list_challenges(search=args.search, categories=args.category):
                badge = "official" if challenge["isOfficial"] else "community"
                joined = "  (joined)" if challenge["joined"] else ""
                print(f"- {challenge['id']} :: {challenge['title']} [{challenge['category']}, {badge}]{joined}")
            return 0
        if args.challenge_command == "create":
            document = yaml.safe_load(Path(args.file).read_text(encoding="utf-8"))
            if isinstance(document, dict) and isinstance(document.get("challenge"), dict):
                document = document["challenge"]
            if not isinstance(document, dict):
                raise ValueError("Challenge file must contain a mapping.")
            _print_json(service.create_challenge(document))
            return 0
        result = service.join_challenge(args.challenge_id)
        print("Challenge joined." if result["applied"] else "Already joined.")
        return 0

    if args.command == "telemetry":
        if args.telemetry_command == "status":
            _print_json({"events_path": str(service.telemetry.events_path), "event_count": service.telemetry.count_events()})
        elif args.telemetry_command == "export":
            out = Path(args.out) if args.out else None
            _print_json(service.export_telemetry(args.range, out))
        else:
            print("Event log purged." if service.telemetry.purge() else "No event log to purge.")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
