"""Looper MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from looper_mcp.config import LooperSettings, RunConfig
from looper_mcp.scheduler import plan_batches
from looper_mcp.tasks import TaskSource, TaskSourceError, get_task_source


def load_source(settings: LooperSettings, config: RunConfig) -> TaskSource:
    return get_task_source(config, settings.project_root, gh_path=settings.gh_path)


def _load_tasks(args: argparse.Namespace):
    settings = LooperSettings()
    config = RunConfig().apply(args.options)
    source = load_source(settings, config)
    try:
        return source, asyncio.run(source.all_tasks())
    except TaskSourceError as exc:
        print(f"Backlog unavailable: {exc}")
        raise SystemExit(1)


def cmd_tasks(args: argparse.Namespace) -> None:
    _, tasks = _load_tasks(args)
    if args.json:
        print(json.dumps([asdict(task) for task in tasks], indent=2))
    else:
        for task in tasks:
            mark = "x" if task.completed else " "
            print(f"[{mark}] {task.title} (group {task.group})")


def cmd_groups(args: argparse.Namespace) -> None:
    source, tasks = _load_tasks(args)
    if not source.supports_groups:
        print(json.dumps({"source": source.kind, "groups": []}, indent=2))
        return
    groups = sorted({task.group for task in tasks if not task.completed})
    payload = {
        "source": source.kind,
        "groups": [
            {
                "group": group,
                "tasks": [task.title for task in tasks if not task.completed and task.group == group],
            }
            for group in groups
        ],
    }
    print(json.dumps(payload, indent=2))


def cmd_plan(args: argparse.Namespace) -> None:
    source, tasks = _load_tasks(args)
    pending = [task for task in tasks if not task.completed]
    if source.supports_groups:
        phases = [
            [task.title for task in pending if task.group == group]
            for group in sorted({task.group for task in pending})
        ]
    else:
        phases = [[task.title for task in pending]]

    batches: list[list[dict[str, object]]] = []
    next_slot = 1
    for titles in phases:
        for batch in plan_batches(titles, args.max_parallel, first_slot=next_slot):
            batches.append([{"slot": slot, "task": task} for slot, task in batch])
            next_slot += len(batch)
    print(json.dumps({"max_parallel": args.max_parallel, "batches": batches}, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Looper MCP diagnostics")
    parser.add_argument(
        "--options",
        default="",
        help="Loop options selecting the backlog, e.g. --options='--yaml tasks.yaml'",
    )
    sub = parser.add_subparsers(dest="cmd")

    p_tasks = sub.add_parser("tasks", help="List backlog tasks")
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.set_defaults(func=cmd_tasks)

    p_groups = sub.add_parser("groups", help="List incomplete parallel groups")
    p_groups.set_defaults(func=cmd_groups)

    p_plan = sub.add_parser("plan", help="Show the batch plan a parallel run would use")
    p_plan.add_argument("--max-parallel", type=int, default=3)
    p_plan.set_defaults(func=cmd_plan)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
