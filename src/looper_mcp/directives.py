"""Directive texts handed to the execution agent."""

from __future__ import annotations

from .config import RunConfig

COMPLETION_MARKER = "<promise>COMPLETE</promise>"


def _numbered(steps: list[str]) -> str:
    return "\n".join(f"{index}. {step}" for index, step in enumerate(steps, start=1))


def _context_line(config: RunConfig, progress_file: str) -> str:
    if config.backlog_source == "remote-issue":
        return f"Read @{progress_file} for context."
    return f"Read @{config.backlog_file} and @{progress_file} for context."


def _completion_step(config: RunConfig, progress_file: str) -> str:
    if config.backlog_source == "structured":
        return f"Update {config.backlog_file} to mark the task as completed (set completed: true)."
    if config.backlog_source == "remote-issue":
        return f"The issue is closed automatically; just note the completion in {progress_file}."
    return f"Update {config.backlog_file} to mark the task as complete (change '- [ ]' to '- [x]')."


def build_task_directive(task: str, config: RunConfig, *, progress_file: str = "progress.txt") -> str:
    """Directive for the sequential mode: one task, then continue with the next."""

    steps = ["Implement this task completely and correctly."]
    if not config.skip_tests:
        steps.append("Write tests for the feature.")
        steps.append("Run tests and ensure they pass before proceeding.")
    if not config.skip_lint:
        steps.append("Run linting and ensure it passes before proceeding.")
    steps.append(_completion_step(config, progress_file))
    steps.append(f"Append your progress to {progress_file}.")
    steps.append("Commit your changes with a descriptive message.")

    rules = ["- ONLY work on this single task."]
    if not config.skip_tests:
        rules.append("- Do NOT proceed if tests fail.")
    if not config.skip_lint:
        rules.append("- Do NOT proceed if linting fails.")

    sections = [
        _context_line(config, progress_file),
        f"**Current Task:** {task}",
        _numbered(steps),
        "**Important:**\n" + "\n".join(rules),
        "When finished with this task, continue to the next incomplete task.\n"
        f"If ALL tasks in the backlog are complete, output: {COMPLETION_MARKER}",
    ]
    if config.backlog_source == "remote-issue":
        sections.insert(0, f"Task from GitHub Issue: {task}")
    return "\n\n".join(sections)


def build_parallel_directive(
    task: str,
    slot: int,
    config: RunConfig,
    *,
    body: str | None = None,
    progress_file: str = "progress.txt",
) -> str:
    """Directive for one slot of a batch; the agent must not touch the backlog."""

    steps = ["Implement this specific task completely."]
    if not config.skip_tests:
        steps.append("Write tests if appropriate.")
    if not config.skip_lint:
        steps.append("Run linting and fix any issues.")
    steps.append(f"Update {progress_file} with what you did.")
    steps.append("Commit your changes with a descriptive message.")

    sections = [
        f"You are Agent {slot} working on a specific task in parallel with other agents.",
        f"**Your Task:** {task}",
    ]
    if body:
        sections.append("**Details:**\n" + body.strip())
    sections.append("Instructions:\n" + _numbered(steps))
    sections.append(
        "Do NOT modify the backlog or mark tasks complete - that will be handled separately.\n"
        f"Focus only on implementing: {task}"
    )
    return "\n\n".join(sections)


def build_merge_conflict_directive(conflicted_files: list[str]) -> str:
    files = "\n".join(conflicted_files)
    return "\n\n".join(
        [
            "You are resolving a git merge conflict. The following files have conflicts:",
            files,
            "For each conflicted file:\n"
            + _numbered(
                [
                    "Read the file to see the conflict markers (<<<<<<< HEAD, =======, >>>>>>> branch)",
                    "Understand what both versions are trying to do",
                    "Edit the file to resolve the conflict by combining both changes",
                    "Remove all conflict markers",
                    "Make sure the resulting code is valid",
                ]
            ),
            "Preserve functionality from BOTH branches.",
            "Leave the resolved files in the working tree. Do NOT run 'git add', 'git commit' "
            "or 'git merge --continue'; the merge is finished or aborted by Looper.",
        ]
    )


def build_loop_directive(config: RunConfig, *, progress_file: str = "progress.txt") -> str:
    """One long directive asking the agent to work through the whole backlog itself."""

    options: list[str] = []
    if config.skip_tests:
        options.append("tests skipped")
    if config.skip_lint:
        options.append("lint skipped")
    if config.dry_run:
        options.append("dry run mode")
    if config.branch_per_task:
        options.append("branch per task")
    if config.create_pr:
        options.append("create PRs")

    steps = ["**Implement** the feature completely and correctly"]
    if not config.skip_tests:
        steps.append("**Write tests** for the feature")
        steps.append("**Run tests** and ensure they pass before proceeding")
    if not config.skip_lint:
        steps.append("**Run linting** and fix any issues")
    steps.append("**Update the backlog** to mark the task complete")
    steps.append(f"**Log progress** by appending to {progress_file}")
    steps.append("**Commit** your changes with a descriptive message")
    steps.append("**Continue** to the next incomplete task")

    rules = ["- Work on ONE task at a time"]
    if not config.skip_tests:
        rules.append("- Do NOT proceed if tests fail")
    if not config.skip_lint:
        rules.append("- Do NOT proceed if linting fails")
    rules.append(f"- After completing ALL tasks, output: {COMPLETION_MARKER}")

    sections = ["You are Looper, an autonomous coding assistant.\nWork through the backlog and complete ALL tasks."]
    if options:
        sections.append(f"**Options:** {', '.join(options)}")
    sections.extend(
        [
            _context_line(config, progress_file),
            "## For EACH Task\n\n" + _numbered(steps),
            "## Rules\n\n" + "\n".join(rules),
            "## Start Now\n\nFind the first incomplete task and begin working.",
        ]
    )
    return "\n\n".join(sections)


__all__ = [
    "COMPLETION_MARKER",
    "build_loop_directive",
    "build_merge_conflict_directive",
    "build_parallel_directive",
    "build_task_directive",
]
