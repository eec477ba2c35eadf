"""Pre-test task distribution and execution.

Tasks are spread over workers exactly like test files: the task at position
``p`` of the fixed list runs on worker ``p % total`` only.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from shardci.errors import TaskError
from shardci.models import TaskResult, TaskSpec
from shardci.sharding.splitter import split_into_shards
from shardci.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from shardci.models import WorkerContext
    from shardci.reporters.terminal import CLIReporter

logger = logging.getLogger(__name__)

DEFAULT_TASKS: tuple[TaskSpec, ...] = (
    TaskSpec(name="check_deps", commands=[["make", "check-deps"]]),
    TaskSpec(name="check_licenses", commands=[["make", "check-licenses"]]),
    TaskSpec(
        name="lint",
        commands=[
            ["make", "lint-filenames"],
            ["make", "lint-pkg-json"],
            ["make", "lint-markdown"],
        ],
    ),
)


def assign_tasks(tasks: Sequence[TaskSpec], context: WorkerContext) -> list[TaskSpec]:
    """Return the tasks this worker runs, in list order."""
    return split_into_shards(tasks, context.index, context.total)


def append_log_header(log_path: Path, title: str) -> None:
    """Write a section header into the shared log before a command's output."""
    timestamp = datetime.now(UTC).isoformat(timespec="seconds")
    with log_path.open("a", encoding="utf-8") as fh:
        fh.write(f"\n===> [{timestamp}] {title}\n")


async def run_tasks(
    tasks: Sequence[TaskSpec],
    context: WorkerContext,
    *,
    log_path: Path,
    cwd: Path | None = None,
    progress: CLIReporter | None = None,
) -> list[TaskResult]:
    """Run this worker's share of *tasks*, stopping at the first failure.

    Every command's combined output is appended to *log_path*.

    Returns:
        One TaskResult per task that ran (all successful).

    Raises:
        TaskError: On the first task whose command fails or cannot start.
    """
    assigned = assign_tasks(tasks, context)
    if not assigned:
        logger.info(
            "No pre-test tasks assigned to worker %d of %d (%d tasks)",
            context.index,
            context.total,
            len(tasks),
        )
        if progress is not None:
            progress.print_step_skip("No pre-test tasks assigned to this worker")
        return []

    results: list[TaskResult] = []
    for task in assigned:
        if progress is not None:
            progress.print_info(f"  Running task {task.name}...")
        logger.info("Running task %s", task.name)

        duration_ms = 0.0
        for command in task.commands:
            try:
                append_log_header(log_path, f"{task.name}: {' '.join(command)}")
                result = await run_subprocess(command, cwd=cwd, log_path=log_path)
            except (SubprocessError, OSError, ValueError) as exc:
                msg = f"Task {task.name} could not start: {exc}"
                raise TaskError(msg, task=task.name, log_path=log_path) from exc

            duration_ms += result.duration_ms
            if not result.success:
                msg = (
                    f"Task {task.name} failed with exit code {result.returncode} "
                    f"({' '.join(command)})"
                )
                raise TaskError(msg, task=task.name, log_path=log_path)

        results.append(TaskResult(name=task.name, success=True, duration_ms=duration_ms))
        if progress is not None:
            progress.print_step_done(f"Task {task.name}", duration_ms / 1000)

    return results
