"""Worker orchestration: environment, pre-test tasks, then the test shard.

The main sequence is strictly sequential.  The only concurrent piece is the
heartbeat thread, whose handle is created at the start of :meth:`run` and
stopped in its ``finally`` block on every path.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from shardci.errors import (
    EnvironmentSetupError,
    ResourceError,
    ShardciError,
    TaskError,
    TestFailure,
)
from shardci.heartbeat import start_heartbeat, stop_heartbeat
from shardci.models import Stage
from shardci.reporters.terminal import CLIReporter
from shardci.runner.tasks import append_log_header, run_tasks
from shardci.runner.tests import ensure_log_file, relative_test_path, run_tests
from shardci.sharding.discovery import discover_test_files
from shardci.sharding.splitter import shard
from shardci.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from shardci.config import ShardciConfig
    from shardci.heartbeat import HeartbeatHandle
    from shardci.models import TestRun, WorkerContext

logger = logging.getLogger(__name__)


class CIOrchestrator:
    """Runs one worker's CI sequence and maps the outcome to an exit code."""

    def __init__(
        self,
        config: ShardciConfig,
        context: WorkerContext,
        *,
        reporter: CLIReporter | None = None,
        heartbeat_emit: Callable[[str], None] | None = None,
    ) -> None:
        self._config = config
        self._context = context
        self._reporter = reporter or CLIReporter()
        self._heartbeat_emit = heartbeat_emit or self._reporter.print_heartbeat
        self.stage: Stage | None = None
        self.history: list[Stage] = []
        self.test_runs: list[TestRun] = []

    def _enter(self, stage: Stage) -> None:
        logger.debug("Stage %s -> %s", self.stage.value if self.stage else "-", stage.value)
        self.stage = stage
        self.history.append(stage)

    async def run(self) -> int:
        """Execute the full worker sequence.

        Returns:
            ``0`` when every assigned task and test passed, ``1`` otherwise.
        """
        handle: HeartbeatHandle | None = None
        self._reporter.print_worker_banner(self._context)

        try:
            self._enter(Stage.INIT)
            self._prepare_outputs()
            handle = self._start_heartbeat()
            self._enter(Stage.HEARTBEAT_STARTED)

            await self._prepare_environment()
            self._enter(Stage.ENVIRONMENT_READY)

            self._enter(Stage.TASKS_RUNNING)
            await self._run_tasks()
            self._enter(Stage.TESTS_ALLOCATED)

            tests = self._allocate_tests()
            self._enter(Stage.TESTS_RUNNING)
            await self._run_tests(tests)
        except Exception as exc:
            failed_in = self.stage
            if not isinstance(exc, ShardciError):
                logger.exception("Unexpected error in stage %s", failed_in)
            self._enter(Stage.FAILED)
            self._report_failure(failed_in, exc)
            return 1
        else:
            self._enter(Stage.SUCCESS)
            self._reporter.print_success(
                f"{self._context.label}: all {len(self.test_runs)} assigned tests passed"
            )
            return 0
        finally:
            stop_heartbeat(handle)

    # ── Stages ──────────────────────────────────────────────────────

    def _prepare_outputs(self) -> None:
        self._reporter.print_step_header("Preparing log and report directories")
        for directory in (self._config.results_dir_path, self._config.log_dir_path):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                msg = f"Cannot create directory {directory}: {exc}"
                raise ResourceError(msg, path=directory) from exc
        ensure_log_file(self._config.log_file_path)
        self._reporter.print_artifact("Aggregate log", self._config.log_file_path)
        self._reporter.print_artifact("Results", self._config.results_dir_path)

    def _start_heartbeat(self) -> HeartbeatHandle | None:
        if not self._config.heartbeat.enabled:
            logger.debug("Heartbeat disabled")
            return None
        return start_heartbeat(
            self._config.heartbeat.interval,
            emit=self._heartbeat_emit,
            label=self._context.identity,
        )

    async def _prepare_environment(self) -> None:
        env_config = self._config.environment
        steps = (
            ("version switch", env_config.version_command),
            ("dependency clean", env_config.clean_command),
            ("dependency install", env_config.install_command),
        )

        self._reporter.print_step_header("Preparing runtime environment")
        log_path = self._config.log_file_path
        for step, command in steps:
            if not command:
                self._reporter.print_step_skip(step)
                continue

            try:
                append_log_header(log_path, f"{step}: {' '.join(command)}")
                result = await run_subprocess(
                    command, cwd=self._config.root_path, log_path=log_path
                )
            except (SubprocessError, OSError, ValueError) as exc:
                msg = f"Environment step '{step}' could not start: {exc}"
                raise EnvironmentSetupError(msg, step=step, log_path=log_path) from exc

            if not result.success:
                msg = f"Environment step '{step}' failed with exit code {result.returncode}"
                raise EnvironmentSetupError(msg, step=step, log_path=log_path)
            self._reporter.print_step_done(step, result.duration_ms / 1000)

    async def _run_tasks(self) -> None:
        self._reporter.print_step_header("Running pre-test tasks")
        await run_tasks(
            self._config.tasks,
            self._context,
            log_path=self._config.log_file_path,
            cwd=self._config.root_path,
            progress=self._reporter,
        )

    def _allocate_tests(self) -> list[Path]:
        self._reporter.print_step_header("Allocating tests")
        tests_config = self._config.tests
        source_root = self._config.source_root_path

        started = time.perf_counter()
        discovered = discover_test_files(
            source_root,
            pattern=tests_config.pattern,
            include=tests_config.include,
            exclude=tests_config.exclude,
        )
        assigned = shard(discovered, self._context.total, self._context.index)
        logger.info(
            "Worker %d/%d assigned %d of %d test files",
            self._context.index,
            self._context.total,
            len(assigned),
            len(discovered),
        )
        self._reporter.print_step_done(
            f"{len(assigned)} of {len(discovered)} test files assigned to this worker",
            time.perf_counter() - started,
        )
        return assigned

    async def _run_tests(self, tests: list[Path]) -> None:
        self._reporter.print_step_header("Running tests")
        if not tests:
            self._reporter.print_step_skip("No tests assigned to this worker")
            return

        source_root = self._config.source_root_path
        started = time.perf_counter()
        self.test_runs = await run_tests(
            tests,
            source_root=source_root,
            log_dir=self._config.log_dir_path,
            results_dir=self._config.results_dir_path,
            command=self._config.tests.command,
            progress=self._reporter,
        )
        self._reporter.print_step_done(
            f"{len(self.test_runs)} tests passed", time.perf_counter() - started
        )
        logger.debug(
            "Passed: %s",
            ", ".join(relative_test_path(run.test_path, source_root) for run in self.test_runs),
        )

    # ── Failure reporting ───────────────────────────────────────────

    def _report_failure(self, failed_in: Stage | None, exc: Exception) -> None:
        stage_name = failed_in.value if failed_in else "startup"
        logger.error("Worker failed during %s: %s", stage_name, exc)
        self._reporter.print_error(f"{self._context.label} failed during {stage_name}: {exc}")

        if isinstance(exc, TestFailure):
            self._reporter.print_artifact("Failing test", exc.test_path)
            self._reporter.print_artifact("Test log", exc.log_path)
        elif isinstance(exc, TaskError | EnvironmentSetupError) and exc.log_path is not None:
            self._reporter.print_artifact("Log", exc.log_path)
        elif isinstance(exc, ResourceError):
            self._reporter.print_artifact("Path", exc.path)

        if not isinstance(exc, ResourceError):
            self._reporter.print_artifact("Aggregate log", self._config.log_file_path)
