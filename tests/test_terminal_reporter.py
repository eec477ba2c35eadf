"""Tests for the rich terminal reporter."""

from __future__ import annotations

import io
from pathlib import Path

from rich.console import Console

from shardci.models import TaskSpec, WorkerContext
from shardci.reporters.terminal import CLIReporter, _format_duration


def _reporter() -> tuple[CLIReporter, io.StringIO]:
    buffer = io.StringIO()
    return CLIReporter(Console(file=buffer, width=200)), buffer


def test_format_duration() -> None:
    assert _format_duration(0.04) == "0.0s"
    assert _format_duration(12.34) == "12.3s"
    assert _format_duration(90) == "1.5m"


def test_worker_banner_shows_label() -> None:
    reporter, buffer = _reporter()
    reporter.print_worker_banner(WorkerContext(total=4, index=2, identity="circleci-2"))
    assert "circleci-2 (3/4)" in buffer.getvalue()


def test_step_lines() -> None:
    reporter, buffer = _reporter()
    reporter.print_step_header("Running tests")
    reporter.print_step_done("3 tests passed", 75.0)
    reporter.print_step_skip("version switch")

    output = buffer.getvalue()
    assert "Running tests" in output
    assert "3 tests passed (1.2m)" in output
    assert "version switch (skipped)" in output


def test_artifact_path_printed_verbatim() -> None:
    reporter, buffer = _reporter()
    reporter.print_artifact("Test log", Path("/tmp/reports/ci/logs/lib_a_test_js.log"))
    assert "Test log: /tmp/reports/ci/logs/lib_a_test_js.log" in buffer.getvalue()


def test_shard_table() -> None:
    reporter, buffer = _reporter()
    reporter.print_shard_table(
        WorkerContext(total=2, index=1), ["lib/b/test/test.js", "lib/d/test/test.js"], 4
    )

    output = buffer.getvalue()
    assert "Shard 1/2: 2 of 4 test files" in output
    assert "lib/d/test/test.js" in output


def test_task_table_marks_current_worker() -> None:
    reporter, buffer = _reporter()
    lint = TaskSpec(name="lint", commands=[["make", "lint"]])
    reporter.print_task_table(WorkerContext(total=2, index=1), {0: [lint], 1: []})

    output = buffer.getvalue()
    assert "lint" in output
    assert "(this worker)" in output
    assert "none" in output
