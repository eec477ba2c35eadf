"""Data models shared by the sharder, runners and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from shardci.errors import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


class Stage(Enum):
    """Orchestrator states, in the order a successful run visits them."""

    INIT = "init"
    HEARTBEAT_STARTED = "heartbeat_started"
    ENVIRONMENT_READY = "environment_ready"
    TASKS_RUNNING = "tasks_running"
    TESTS_ALLOCATED = "tests_allocated"
    TESTS_RUNNING = "tests_running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkerContext:
    """Identity of one parallel CI worker."""

    total: int
    """Total number of workers (>= 1)."""

    index: int
    """Zero-based index of this worker (0 <= index < total)."""

    identity: str = ""
    """Human-readable worker name, e.g. ``circleci-2``."""

    def __post_init__(self) -> None:
        if self.total < 1:
            msg = f"worker total must be >= 1, got {self.total}"
            raise ConfigurationError(msg)
        if self.index < 0 or self.index >= self.total:
            msg = f"worker index must be in [0, {self.total}), got {self.index}"
            raise ConfigurationError(msg)

    @property
    def label(self) -> str:
        """Display label used in progress lines."""
        name = self.identity or "worker"
        return f"{name} ({self.index + 1}/{self.total})"


@dataclass
class TaskSpec:
    """A named pre-test task made of one or more external commands."""

    name: str
    commands: list[list[str]] = field(default_factory=list)


@dataclass
class TaskResult:
    """Outcome of a single pre-test task."""

    name: str
    success: bool
    returncode: int = 0
    duration_ms: float = 0.0


@dataclass
class TestRun:
    """Outcome of one test file executed by the test runner."""

    __test__ = False

    test_path: Path
    """Absolute path of the test file."""

    rel_path: str
    """Path relative to the source root (POSIX separators)."""

    slug: str
    """Slug derived from ``rel_path``; names the log and result files."""

    log_path: Path
    """Captured combined output of the test."""

    result_path: Path
    """JUnit XML result file."""

    returncode: int = 0
    duration_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return self.returncode == 0
