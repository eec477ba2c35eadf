"""Exception taxonomy for CI worker stages.

Every stage raises on its first failure. The orchestrator catches
``ShardciError`` once, stops the heartbeat and exits non-zero.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class ShardciError(Exception):
    """Base class for all worker failures."""


class ConfigurationError(ShardciError, ValueError):
    """Invalid or missing worker count, worker index or config value."""


class EnvironmentSetupError(ShardciError):
    """A runtime environment step (version switch, clean, install) failed."""

    def __init__(self, message: str, *, step: str, log_path: Path | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.log_path = log_path


class TaskError(ShardciError):
    """A pre-test task exited non-zero."""

    def __init__(self, message: str, *, task: str, log_path: Path | None = None) -> None:
        super().__init__(message)
        self.task = task
        self.log_path = log_path


class TestFailure(ShardciError):
    """A single test exited non-zero."""

    __test__ = False

    def __init__(self, message: str, *, test_path: Path, log_path: Path) -> None:
        super().__init__(message)
        self.test_path = test_path
        self.log_path = log_path


class ResourceError(ShardciError):
    """A log/report directory or log file could not be created."""

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path
