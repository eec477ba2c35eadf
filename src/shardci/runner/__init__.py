"""Sequential, fail-fast execution of pre-test tasks and test files."""

from shardci.runner.tasks import DEFAULT_TASKS, assign_tasks, run_tasks
from shardci.runner.tests import ensure_log_file, run_tests, slugify

__all__ = [
    "DEFAULT_TASKS",
    "assign_tasks",
    "ensure_log_file",
    "run_tasks",
    "run_tests",
    "slugify",
]
