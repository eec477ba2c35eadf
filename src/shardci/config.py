"""Configuration parsing from ``.shardci.yml``."""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from shardci.errors import ConfigurationError
from shardci.models import TaskSpec
from shardci.runner.tasks import DEFAULT_TASKS
from shardci.runner.tests import DEFAULT_TEST_COMMAND
from shardci.sharding.discovery import DEFAULT_EXCLUDES, DEFAULT_INCLUDE, DEFAULT_PATTERN

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".shardci.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")
_SECTIONS = ("project", "environment", "tests", "heartbeat", "output")


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_value(value: Any) -> Any:
    if isinstance(value, str):
        return _resolve_env_vars(value)
    if isinstance(value, dict):
        return _resolve_dict(value)
    if isinstance(value, list):
        return [_resolve_value(item) for item in value]
    return value


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    return {key: _resolve_value(value) for key, value in data.items()}


def _as_command(value: Any) -> list[str]:
    """Accept ``"make install"`` or ``["make", "install"]``."""
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(part) for part in value]
    msg = f"Command must be a string or a list, got {type(value).__name__}"
    raise ConfigurationError(msg)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        return {}
    return section


@dataclass
class ProjectConfig:
    """Project-level configuration."""

    root: str
    """Project root directory (where ``.shardci.yml`` lives)."""

    source_root: str = ""
    """Directory searched for tests (defaults to the project root)."""


@dataclass
class EnvironmentConfig:
    """Runtime environment preparation commands."""

    version_command: list[str] = field(default_factory=list)
    """Switches to the pinned runtime version (skipped when empty)."""

    clean_command: list[str] = field(default_factory=lambda: ["make", "clean-node"])
    """Removes installed dependencies and compiled add-ons."""

    install_command: list[str] = field(default_factory=lambda: ["make", "install-node"])
    """Installs dependencies and compiles add-ons."""


@dataclass
class TestsConfig:
    """Test discovery and execution."""

    __test__ = False

    pattern: str = DEFAULT_PATTERN
    """Filename glob for test files."""

    include: str = DEFAULT_INCLUDE
    """Regular expression the absolute test path must fully match."""

    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    """Root-relative directories never searched."""

    command: list[str] = field(default_factory=lambda: list(DEFAULT_TEST_COMMAND))
    """Single-test command; ``{file}`` is replaced by the test path."""


@dataclass
class HeartbeatConfig:
    """Liveness output settings."""

    enabled: bool = True
    interval: float = 60.0
    """Seconds between heartbeat lines."""


@dataclass
class OutputConfig:
    """Where logs and results are written."""

    results_dir: str = "reports/ci"
    """Directory for ``test-results.<slug>.xml`` files."""

    log_dir: str = ""
    """Directory for per-test logs (defaults to ``<results_dir>/logs``)."""

    log_file: str = ""
    """Aggregate environment/task log (defaults to ``<results_dir>/ci.log``)."""


@dataclass
class ShardciConfig:
    """Complete worker configuration."""

    project: ProjectConfig
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)
    tasks: list[TaskSpec] = field(default_factory=lambda: list(DEFAULT_TASKS))
    tests: TestsConfig = field(default_factory=TestsConfig)
    heartbeat: HeartbeatConfig = field(default_factory=HeartbeatConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    raw: dict[str, Any] = field(default_factory=dict)

    def _resolve(self, value: str) -> Path:
        path = Path(value)
        if path.is_absolute():
            return path
        return Path(self.project.root) / path

    @property
    def root_path(self) -> Path:
        return Path(self.project.root)

    @property
    def source_root_path(self) -> Path:
        return self._resolve(self.project.source_root or self.project.root)

    @property
    def results_dir_path(self) -> Path:
        return self._resolve(self.output.results_dir)

    @property
    def log_dir_path(self) -> Path:
        if self.output.log_dir:
            return self._resolve(self.output.log_dir)
        return self.results_dir_path / "logs"

    @property
    def log_file_path(self) -> Path:
        if self.output.log_file:
            return self._resolve(self.output.log_file)
        return self.results_dir_path / "ci.log"


def _parse_tasks(raw: dict[str, Any]) -> list[TaskSpec]:
    tasks_raw = raw.get("tasks")
    if tasks_raw is None:
        return [
            TaskSpec(name=t.name, commands=[list(c) for c in t.commands]) for t in DEFAULT_TASKS
        ]
    if not isinstance(tasks_raw, list):
        msg = "tasks must be a list of {name, commands} entries"
        raise ConfigurationError(msg)

    tasks: list[TaskSpec] = []
    for entry in tasks_raw:
        if not isinstance(entry, dict) or not entry.get("name"):
            msg = f"Each task needs a name (got: {entry!r})"
            raise ConfigurationError(msg)
        # "command" holds one command; "commands" holds a list of them
        if "commands" in entry:
            commands_raw = entry["commands"]
            if not isinstance(commands_raw, list):
                commands_raw = [commands_raw]
            commands = [_as_command(c) for c in commands_raw]
        else:
            commands = [_as_command(entry.get("command"))]
        tasks.append(TaskSpec(name=str(entry["name"]), commands=[c for c in commands if c]))
    return tasks


def load_config(root: str | Path) -> ShardciConfig:
    """Load and parse ``.shardci.yml`` from *root*.

    Falls back to defaults and ``SHARDCI_*`` environment variables when the
    file is missing or incomplete.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
        logger.debug("Loaded configuration from %s", config_file)

    project_raw = _section(raw, "project")
    project = ProjectConfig(
        root=str(project_raw.get("root", root_path)),
        source_root=str(
            project_raw.get("source_root", os.environ.get("SHARDCI_SOURCE_ROOT", ""))
        ),
    )

    env_raw = _section(raw, "environment")
    defaults = EnvironmentConfig()
    environment = EnvironmentConfig(
        version_command=_as_command(env_raw.get("version_command", defaults.version_command)),
        clean_command=_as_command(env_raw.get("clean_command", defaults.clean_command)),
        install_command=_as_command(env_raw.get("install_command", defaults.install_command)),
    )

    tests_raw = _section(raw, "tests")
    exclude_raw = tests_raw.get("exclude", list(DEFAULT_EXCLUDES))
    tests = TestsConfig(
        pattern=str(
            tests_raw.get("pattern", os.environ.get("SHARDCI_TESTS_PATTERN", DEFAULT_PATTERN))
        ),
        include=str(
            tests_raw.get("include", os.environ.get("SHARDCI_TESTS_FILTER", DEFAULT_INCLUDE))
        ),
        exclude=[str(item) for item in exclude_raw] if isinstance(exclude_raw, list) else [],
        command=_as_command(tests_raw.get("command", list(DEFAULT_TEST_COMMAND))),
    )

    heartbeat_raw = _section(raw, "heartbeat")
    heartbeat = HeartbeatConfig(
        enabled=heartbeat_raw.get("enabled", True) in {True, "true", "1", "yes"},
        interval=float(
            heartbeat_raw.get("interval", os.environ.get("SHARDCI_HEARTBEAT_INTERVAL", 60.0))
        ),
    )

    output_raw = _section(raw, "output")
    output = OutputConfig(
        results_dir=str(
            output_raw.get("results_dir", os.environ.get("SHARDCI_RESULTS_DIR", "reports/ci"))
        ),
        log_dir=str(output_raw.get("log_dir", os.environ.get("SHARDCI_LOG_DIR", ""))),
        log_file=str(output_raw.get("log_file", os.environ.get("SHARDCI_LOG_FILE", ""))),
    )

    return ShardciConfig(
        project=project,
        environment=environment,
        tasks=_parse_tasks(raw),
        tests=tests,
        heartbeat=heartbeat,
        output=output,
        raw=raw,
    )


def _validate_tests_config(tests: TestsConfig) -> list[str]:
    errors: list[str] = []

    if not tests.pattern:
        errors.append("tests.pattern must not be empty")

    try:
        re.compile(tests.include)
    except re.error as exc:
        errors.append(f"tests.include is not a valid regular expression: {exc}")

    if not tests.command:
        errors.append("tests.command must not be empty")

    return errors


def _validate_tasks(tasks: list[TaskSpec]) -> list[str]:
    errors: list[str] = []
    seen: set[str] = set()

    for task in tasks:
        if task.name in seen:
            errors.append(f"tasks: duplicate task name {task.name}")
        seen.add(task.name)
        if not task.commands:
            errors.append(f"tasks.{task.name} has no commands")

    return errors


def _validate_sections(raw: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    for name in _SECTIONS:
        value = raw.get(name)
        if value is not None and not isinstance(value, dict):
            errors.append(f"{name} must be a mapping (got: {type(value).__name__})")
    return errors


def validate_config(config: ShardciConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if not config.project.root:
        errors.append("project.root is required")
    elif not config.root_path.is_dir():
        errors.append(f"project.root does not exist: {config.root_path}")

    if not config.source_root_path.is_dir():
        errors.append(f"project.source_root does not exist: {config.source_root_path}")

    if config.heartbeat.interval <= 0:
        errors.append(
            f"heartbeat.interval must be positive (got: {config.heartbeat.interval})"
        )

    if not config.output.results_dir:
        errors.append("output.results_dir is required")

    errors.extend(_validate_sections(config.raw))
    errors.extend(_validate_tests_config(config.tests))
    errors.extend(_validate_tasks(config.tasks))

    return errors
