"""Tests for the shardci command-line interface."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

import pytest
import yaml
from click.testing import CliRunner

from shardci import __version__
from shardci.cli import cli
from shardci.config import CONFIG_FILENAME
from tests.helpers import py, write_test_script

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _no_ci_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SHARDCI_NODE_TOTAL",
        "SHARDCI_NODE_INDEX",
        "SHARDCI_WORKER_ID",
        "CIRCLE_NODE_TOTAL",
        "CIRCLE_NODE_INDEX",
        "CI_NODE_TOTAL",
        "CI_NODE_INDEX",
        "SHARDCI_SOURCE_ROOT",
        "SHARDCI_RESULTS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _write_config(root: Path, **overrides: Any) -> None:
    data: dict[str, Any] = {
        "environment": {
            "clean_command": py("print('clean')"),
            "install_command": py("print('install')"),
        },
        "tasks": [
            {"name": "check_deps", "command": py("print('deps')")},
            {"name": "lint", "command": py("print('lint')")},
        ],
        "tests": {"pattern": "test*.py", "command": [sys.executable, "{file}"]},
        "heartbeat": {"enabled": False},
    }
    data.update(overrides)
    (root / CONFIG_FILENAME).write_text(yaml.dump(data), encoding="utf-8")


def _project(root: Path, *, failing: str | None = None) -> Path:
    for name in ("alpha", "beta", "gamma"):
        write_test_script(
            root / "lib" / name / "test" / "test.py",
            exit_code=1 if name == failing else 0,
        )
    _write_config(root)
    return root


def test_version(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "shard", "tasks", "config"):
        assert command in result.output


class TestShardCommand:
    def test_json_output(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)

        result = runner.invoke(
            cli,
            [
                "shard",
                "--path",
                str(tmp_path),
                "--node-total",
                "2",
                "--node-index",
                "0",
                "--worker-id",
                "node-a",
                "--json-output",
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data == {
            "worker": "node-a",
            "index": 0,
            "total": 2,
            "discovered": 3,
            "tests": ["lib/alpha/test/test.py", "lib/gamma/test/test.py"],
        }

    def test_reads_worker_from_environment(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _project(tmp_path)
        monkeypatch.setenv("CIRCLE_NODE_TOTAL", "3")
        monkeypatch.setenv("CIRCLE_NODE_INDEX", "1")

        result = runner.invoke(cli, ["shard", "--path", str(tmp_path), "--json-output"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["tests"] == ["lib/beta/test/test.py"]

    def test_table_output(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        result = runner.invoke(cli, ["shard", "--path", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "lib/beta/test/test.py" in result.output

    def test_invalid_index_is_usage_error(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        result = runner.invoke(
            cli, ["shard", "--path", str(tmp_path), "--node-total", "2", "--node-index", "2"]
        )
        assert result.exit_code == 2
        assert "worker index must be in [0, 2)" in result.output

    def test_zero_total_is_usage_error(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        result = runner.invoke(
            cli, ["shard", "--path", str(tmp_path), "--node-total", "0", "--node-index", "0"]
        )
        assert result.exit_code == 2
        assert "worker total must be >= 1" in result.output

    def test_total_without_index_is_usage_error(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        result = runner.invoke(cli, ["shard", "--path", str(tmp_path), "--node-total", "4"])
        assert result.exit_code == 2
        assert "--node-total and --node-index must be given together" in result.output

    def test_half_configured_environment_is_usage_error(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _project(tmp_path)
        monkeypatch.setenv("CIRCLE_NODE_TOTAL", "4")
        result = runner.invoke(cli, ["run", "--path", str(tmp_path)])
        assert result.exit_code == 2
        assert "CIRCLE_NODE_INDEX is missing" in result.output
        assert not (tmp_path / "reports").exists()


class TestTasksCommand:
    def test_json_output(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        result = runner.invoke(
            cli,
            [
                "tasks",
                "--path",
                str(tmp_path),
                "--node-total",
                "3",
                "--node-index",
                "0",
                "--json-output",
            ],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"0": ["check_deps"], "1": ["lint"], "2": []}

    def test_default_tasks_without_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli,
            [
                "tasks",
                "--path",
                str(tmp_path),
                "--node-total",
                "2",
                "--node-index",
                "1",
                "--json-output",
            ],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "0": ["check_deps", "lint"],
            "1": ["check_licenses"],
        }


class TestRunCommand:
    def test_success_exits_zero(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)

        result = runner.invoke(
            cli, ["run", "--path", str(tmp_path), "--node-total", "1", "--node-index", "0"]
        )

        assert result.exit_code == 0, result.output
        for name in ("alpha", "beta", "gamma"):
            assert (tmp_path / "lib" / name / "test" / "test.py.ran").exists()
        assert (tmp_path / "reports" / "ci" / "ci.log").is_file()

    def test_test_failure_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path, failing="alpha")

        result = runner.invoke(cli, ["run", "--path", str(tmp_path)])

        assert result.exit_code == 1
        assert (tmp_path / "lib" / "alpha" / "test" / "test.py.ran").exists()
        assert not (tmp_path / "lib" / "beta" / "test" / "test.py.ran").exists()

    def test_results_dir_override(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)
        out = tmp_path / "artifacts"

        result = runner.invoke(cli, ["run", "--path", str(tmp_path), "--results-dir", str(out)])

        assert result.exit_code == 0, result.output
        assert (out / "test-results.lib_beta_test_test_py.xml").is_file()
        assert (out / "logs" / "lib_beta_test_test_py.log").is_file()

    def test_invalid_worker_never_runs_anything(self, runner: CliRunner, tmp_path: Path) -> None:
        _project(tmp_path)

        result = runner.invoke(
            cli, ["run", "--path", str(tmp_path), "--node-total", "2", "--node-index", "-1"]
        )

        assert result.exit_code == 2
        assert not (tmp_path / "reports").exists()

    def test_invalid_config_is_usage_error(self, runner: CliRunner, tmp_path: Path) -> None:
        _write_config(tmp_path, tests={"include": "("})
        result = runner.invoke(cli, ["run", "--path", str(tmp_path)])
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output


class TestConfigCommands:
    def test_show_json(self, runner: CliRunner, tmp_path: Path) -> None:
        _write_config(tmp_path)
        result = runner.invoke(cli, ["config", "show", "--path", str(tmp_path), "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["tests"]["pattern"] == "test*.py"
        assert [t["name"] for t in data["tasks"]] == ["check_deps", "lint"]
        assert "raw" not in data

    def test_show_yaml(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["config", "show", "--path", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "install-node" in result.output

    def test_validate_ok(self, runner: CliRunner, tmp_path: Path) -> None:
        _write_config(tmp_path)
        result = runner.invoke(cli, ["config", "validate", "--path", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_validate_reports_errors(self, runner: CliRunner, tmp_path: Path) -> None:
        _write_config(tmp_path, heartbeat={"interval": -1})
        result = runner.invoke(cli, ["config", "validate", "--path", str(tmp_path)])
        assert result.exit_code == 1
        assert "heartbeat.interval must be positive" in result.output

    def test_malformed_yaml_aborts(self, runner: CliRunner, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("tests: [unclosed\n", encoding="utf-8")
        result = runner.invoke(cli, ["config", "show", "--path", str(tmp_path)])
        assert result.exit_code == 1
