"""Shared fixtures for shardci tests."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from shardci.reporters.terminal import CLIReporter


@pytest.fixture
def quiet_reporter() -> CLIReporter:
    """Reporter writing to an in-memory console."""
    return CLIReporter(Console(file=io.StringIO(), width=120))
