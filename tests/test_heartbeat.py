"""Tests for the background heartbeat."""

from __future__ import annotations

import re
import threading
import time

import pytest

from shardci.errors import ConfigurationError
from shardci.heartbeat import HeartbeatHandle, start_heartbeat, stop_heartbeat


def _wait_for(predicate, timeout: float = 5.0) -> bool:  # type: ignore[no-untyped-def]
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestHeartbeat:
    def test_emits_timestamped_lines_until_stopped(self) -> None:
        lines: list[str] = []
        handle = start_heartbeat(0.01, emit=lines.append, label="ci-0")
        try:
            assert _wait_for(lambda: len(lines) >= 3)
        finally:
            handle.stop()

        assert not handle.running
        assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00 heartbeat ci-0 ", lines[0])

        emitted = len(lines)
        time.sleep(0.05)
        assert len(lines) == emitted

    def test_returns_running_handle(self) -> None:
        handle = start_heartbeat(10.0, emit=lambda _line: None)
        try:
            assert isinstance(handle, HeartbeatHandle)
            assert handle.running
        finally:
            stop_heartbeat(handle)
        assert not handle.running

    def test_stop_is_idempotent(self) -> None:
        handle = start_heartbeat(10.0, emit=lambda _line: None)
        handle.stop()
        handle.stop()
        stop_heartbeat(handle)
        assert not handle.running

    def test_stop_none_is_ignored(self) -> None:
        stop_heartbeat(None)

    def test_stop_does_not_wait_for_interval(self) -> None:
        handle = start_heartbeat(30.0, emit=lambda _line: None)
        started = time.monotonic()
        handle.stop()
        assert time.monotonic() - started < 5.0

    def test_emit_errors_do_not_kill_heartbeat(self) -> None:
        calls: list[int] = []

        def flaky(_line: str) -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("console closed")

        handle = start_heartbeat(0.01, emit=flaky)
        try:
            assert _wait_for(lambda: len(calls) >= 2)
        finally:
            handle.stop()

    def test_uses_daemon_thread(self) -> None:
        handle = start_heartbeat(10.0, emit=lambda _line: None)
        try:
            names = {t.name: t.daemon for t in threading.enumerate()}
            assert names.get("shardci-heartbeat") is True
        finally:
            handle.stop()

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_non_positive_interval_rejected(self, interval: float) -> None:
        with pytest.raises(ConfigurationError, match="interval must be positive"):
            start_heartbeat(interval)
