"""Background liveness output for long-running CI jobs.

Some CI platforms kill a job that prints nothing for a while.  A heartbeat
prints a timestamped line every ``interval`` seconds until it is stopped.
The handle returned by :func:`start_heartbeat` is the only reference to the
background thread; callers pass it to :func:`stop_heartbeat` during cleanup.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from shardci.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0


def _default_emit(line: str) -> None:
    print(line, flush=True)  # noqa: T201


class HeartbeatHandle:
    """Reference to a running heartbeat thread."""

    def __init__(
        self,
        interval: float,
        emit: Callable[[str], None],
        label: str = "",
    ) -> None:
        self._interval = interval
        self._emit = emit
        self._label = label
        self._stop_event = threading.Event()
        self._started_at = time.monotonic()
        self._beats = 0
        self._thread = threading.Thread(
            target=self._loop,
            name="shardci-heartbeat",
            daemon=True,
        )

    @property
    def running(self) -> bool:
        """Whether the background thread is still alive."""
        return self._thread.is_alive()

    @property
    def beats(self) -> int:
        """Number of heartbeat lines emitted so far."""
        return self._beats

    def start(self) -> None:
        self._thread.start()

    def _loop(self) -> None:
        # Event.wait returns True once stop() is called
        while not self._stop_event.wait(self._interval):
            elapsed = time.monotonic() - self._started_at
            timestamp = datetime.now(UTC).isoformat(timespec="seconds")
            suffix = f" {self._label}" if self._label else ""
            self._beats += 1
            try:
                self._emit(f"{timestamp} heartbeat{suffix} (elapsed {elapsed:.0f}s)")
            except Exception:
                logger.exception("Heartbeat output failed")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the heartbeat.  Safe to call more than once."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.debug("Heartbeat stopped after %d beats", self._beats)


def start_heartbeat(
    interval: float = DEFAULT_INTERVAL,
    *,
    emit: Callable[[str], None] | None = None,
    label: str = "",
) -> HeartbeatHandle:
    """Start emitting heartbeat lines every *interval* seconds.

    Raises:
        ConfigurationError: If *interval* is not positive.
    """
    if interval <= 0:
        msg = f"heartbeat interval must be positive, got {interval}"
        raise ConfigurationError(msg)

    handle = HeartbeatHandle(interval, emit or _default_emit, label)
    handle.start()
    logger.debug("Heartbeat started (interval=%ss)", interval)
    return handle


def stop_heartbeat(handle: HeartbeatHandle | None) -> None:
    """Stop *handle* if it is running.  Never raises."""
    if handle is None:
        return
    try:
        handle.stop()
    except Exception:
        logger.warning("Failed to stop heartbeat", exc_info=True)
