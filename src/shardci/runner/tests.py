"""Sequential execution of a worker's test shard.

Each test file runs in its own process with combined output redirected to a
per-test log named after the file's slug.  The first non-zero exit stops the
shard: later tests never run and there is no retry.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from shardci.errors import ResourceError, TestFailure
from shardci.models import TestRun
from shardci.reporters.junit_xml import JUnitXMLReporter
from shardci.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shardci.reporters.terminal import CLIReporter

logger = logging.getLogger(__name__)

FILE_PLACEHOLDER = "{file}"
DEFAULT_TEST_COMMAND: tuple[str, ...] = ("node", FILE_PLACEHOLDER)

_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")


def slugify(rel_path: str) -> str:
    """Turn a relative test path into a file-name-safe token.

    Every non-alphanumeric character becomes ``_`` and the result is
    lowercased: ``lib/Foo/test/test.main-a.js`` becomes
    ``lib_foo_test_test_main_a_js``.  Characters are replaced one for one,
    so ``a__b.js`` and ``a_b.js`` keep distinct slugs.
    """
    return _NON_ALNUM_RE.sub("_", rel_path).lower()


def relative_test_path(test_path: Path, source_root: Path) -> str:
    """Return *test_path* relative to *source_root* with POSIX separators."""
    for root in (source_root, source_root.resolve()):
        if test_path.is_relative_to(root):
            return test_path.relative_to(root).as_posix()
    return test_path.as_posix()


def build_test_command(command: Sequence[str], test_path: Path) -> list[str]:
    """Substitute ``{file}`` in *command*, or append the path when absent."""
    if any(FILE_PLACEHOLDER in part for part in command):
        return [part.replace(FILE_PLACEHOLDER, str(test_path)) for part in command]
    return [*command, str(test_path)]


def ensure_log_file(path: Path) -> Path:
    """Create (or truncate) a log file owned by the invoking user.

    When the worker runs as root through ``sudo``, ownership is handed back to
    ``SUDO_UID``/``SUDO_GID`` so the CI user can read and upload the log.

    Raises:
        ResourceError: If the directory or file cannot be created.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")
        _chown_to_invoking_user(path)
    except OSError as exc:
        msg = f"Cannot create log file {path}: {exc}"
        raise ResourceError(msg, path=path) from exc
    return path


def _chown_to_invoking_user(path: Path) -> None:
    if not hasattr(os, "geteuid") or os.geteuid() != 0:
        return
    sudo_uid = os.environ.get("SUDO_UID")
    if not sudo_uid:
        return
    sudo_gid = os.environ.get("SUDO_GID")
    os.chown(path, int(sudo_uid), int(sudo_gid) if sudo_gid else -1)


def _write_result(xml_reporter: JUnitXMLReporter, run: TestRun) -> None:
    try:
        xml_reporter.generate(run, run.result_path)
    except OSError as exc:
        msg = f"Cannot write test result {run.result_path}: {exc}"
        raise ResourceError(msg, path=run.result_path) from exc


async def run_tests(
    tests: Sequence[Path],
    *,
    source_root: Path,
    log_dir: Path,
    results_dir: Path,
    command: Sequence[str] = DEFAULT_TEST_COMMAND,
    cwd: Path | None = None,
    progress: CLIReporter | None = None,
) -> list[TestRun]:
    """Run *tests* one by one, stopping at the first failure.

    Args:
        tests: The worker's shard, already in execution order.
        source_root: Root the slugs are computed relative to.
        log_dir: Directory receiving ``<slug>.log`` capture files.
        results_dir: Directory receiving ``test-results.<slug>.xml`` files.
        command: Test command; ``{file}`` is replaced by the test path,
            otherwise the path is appended.
        cwd: Working directory for every test (defaults to *source_root*).
        progress: Optional reporter for per-test progress lines.

    Returns:
        One passing TestRun per test, in execution order.

    Raises:
        TestFailure: On the first test that exits non-zero or cannot start.
        ResourceError: If a log file or result file cannot be written.
    """
    xml_reporter = JUnitXMLReporter()
    runs: list[TestRun] = []
    total = len(tests)

    for position, test_path in enumerate(tests, start=1):
        rel_path = relative_test_path(test_path, source_root)
        slug = slugify(rel_path)
        log_path = ensure_log_file(log_dir / f"{slug}.log")
        result_path = results_dir / f"test-results.{slug}.xml"

        if progress is not None:
            progress.print_info(f"  ({position}/{total}) {rel_path}")
        logger.info("Running test %s (%d/%d)", rel_path, position, total)

        run = TestRun(
            test_path=test_path,
            rel_path=rel_path,
            slug=slug,
            log_path=log_path,
            result_path=result_path,
        )

        try:
            result = await run_subprocess(
                build_test_command(command, test_path),
                cwd=cwd or source_root,
                log_path=log_path,
            )
        except (SubprocessError, ValueError) as exc:
            with log_path.open("a", encoding="utf-8") as fh:
                fh.write(f"{exc}\n")
            run.returncode = exc.result.returncode if isinstance(exc, SubprocessError) else -1
            _write_result(xml_reporter, run)
            msg = f"Test {rel_path} could not start: {exc}"
            raise TestFailure(msg, test_path=test_path, log_path=log_path) from exc

        run.returncode = result.returncode
        run.duration_ms = result.duration_ms
        _write_result(xml_reporter, run)

        if not run.passed:
            logger.error("Test %s failed with exit code %d", rel_path, result.returncode)
            msg = f"Test {rel_path} failed with exit code {result.returncode}"
            raise TestFailure(msg, test_path=test_path, log_path=log_path)

        runs.append(run)

    return runs
