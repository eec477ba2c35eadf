"""Recursive test file discovery under a source root.

Directories are pruned by root-relative glob patterns and candidate files
are filtered by a filename glob plus a full-path regular expression.  The
regular expression is always evaluated with Python's :mod:`re`, so the same
filter selects the same files on every host.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from pathlib import Path

from shardci.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "test*.js"
"""Filename glob for candidate test files."""

DEFAULT_INCLUDE = ".*"
"""Regular expression the absolute test path must fully match."""

DEFAULT_EXCLUDES: tuple[str, ...] = (
    ".*",
    "node_modules",
    "deps",
    "tools",
    "lib/node_modules/@stdlib/_tools",
    "build",
    "dist",
    "reports",
)
"""Root-relative directories never searched for tests."""


def compile_include(include: str) -> re.Pattern[str]:
    """Compile the inclusion filter, mapping bad patterns to ``ConfigurationError``."""
    try:
        return re.compile(include)
    except re.error as exc:
        msg = f"Invalid test include pattern {include!r}: {exc}"
        raise ConfigurationError(msg) from exc


def _is_excluded(rel_dir: str, excludes: tuple[str, ...] | list[str]) -> bool:
    return any(fnmatch.fnmatchcase(rel_dir, pattern) for pattern in excludes)


def discover_test_files(
    source_root: Path,
    *,
    pattern: str = DEFAULT_PATTERN,
    include: str = DEFAULT_INCLUDE,
    exclude: tuple[str, ...] | list[str] = DEFAULT_EXCLUDES,
) -> set[Path]:
    """Find test files below *source_root*.

    Args:
        source_root: Directory to search.
        pattern: Filename glob (e.g. ``test*.js``).
        include: Regular expression the absolute file path must fully match.
        exclude: Root-relative POSIX glob patterns of directories to prune.

    Returns:
        Unordered set of absolute test file paths.

    Raises:
        ConfigurationError: If *source_root* is not a directory or *include*
            is not a valid regular expression.
    """
    root = Path(source_root).resolve()
    if not root.is_dir():
        msg = f"Source root does not exist or is not a directory: {root}"
        raise ConfigurationError(msg)

    include_re = compile_include(include)
    found: set[Path] = set()

    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)

        # Prune in place so os.walk never descends into excluded trees
        kept: list[str] = []
        for name in dirnames:
            rel_dir = (current / name).relative_to(root).as_posix()
            if _is_excluded(rel_dir, exclude):
                logger.debug("Skipping excluded directory %s", rel_dir)
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in filenames:
            if not fnmatch.fnmatchcase(name, pattern):
                continue
            candidate = current / name
            if include_re.fullmatch(str(candidate)) is None:
                continue
            found.add(candidate)

    logger.debug("Discovered %d test files under %s", len(found), root)
    return found
