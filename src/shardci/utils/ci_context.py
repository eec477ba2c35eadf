"""CI provider and worker identity detection from environment variables."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from shardci.errors import ConfigurationError
from shardci.models import WorkerContext

if TYPE_CHECKING:
    from collections.abc import Mapping

# (total variable, index variable, index base), in lookup order
_SOURCES = (
    ("SHARDCI_NODE_TOTAL", "SHARDCI_NODE_INDEX", 0),
    ("CIRCLE_NODE_TOTAL", "CIRCLE_NODE_INDEX", 0),
    ("CI_NODE_TOTAL", "CI_NODE_INDEX", 1),
)


def detect_ci_provider(env: Mapping[str, str] | None = None) -> str:
    """Return a short name for the CI system, or ``local`` outside CI."""
    environ = os.environ if env is None else env

    if environ.get("GITHUB_ACTIONS") == "true":
        return "github"
    if environ.get("GITLAB_CI") == "true":
        return "gitlab"
    if environ.get("CIRCLECI") == "true":
        return "circleci"
    if environ.get("CI") == "true":
        return "ci"
    return "local"


def detect_worker_context(env: Mapping[str, str] | None = None) -> WorkerContext:
    """Build the worker context from environment variables.

    Lookup order:

    1. ``SHARDCI_NODE_TOTAL`` / ``SHARDCI_NODE_INDEX`` (zero-based)
    2. CircleCI ``CIRCLE_NODE_TOTAL`` / ``CIRCLE_NODE_INDEX`` (zero-based)
    3. GitLab ``CI_NODE_TOTAL`` / ``CI_NODE_INDEX`` (one-based)
    4. A single worker with index 0

    ``SHARDCI_WORKER_ID`` overrides the derived identity string.

    Raises:
        ConfigurationError: If only one of a total/index pair is set, or a
            value is not an integer or out of range.
    """
    environ = os.environ if env is None else env
    provider = detect_ci_provider(environ)

    for total_var, index_var, base in _SOURCES:
        pair = _read_pair(environ, total_var, index_var)
        if pair is not None:
            total, index = pair[0], pair[1] - base
            break
    else:
        total, index = 1, 0

    identity = environ.get("SHARDCI_WORKER_ID") or f"{provider}-{index}"
    return WorkerContext(total=total, index=index, identity=identity)


def _read_pair(
    environ: Mapping[str, str], total_var: str, index_var: str
) -> tuple[int, int] | None:
    """Read a total/index pair; ``None`` when neither variable is set."""
    total_raw = (environ.get(total_var) or "").strip()
    index_raw = (environ.get(index_var) or "").strip()
    if not total_raw and not index_raw:
        return None
    if not index_raw:
        msg = f"{total_var} is set but {index_var} is missing"
        raise ConfigurationError(msg)
    if not total_raw:
        msg = f"{index_var} is set but {total_var} is missing"
        raise ConfigurationError(msg)
    return _parse_int(total_raw, total_var), _parse_int(index_raw, index_var)


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        msg = f"{name} must be an integer (got: {value!r})"
        raise ConfigurationError(msg) from exc
