"""Command and script builders shared by the test modules."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def py(code: str) -> list[str]:
    """Command that runs *code* with the current interpreter."""
    return [sys.executable, "-c", code]


def write_test_script(path: Path, *, exit_code: int = 0, output: str = "ok") -> Path:
    """Write a Python test script that leaves a ``.ran`` marker next to itself."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "import pathlib, sys\n"
        "here = pathlib.Path(__file__)\n"
        "here.with_name(here.name + '.ran').write_text('')\n"
        f"print({output!r})\n"
        f"sys.exit({exit_code})\n",
        encoding="utf-8",
    )
    return path
