"""JUnit XML reporter: one result document per executed test file.

CI systems (CircleCI, GitLab, Jenkins) pick these files up from the results
directory to render per-test outcomes.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from shardci.models import TestRun

logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 64_000

# Characters XML 1.0 cannot represent, even escaped (ANSI escapes, NUL, ...)
_INVALID_XML_CHARS_RE = re.compile(
    r"[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)


class JUnitXMLReporter:
    """Generate JUnit XML for a single test file run."""

    def __init__(self, suite_name: str = "shardci") -> None:
        self.suite_name = suite_name

    def generate(self, run: TestRun, output_path: Path) -> Path:
        """Write the XML report for *run* to *output_path*."""
        root = self._build_xml(run, _read_log(run.log_path))
        tree = ET.ElementTree(root)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        ET.indent(tree, space="  ")
        tree.write(str(output_path), encoding="utf-8", xml_declaration=True)
        logger.debug("JUnit XML report written to %s", output_path)
        return output_path

    def generate_string(self, run: TestRun) -> str:
        """Return the XML report for *run* as a string."""
        root = self._build_xml(run, _read_log(run.log_path))
        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="unicode", xml_declaration=True)

    def _build_xml(self, run: TestRun, output: str) -> ET.Element:
        failures = "0" if run.passed else "1"
        seconds = f"{run.duration_ms / 1000:.3f}"

        testsuites = ET.Element("testsuites")
        testsuites.set("tests", "1")
        testsuites.set("failures", failures)
        testsuites.set("errors", "0")
        testsuites.set("skipped", "0")
        testsuites.set("time", seconds)

        suite = ET.SubElement(testsuites, "testsuite")
        suite.set("name", self.suite_name)
        suite.set("tests", "1")
        suite.set("failures", failures)
        suite.set("errors", "0")
        suite.set("skipped", "0")
        suite.set("time", seconds)

        case = ET.SubElement(suite, "testcase")
        case.set("name", run.rel_path)
        case.set("classname", run.slug)
        case.set("file", run.rel_path)
        case.set("time", seconds)

        if not run.passed:
            failure = ET.SubElement(case, "failure")
            failure.set("message", f"Exited with status {run.returncode}")
            failure.text = f"See {run.log_path}"

        system_out = ET.SubElement(case, "system-out")
        system_out.text = output
        return testsuites


def _read_log(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("Could not read test log %s", path)
        return ""
    if len(text) > _MAX_OUTPUT_CHARS:
        text = text[-_MAX_OUTPUT_CHARS:]
    return _INVALID_XML_CHARS_RE.sub("", text)
