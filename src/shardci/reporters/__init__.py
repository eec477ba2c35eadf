"""Terminal and file reporters."""

from shardci.reporters.junit_xml import JUnitXMLReporter
from shardci.reporters.terminal import CLIReporter, reporter

__all__ = ["CLIReporter", "JUnitXMLReporter", "reporter"]
