"""shardci: sharded CI worker for package test suites."""

__version__ = "0.1.0"
