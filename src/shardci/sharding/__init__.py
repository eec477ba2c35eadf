"""Test discovery and deterministic shard splitting."""

from shardci.sharding.discovery import DEFAULT_EXCLUDES, discover_test_files
from shardci.sharding.splitter import shard, sort_tests, split_into_shards

__all__ = [
    "DEFAULT_EXCLUDES",
    "discover_test_files",
    "shard",
    "sort_tests",
    "split_into_shards",
]
