"""Deterministic round-robin shard splitting."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from shardci.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

T = TypeVar("T")


def sort_tests(tests: Iterable[Path]) -> list[Path]:
    """Sort test paths lexicographically by their full path string."""
    return sorted(tests, key=str)


def split_into_shards(
    items: Sequence[T],
    shard_index: int,
    shard_count: int,
) -> list[T]:
    """Split items into shards using round-robin assignment.

    The item at position ``p`` belongs to shard ``p % shard_count``.

    Args:
        items: Ordered items (test files or tasks).
        shard_index: Zero-based index of this shard.
        shard_count: Total number of shards.

    Returns:
        Subset of items assigned to this shard, in their original order.

    Raises:
        ConfigurationError: If shard_index or shard_count is invalid.
    """
    if shard_count < 1:
        msg = f"shard_count must be >= 1, got {shard_count}"
        raise ConfigurationError(msg)
    if shard_index < 0 or shard_index >= shard_count:
        msg = f"shard_index must be in [0, {shard_count}), got {shard_index}"
        raise ConfigurationError(msg)
    return [item for i, item in enumerate(items) if i % shard_count == shard_index]


def shard(tests: Iterable[Path], total: int, index: int) -> list[Path]:
    """Return the sorted subset of *tests* owned by worker *index* of *total*."""
    return split_into_shards(sort_tests(tests), index, total)
