"""
Batch planner.

Partitions an ordered SKU list into fixed-size, ordered batches. Batch i
holds skus[i * batch_size:(i + 1) * batch_size]; the last batch may be
shorter and an empty input yields no batches.
"""

from typing import Sequence


def _check_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")


def total_batches(sku_count: int, batch_size: int) -> int:
    """Number of batches needed for sku_count SKUs."""
    _check_size(batch_size)
    return -(-sku_count // batch_size)


def batch_bounds(index: int, batch_size: int, sku_count: int) -> tuple[int, int]:
    """
    Slice bounds (start, end) of batch `index`.

    Raises:
        IndexError: index outside the plan
    """
    count = total_batches(sku_count, batch_size)
    if index < 0 or index >= count:
        raise IndexError(f"Batch {index} outside plan of {count} batches")
    start = index * batch_size
    return start, min(start + batch_size, sku_count)


def batch_for(skus: Sequence[str], batch_size: int, index: int) -> list[str]:
    """SKUs of batch `index`."""
    start, end = batch_bounds(index, batch_size, len(skus))
    return list(skus[start:end])


def plan(skus: Sequence[str], batch_size: int) -> list[list[str]]:
    """
    Split skus into ordered batches.

    Every input SKU lands in exactly one batch, in input order.
    """
    _check_size(batch_size)
    return [
        list(skus[start:start + batch_size])
        for start in range(0, len(skus), batch_size)
    ]
