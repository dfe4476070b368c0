"""
Index-based chunking for batched store calls.
"""

from typing import Sequence, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """
    Split a sequence into consecutive slices of at most `size` items.

    Every item lands in exactly one chunk and order is preserved:
    chunked([1, 2, 3, 4, 5], 2) -> [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[start:start + size] for start in range(0, len(items), size)]
