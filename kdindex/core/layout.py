"""Index arithmetic for trees stored in implicit binary-heap order."""

from __future__ import annotations

GAP = -1


def left_child_index(index: int) -> int:
    return 2 * index + 1


def right_child_index(index: int) -> int:
    return 2 * index + 2


def parent_index(index: int) -> int:
    """Return the parent position of ``index``; the root reports ``-1``."""

    if index <= 0:
        return -1
    return (index - 1) // 2


def depth_of(index: int) -> int:
    """Depth of position ``index`` (the root sits at depth 0)."""

    if index < 0:
        raise ValueError(f"Node positions are non-negative, got {index}.")
    return (index + 1).bit_length() - 1


def median_layout_height(count: int) -> int:
    """Number of levels produced by median splitting ``count`` points.

    The median of ``m`` ordered points sits at ``m // 2``, so the larger child
    receives ``m // 2`` points and the height is ``ceil(log2(count + 1))``.
    """

    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}.")
    return count.bit_length()


def layout_capacity(height: int) -> int:
    """Size of the flat array holding a complete binary tree of ``height`` levels."""

    if height < 0:
        raise ValueError(f"height must be non-negative, got {height}.")
    return (1 << height) - 1


__all__ = [
    "GAP",
    "depth_of",
    "layout_capacity",
    "left_child_index",
    "median_layout_height",
    "parent_index",
    "right_child_index",
]
