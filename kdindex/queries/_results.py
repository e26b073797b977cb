from __future__ import annotations

from typing import Any, Tuple

import numpy as np

from kdindex.core.tree import KDTree


def pack_result(
    tree: KDTree,
    indices: np.ndarray,
    distances: np.ndarray,
    *,
    return_distances: bool,
    return_indices: bool,
) -> Any:
    """Materialise query output as ``points`` or ``(points, [indices], [distances])``."""

    points = tree.points[indices]
    if not return_distances and not return_indices:
        return points
    packed: Tuple[Any, ...] = (points,)
    if return_indices:
        packed += (indices,)
    if return_distances:
        packed += (distances,)
    return packed
