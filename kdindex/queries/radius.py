from __future__ import annotations

import math
import numbers
import operator
from typing import Any, List, Tuple

import numpy as np

from kdindex.core.bounded import BoundedResultList
from kdindex.core.hyperrect import HyperRect
from kdindex.core.layout import left_child_index, right_child_index
from kdindex.core.tree import KDTree
from kdindex.diagnostics import log_operation
from kdindex.exceptions import InvalidInputError
from kdindex.logging import get_logger
from kdindex.queries._results import pack_result

LOGGER = get_logger("queries.radius")


def _validate_radius(radius: Any) -> float:
    if not isinstance(radius, numbers.Real):
        raise InvalidInputError(f"radius must be a real number, got {radius!r}.")
    value = float(radius)
    if math.isnan(value) or value < 0.0:
        raise InvalidInputError(f"radius must be non-negative, got {radius!r}.")
    return value


def _validate_limit(limit: Any) -> int | None:
    if limit is None:
        return None
    if isinstance(limit, bool):
        raise InvalidInputError("limit must be an integer, got a bool.")
    try:
        value = operator.index(limit)
    except TypeError as exc:
        raise InvalidInputError(f"limit must be an integer, got {limit!r}.") from exc
    if value <= 0:
        raise InvalidInputError(f"limit must be positive, got {value}.")
    return value


class _RadiusSearch:
    """Depth-first walk collecting every point within ``radius`` of the query.

    When ``limit`` is set the matches are funnelled through a bounded list, so
    only the ``limit`` nearest matches survive and subtrees that cannot beat
    the current worst match are skipped as well.
    """

    __slots__ = (
        "_points",
        "_node_indices",
        "_capacity",
        "_dimensions",
        "_metric",
        "_query",
        "_radius",
        "matches",
        "bounded",
        "visited",
    )

    def __init__(
        self, tree: KDTree, query: np.ndarray, radius: float, limit: int | None
    ) -> None:
        self._points = tree.points
        self._node_indices = tree.node_indices
        self._capacity = tree.capacity
        self._dimensions = tree.dimensions
        self._metric = tree.metric
        self._query = query
        self._radius = radius
        self.matches: List[Tuple[float, int]] = []
        self.bounded: BoundedResultList[int] | None = (
            BoundedResultList(limit) if limit is not None else None
        )
        self.visited = 0

    def _occupied(self, position: int) -> bool:
        return position < self._capacity and self._node_indices[position] >= 0

    def _keep(self, index: int, distance: float) -> None:
        if distance > self._radius:
            return
        if self.bounded is not None:
            self.bounded.add(index, distance)
        else:
            self.matches.append((distance, index))

    def _may_contain(self, region: HyperRect) -> bool:
        bound = self._metric(self._query, region.closest_point(self._query))
        if bound > self._radius:
            return False
        bounded = self.bounded
        if bounded is not None and bounded.is_full and bound >= bounded.max_priority:
            return False
        return True

    def run(self, region: HyperRect) -> None:
        if self._occupied(0):
            self._visit(0, 0, region)

    def _visit(self, position: int, depth: int, region: HyperRect) -> None:
        index = int(self._node_indices[position])
        point = self._points[index]
        query = self._query
        self.visited += 1
        self._keep(index, self._metric(query, point))

        axis = depth % self._dimensions
        split = point[axis]
        left_region, right_region = region.split(axis, split)
        left = left_child_index(position)
        right = right_child_index(position)
        if query[axis] < split:
            near, near_region, far, far_region = left, left_region, right, right_region
        else:
            near, near_region, far, far_region = right, right_region, left, left_region

        if self._occupied(near):
            self._visit(near, depth + 1, near_region)
        if self._occupied(far) and self._may_contain(far_region):
            self._visit(far, depth + 1, far_region)

    def collected(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.bounded is not None:
            pairs = self.bounded.items()
            indices = np.asarray([index for index, _ in pairs], dtype=np.int64)
            distances = np.asarray([dist for _, dist in pairs], dtype=np.float64)
            return indices, distances
        ordered = sorted(self.matches)
        indices = np.asarray([index for _, index in ordered], dtype=np.int64)
        distances = np.asarray([dist for dist, _ in ordered], dtype=np.float64)
        return indices, distances


def points_within_radius(
    tree: KDTree,
    target: Any,
    radius: float,
    *,
    limit: int | None = None,
    return_distances: bool = False,
    return_indices: bool = False,
) -> Any:
    """Return every indexed point whose distance to ``target`` is at most ``radius``.

    Results are sorted by distance; without ``limit`` equal distances are
    ordered by input index. ``radius`` is measured with the tree's metric,
    so with the default squared Euclidean metric it is a squared length.
    """

    with log_operation(LOGGER, "radius_query") as op_log:
        value = _validate_radius(radius)
        cap = _validate_limit(limit)
        query = tree.coerce_target(target)

        search = _RadiusSearch(tree, query, value, cap)
        search.run(tree.root_region())
        indices, distances = search.collected()

        op_log.add_metadata(
            radius=value,
            limit=cap if cap is not None else "none",
            visited=search.visited,
            matches=int(indices.shape[0]),
        )

    return pack_result(
        tree,
        indices,
        distances,
        return_distances=return_distances,
        return_indices=return_indices,
    )


__all__ = ["points_within_radius"]
