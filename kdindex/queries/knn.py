from __future__ import annotations

import operator
from typing import Any

import numpy as np

from kdindex.core.bounded import BoundedResultList
from kdindex.core.hyperrect import HyperRect
from kdindex.core.layout import left_child_index, right_child_index
from kdindex.core.tree import KDTree
from kdindex.diagnostics import OperationLog, log_operation
from kdindex.exceptions import InvalidInputError
from kdindex.logging import get_logger
from kdindex.queries._results import pack_result

LOGGER = get_logger("queries.knn")


def _validate_k(k: Any) -> int:
    if isinstance(k, bool):
        raise InvalidInputError("k must be an integer, got a bool.")
    try:
        value = operator.index(k)
    except TypeError as exc:
        raise InvalidInputError(f"k must be an integer, got {k!r}.") from exc
    if value <= 0:
        raise InvalidInputError(f"k must be positive, got {value}.")
    return value


class _NearestSearch:
    """Depth-first nearest-k walk over one tree for one query point."""

    __slots__ = (
        "_points",
        "_node_indices",
        "_capacity",
        "_dimensions",
        "_metric",
        "_query",
        "results",
        "visited",
    )

    def __init__(self, tree: KDTree, query: np.ndarray, k: int) -> None:
        self._points = tree.points
        self._node_indices = tree.node_indices
        self._capacity = tree.capacity
        self._dimensions = tree.dimensions
        self._metric = tree.metric
        self._query = query
        self.results: BoundedResultList[int] = BoundedResultList(k)
        self.visited = 0

    def _occupied(self, position: int) -> bool:
        return position < self._capacity and self._node_indices[position] >= 0

    def run(self, region: HyperRect) -> None:
        if self._occupied(0):
            self._visit(0, 0, region)

    def _visit(self, position: int, depth: int, region: HyperRect) -> None:
        index = int(self._node_indices[position])
        point = self._points[index]
        query = self._query
        results = self.results
        self.visited += 1
        results.add(index, self._metric(query, point))

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
        if not self._occupied(far):
            return
        if not results.is_full:
            self._visit(far, depth + 1, far_region)
            return
        bound = self._metric(query, far_region.closest_point(query))
        if bound < results.max_priority:
            self._visit(far, depth + 1, far_region)


def nearest_neighbors(
    tree: KDTree,
    target: Any,
    k: int,
    *,
    return_distances: bool = False,
    return_indices: bool = False,
) -> Any:
    """Return the ``min(k, n)`` indexed points closest to ``target``, nearest first.

    With ``return_indices`` / ``return_distances`` the result is a tuple
    ``(points, [indices], [distances])`` in that order. Points at exactly the
    same distance keep the order in which the traversal met them.
    """

    with log_operation(LOGGER, "knn_query") as op_log:
        return _knn_impl(
            op_log,
            tree,
            target,
            k,
            return_distances=return_distances,
            return_indices=return_indices,
        )


def _knn_impl(
    op_log: OperationLog,
    tree: KDTree,
    target: Any,
    k: int,
    *,
    return_distances: bool,
    return_indices: bool,
) -> Any:
    count = _validate_k(k)
    query = tree.coerce_target(target)

    search = _NearestSearch(tree, query, count)
    search.run(tree.root_region())

    indices = np.asarray(list(search.results), dtype=np.int64)
    distances = np.asarray(search.results.priorities(), dtype=np.float64)

    op_log.add_metadata(k=count, visited=search.visited, returned=int(indices.shape[0]))

    return pack_result(
        tree,
        indices,
        distances,
        return_distances=return_distances,
        return_indices=return_indices,
    )


def nearest_neighbor(tree: KDTree, target: Any, *, return_distance: bool = False) -> Any:
    points, distances = nearest_neighbors(tree, target, 1, return_distances=True)
    if return_distance:
        return points[0], float(distances[0])
    return points[0]


__all__ = ["nearest_neighbor", "nearest_neighbors"]
