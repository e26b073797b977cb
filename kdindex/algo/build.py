from __future__ import annotations

import math
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Deque, List, Tuple

import numpy as np

from kdindex import config as kd_config
from kdindex.core.layout import (
    GAP,
    layout_capacity,
    left_child_index,
    median_layout_height,
    right_child_index,
)
from kdindex.core.metrics import resolve_metric
from kdindex.core.tree import KDTree
from kdindex.diagnostics import log_operation
from kdindex.exceptions import InvalidInputError
from kdindex.logging import get_logger

LOGGER = get_logger("algo.build")


@dataclass(frozen=True)
class _PendingRange:
    """Input indices still to be laid out below flat position ``position``."""

    indices: np.ndarray
    position: int
    depth: int


def _validate_dimensions(dimensions: Any) -> int:
    if isinstance(dimensions, bool) or not isinstance(dimensions, (int, np.integer)):
        raise InvalidInputError(f"dimensions must be an integer, got {dimensions!r}.")
    if dimensions <= 0:
        raise InvalidInputError(f"dimensions must be positive, got {dimensions}.")
    return int(dimensions)


def _coerce_points(points: Any, dimensions: int) -> np.ndarray:
    try:
        array = np.array(points, copy=True)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(
            "Points must be equal-length coordinate sequences."
        ) from exc
    if array.size == 0:
        raise InvalidInputError("Cannot build an index from an empty point set.")
    if array.ndim != 2:
        raise InvalidInputError(
            f"Points must form a 2-D array of shape (n, {dimensions}), got shape {array.shape}."
        )
    if array.shape[1] != dimensions:
        raise InvalidInputError(
            f"Points have {array.shape[1]} coordinates; expected {dimensions}."
        )
    if not np.issubdtype(array.dtype, np.number) or np.issubdtype(
        array.dtype, np.complexfloating
    ):
        raise InvalidInputError(
            f"Point coordinates must be totally ordered real numbers, got {array.dtype}."
        )
    if np.issubdtype(array.dtype, np.floating) and np.isnan(array).any():
        raise InvalidInputError("Point coordinates must not contain NaN.")
    return array


def _resolve_bounds(
    points: np.ndarray, lower_bound: float | None, upper_bound: float | None
) -> Tuple[float, float]:
    lower = -math.inf if lower_bound is None else float(lower_bound)
    upper = math.inf if upper_bound is None else float(upper_bound)
    if math.isnan(lower) or math.isnan(upper):
        raise InvalidInputError("Region bounds must not be NaN.")
    if lower > upper:
        raise InvalidInputError(
            f"lower_bound ({lower}) must not exceed upper_bound ({upper})."
        )
    if points.min() < lower or points.max() > upper:
        raise InvalidInputError(
            f"Point coordinates must lie within [{lower}, {upper}]."
        )
    return lower, upper


def _resolve_workers(workers: int | None, runtime: kd_config.RuntimeConfig) -> int:
    if workers is None:
        return runtime.build_workers
    if isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0:
        raise InvalidInputError(f"workers must be a positive integer, got {workers!r}.")
    return workers


def _split_range(
    points: np.ndarray, pending: _PendingRange, dimensions: int
) -> Tuple[int, np.ndarray, np.ndarray]:
    """Return ``(median, left, right)`` for one sub-range.

    Ordering is a full sort on ``(coordinate, input index)`` so equal
    coordinates fall deterministically on either side of the median.
    """

    indices = pending.indices
    axis = pending.depth % dimensions
    ranked = indices[np.lexsort((indices, points[indices, axis]))]
    middle = ranked.shape[0] // 2
    return int(ranked[middle]), ranked[:middle], ranked[middle + 1 :]


def _place_subtree(
    points: np.ndarray,
    node_indices: np.ndarray,
    pending: _PendingRange,
    dimensions: int,
) -> None:
    if pending.indices.shape[0] == 0:
        return
    median, left, right = _split_range(points, pending, dimensions)
    node_indices[pending.position] = median
    depth = pending.depth + 1
    _place_subtree(
        points,
        node_indices,
        _PendingRange(left, left_child_index(pending.position), depth),
        dimensions,
    )
    _place_subtree(
        points,
        node_indices,
        _PendingRange(right, right_child_index(pending.position), depth),
        dimensions,
    )


def _place_parallel(
    points: np.ndarray,
    node_indices: np.ndarray,
    root: _PendingRange,
    dimensions: int,
    *,
    workers: int,
    threshold: int,
) -> int:
    """Lay out the top of the tree serially, then build the remaining subtrees on a pool.

    Subtrees write to disjoint flat positions, so joining the pool is the
    only synchronisation needed. Returns the number of subtrees handed to the
    pool.
    """

    frontier: Deque[_PendingRange] = deque([root])
    ready: List[_PendingRange] = []
    while frontier:
        pending = frontier.popleft()
        size = pending.indices.shape[0]
        if size == 0:
            continue
        if size < threshold or len(frontier) + len(ready) + 2 > workers:
            ready.append(pending)
            continue
        median, left, right = _split_range(points, pending, dimensions)
        node_indices[pending.position] = median
        depth = pending.depth + 1
        frontier.append(_PendingRange(left, left_child_index(pending.position), depth))
        frontier.append(_PendingRange(right, right_child_index(pending.position), depth))

    if len(ready) <= 1:
        for pending in ready:
            _place_subtree(points, node_indices, pending, dimensions)
        return len(ready)

    LOGGER.debug("Building %d subtrees on %d workers.", len(ready), workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(_place_subtree, points, node_indices, pending, dimensions)
            for pending in ready
        ]
        for future in futures:
            future.result()
    return len(ready)


def build_tree(
    points: Any,
    dimensions: int,
    metric: Any = None,
    lower_bound: float | None = None,
    upper_bound: float | None = None,
    *,
    workers: int | None = None,
) -> KDTree:
    """Build an implicit k-d tree over ``points`` using exact-median splits.

    Parameters
    ----------
    points:
        Sequence of ``n`` points, each with ``dimensions`` real coordinates.
    dimensions:
        Number of coordinates per point; must be positive.
    metric:
        Registered metric name, :class:`~kdindex.core.metrics.Metric`, or a
        callable ``(lhs, rhs) -> float``. Defaults to the runtime metric
        (``KDINDEX_METRIC``, squared Euclidean unless overridden).
    lower_bound, upper_bound:
        Per-axis bounds of the root region used when pruning. They must
        enclose every coordinate; default to ``-inf`` / ``+inf``.
    workers:
        Thread count for construction. Defaults to ``KDINDEX_BUILD_WORKERS``.
    """

    runtime = kd_config.runtime_config()
    with log_operation(LOGGER, "kd_build") as op_log:
        dims = _validate_dimensions(dimensions)
        array = _coerce_points(points, dims)
        lower, upper = _resolve_bounds(array, lower_bound, upper_bound)
        try:
            resolved_metric = resolve_metric(metric)
        except (KeyError, TypeError) as exc:
            raise InvalidInputError(str(exc)) from exc
        thread_count = _resolve_workers(workers, runtime)

        count = int(array.shape[0])
        height = median_layout_height(count)
        node_indices = np.full(layout_capacity(height), GAP, dtype=np.int64)
        root = _PendingRange(np.arange(count, dtype=np.int64), 0, 0)

        if thread_count > 1 and count >= runtime.parallel_threshold:
            subtrees = _place_parallel(
                array,
                node_indices,
                root,
                dims,
                workers=thread_count,
                threshold=runtime.parallel_threshold,
            )
        else:
            _place_subtree(array, node_indices, root, dims)
            subtrees = 1

        op_log.add_metadata(
            points=count,
            dimensions=dims,
            height=height,
            capacity=int(node_indices.shape[0]),
            workers=thread_count,
            subtrees=subtrees,
            metric=resolved_metric.name,
        )

    return KDTree(
        dimensions=dims,
        points=array,
        node_indices=node_indices,
        metric=resolved_metric,
        lower_bound=lower,
        upper_bound=upper,
    )


__all__ = ["build_tree"]
