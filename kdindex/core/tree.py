from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Tuple

import numpy as np

from kdindex.core.hyperrect import HyperRect
from kdindex.core.layout import GAP, depth_of, left_child_index, right_child_index
from kdindex.core.metrics import Metric
from kdindex.exceptions import InvalidInputError


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class KDTree:
    """Immutable k-d tree stored in implicit binary-heap order.

    ``node_indices[i]`` holds the input index of the point placed at flat
    position ``i`` (``-1`` marks a structural gap); children of ``i`` live at
    ``2i + 1`` and ``2i + 2``. The splitting axis at depth ``d`` is
    ``d % dimensions``. Left subtrees hold coordinates ``<=`` the node's on
    that axis and right subtrees ``>=``; equal coordinates are ordered by input
    index so the layout is deterministic.

    Instances are produced by :func:`kdindex.build` and are safe to query
    from several threads at once.
    """

    dimensions: int
    points: np.ndarray
    node_indices: np.ndarray
    metric: Metric
    lower_bound: float = -np.inf
    upper_bound: float = np.inf

    def __post_init__(self) -> None:
        _readonly(self.points)
        _readonly(self.node_indices)

    @classmethod
    def build(
        cls,
        points: Any,
        dimensions: int,
        metric: Any = None,
        lower_bound: float | None = None,
        upper_bound: float | None = None,
        *,
        workers: int | None = None,
    ) -> "KDTree":
        from kdindex.algo.build import build_tree

        return build_tree(
            points,
            dimensions,
            metric,
            lower_bound,
            upper_bound,
            workers=workers,
        )

    @property
    def num_points(self) -> int:
        return int(self.points.shape[0])

    @property
    def capacity(self) -> int:
        return int(self.node_indices.shape[0])

    @property
    def height(self) -> int:
        return self.capacity.bit_length()

    @property
    def nodes(self) -> np.ndarray:
        """Flat node sequence as a ``(capacity, dimensions)`` array; gaps are ``NaN``."""

        nodes = np.full((self.capacity, self.dimensions), np.nan, dtype=np.float64)
        occupied = self.node_indices >= 0
        nodes[occupied] = self.points[self.node_indices[occupied]]
        return nodes

    def __len__(self) -> int:
        return self.num_points

    def is_gap(self, index: int) -> bool:
        return index < 0 or index >= self.capacity or int(self.node_indices[index]) == GAP

    def node(self, index: int) -> np.ndarray | None:
        if self.is_gap(index):
            return None
        return self.points[int(self.node_indices[index])]

    def node_depth(self, index: int) -> int:
        return depth_of(index)

    def splitting_axis(self, index: int) -> int:
        return depth_of(index) % self.dimensions

    def iter_nodes(self) -> Iterator[Tuple[int, int]]:
        """Yield ``(position, input_index)`` for every occupied node."""

        for position in np.flatnonzero(self.node_indices >= 0):
            yield int(position), int(self.node_indices[position])

    def subtree_positions(self, index: int) -> Tuple[int, ...]:
        """Occupied positions of the subtree rooted at ``index`` (pre-order)."""

        collected = []
        stack = [index]
        while stack:
            current = stack.pop()
            if self.is_gap(current):
                continue
            collected.append(current)
            stack.append(right_child_index(current))
            stack.append(left_child_index(current))
        return tuple(collected)

    def root_region(self) -> HyperRect:
        return HyperRect.infinite(self.dimensions, self.lower_bound, self.upper_bound)

    def coerce_target(self, target: Any) -> np.ndarray:
        """Validate a query point and return it as a 1-D array."""

        try:
            query = np.asarray(target)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"Query point {target!r} is not a coordinate sequence.") from exc
        if query.ndim != 1:
            raise InvalidInputError(
                f"Query point must be one-dimensional, got shape {query.shape}."
            )
        if query.shape[0] != self.dimensions:
            raise InvalidInputError(
                f"Query point has {query.shape[0]} coordinates; index expects {self.dimensions}."
            )
        if not np.issubdtype(query.dtype, np.number) or np.issubdtype(
            query.dtype, np.complexfloating
        ):
            raise InvalidInputError(f"Query coordinates must be real numbers, got {query.dtype}.")
        if np.issubdtype(query.dtype, np.floating) and np.isnan(query).any():
            raise InvalidInputError("Query coordinates must not contain NaN.")
        return query

    def nearest_neighbors(
        self,
        target: Any,
        k: int,
        *,
        return_distances: bool = False,
        return_indices: bool = False,
    ) -> Any:
        from kdindex.queries.knn import nearest_neighbors

        return nearest_neighbors(
            self,
            target,
            k,
            return_distances=return_distances,
            return_indices=return_indices,
        )

    def nearest_neighbor(self, target: Any) -> np.ndarray:
        return self.nearest_neighbors(target, 1)[0]

    def points_within_radius(
        self,
        target: Any,
        radius: float,
        *,
        limit: int | None = None,
        return_distances: bool = False,
        return_indices: bool = False,
    ) -> Any:
        from kdindex.queries.radius import points_within_radius

        return points_within_radius(
            self,
            target,
            radius,
            limit=limit,
            return_distances=return_distances,
            return_indices=return_indices,
        )


__all__ = ["KDTree"]
