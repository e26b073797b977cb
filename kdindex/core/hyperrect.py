from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

import numpy as np


@dataclass(frozen=True)
class HyperRect:
    """Axis-aligned region that bounds every point of a subtree."""

    min_point: np.ndarray
    max_point: np.ndarray

    @classmethod
    def infinite(
        cls,
        dimensions: int,
        lower: float = -np.inf,
        upper: float = np.inf,
    ) -> "HyperRect":
        return cls(
            min_point=np.full(dimensions, lower, dtype=np.float64),
            max_point=np.full(dimensions, upper, dtype=np.float64),
        )

    @property
    def dimensions(self) -> int:
        return int(self.min_point.shape[0])

    def split(self, axis: int, value: Any) -> Tuple["HyperRect", "HyperRect"]:
        """Cut the region at ``value`` along ``axis`` into ``(left, right)`` halves."""

        left_max = self.max_point.copy()
        left_max[axis] = value
        right_min = self.min_point.copy()
        right_min[axis] = value
        return (
            HyperRect(min_point=self.min_point, max_point=left_max),
            HyperRect(min_point=right_min, max_point=self.max_point),
        )

    def closest_point(self, target: np.ndarray) -> np.ndarray:
        return np.clip(np.asarray(target, dtype=np.float64), self.min_point, self.max_point)


__all__ = ["HyperRect"]
