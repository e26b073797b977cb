"""kdindex: build-once k-d tree for nearest-neighbour and radius queries.

Quick Start
-----------
>>> import numpy as np
>>> import kdindex
>>>
>>> points = np.random.randn(10000, 3)
>>> tree = kdindex.build(points, dimensions=3)
>>> nearest = tree.nearest_neighbors(points[0], k=10)
>>> nearby = tree.points_within_radius(points[0], radius=0.25)

Custom metrics
--------------
>>> def manhattan(lhs, rhs):
...     return float(np.abs(np.asarray(lhs) - np.asarray(rhs)).sum())
>>> tree = kdindex.build(points, dimensions=3, metric=manhattan)

Classes
-------
KDTree : Immutable implicit k-d tree returned by :func:`build`.
BoundedResultList : Fixed-capacity sorted candidate list used by searches.
Metric : Named distance kernel; see :func:`available_metrics`.
"""

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("kdindex")
except Exception:  # pragma: no cover - best effort during local development
    __version__ = "0.0.1"

from .algo import build_tree
from .core import (
    BoundedResultList,
    HyperRect,
    KDTree,
    Metric,
    MetricRegistry,
    available_metrics,
    get_metric,
    left_child_index,
    parent_index,
    register_metric,
    right_child_index,
)
from .exceptions import InvalidInputError

build = build_tree

__all__ = [
    "__version__",
    "build",
    "build_tree",
    "KDTree",
    "BoundedResultList",
    "HyperRect",
    "InvalidInputError",
    "Metric",
    "MetricRegistry",
    "available_metrics",
    "get_metric",
    "register_metric",
    "left_child_index",
    "right_child_index",
    "parent_index",
]
