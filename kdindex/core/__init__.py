"""Core data structures for the implicit k-d tree."""

from .bounded import BoundedResultList
from .hyperrect import HyperRect
from .layout import (
    GAP,
    depth_of,
    layout_capacity,
    left_child_index,
    median_layout_height,
    parent_index,
    right_child_index,
)
from .metrics import (
    Metric,
    MetricRegistry,
    available_metrics,
    get_metric,
    register_metric,
    resolve_metric,
)
from .tree import KDTree

__all__ = [
    "BoundedResultList",
    "GAP",
    "HyperRect",
    "KDTree",
    "Metric",
    "MetricRegistry",
    "available_metrics",
    "depth_of",
    "get_metric",
    "layout_capacity",
    "left_child_index",
    "median_layout_height",
    "parent_index",
    "register_metric",
    "resolve_metric",
    "right_child_index",
]
