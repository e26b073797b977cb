from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol, Tuple

import numpy as np

from kdindex import config as kd_config

ArrayLike = Any


class PointwiseKernel(Protocol):
    def __call__(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        ...


@dataclass(frozen=True)
class Metric:
    """Distance function used for ranking candidates and pruning subtrees.

    The kernel must behave like a true distance (symmetric, zero only for
    identical points) and must not decrease when any coordinate difference
    grows, otherwise region pruning can discard valid neighbours.
    """

    name: str
    pointwise_kernel: PointwiseKernel

    def __call__(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        return self.pointwise_kernel(lhs, rhs)

    def pointwise(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        return self.pointwise_kernel(lhs, rhs)


class MetricRegistry:
    """Minimal registry for runtime-selectable metrics."""

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}

    def register(self, metric: Metric, *, overwrite: bool = False) -> None:
        name = metric.name.lower()
        if not overwrite and name in self._metrics:
            raise ValueError(f"Metric '{metric.name}' already registered.")
        self._metrics[name] = metric

    def get(self, name: str) -> Metric:
        key = name.lower()
        if key not in self._metrics:
            raise KeyError(f"Metric '{name}' not registered.")
        return self._metrics[key]

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._metrics.keys()))


def _difference(lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
    lhs_arr = np.asarray(lhs, dtype=np.float64)
    rhs_arr = np.asarray(rhs, dtype=np.float64)
    if lhs_arr.shape != rhs_arr.shape:
        raise ValueError("Pointwise metric operands must have identical shapes.")
    return lhs_arr - rhs_arr


def _squared_euclidean(lhs: ArrayLike, rhs: ArrayLike) -> float:
    diff = _difference(lhs, rhs)
    return float(np.dot(diff, diff))


def _euclidean(lhs: ArrayLike, rhs: ArrayLike) -> float:
    return float(np.sqrt(_squared_euclidean(lhs, rhs)))


def _manhattan(lhs: ArrayLike, rhs: ArrayLike) -> float:
    return float(np.sum(np.abs(_difference(lhs, rhs))))


def _chebyshev(lhs: ArrayLike, rhs: ArrayLike) -> float:
    diff = _difference(lhs, rhs)
    if diff.size == 0:
        return 0.0
    return float(np.max(np.abs(diff)))


def _load_registry() -> MetricRegistry:
    registry = MetricRegistry()
    registry.register(Metric(name="squared_euclidean", pointwise_kernel=_squared_euclidean))
    registry.register(Metric(name="euclidean", pointwise_kernel=_euclidean))
    registry.register(Metric(name="manhattan", pointwise_kernel=_manhattan))
    registry.register(Metric(name="chebyshev", pointwise_kernel=_chebyshev))
    return registry


_REGISTRY = _load_registry()


def get_metric(name: str | None = None) -> Metric:
    """Return a registered metric, defaulting to the runtime-selected metric."""

    if name is None:
        name = kd_config.runtime_config().metric
    return _REGISTRY.get(name)


def register_metric(metric: Metric, *, overwrite: bool = False) -> None:
    _REGISTRY.register(metric, overwrite=overwrite)


def available_metrics() -> Tuple[str, ...]:
    return _REGISTRY.names()


def resolve_metric(metric: Metric | str | Callable[[Any, Any], float] | None) -> Metric:
    """Normalise a metric name, ``Metric`` or bare callable into a ``Metric``."""

    if metric is None or isinstance(metric, str):
        return get_metric(metric)
    if isinstance(metric, Metric):
        return metric
    if callable(metric):
        name = getattr(metric, "__name__", None) or "custom"
        return Metric(name=name, pointwise_kernel=metric)
    raise TypeError(f"Cannot interpret {metric!r} as a metric.")


__all__ = [
    "Metric",
    "MetricRegistry",
    "PointwiseKernel",
    "available_metrics",
    "get_metric",
    "register_metric",
    "resolve_metric",
]
