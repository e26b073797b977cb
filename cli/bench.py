from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import numpy as np
from numpy.random import default_rng
import typer
from typing_extensions import Annotated

import kdindex
from kdindex import config as kd_config
from kdindex.core.metrics import get_metric

from tests.utils.datasets import gaussian_points
from tests.utils.linear import linear_knn_distances, linear_radius_indices


@dataclass
class BenchCLIOptions:
    dimension: int = 3
    tree_points: int = 16_384
    queries: int = 1_024
    k: int = 8
    radius: float | None = None
    seed: int = 0
    metric: str | None = None
    workers: int | None = None
    validate: bool = False
    diagnostics: bool | None = None
    log_level: str | None = None

    @classmethod
    def from_namespace(cls, namespace: Any) -> "BenchCLIOptions":
        values = {}
        for field in cls.__dataclass_fields__:
            if hasattr(namespace, field):
                values[field] = getattr(namespace, field)
        return cls(**values)


@dataclass(frozen=True)
class BenchmarkResult:
    build_seconds: float
    elapsed_seconds: float
    queries: int
    k: int
    latency_ms: float
    queries_per_second: float
    metric: str = ""
    radius_seconds: float | None = None
    radius_matches: int | None = None
    mismatches: int | None = None


_OVERRIDE_KEYS = ("KDINDEX_LOG_LEVEL", "KDINDEX_ENABLE_DIAGNOSTICS")


def _override_values(options: BenchCLIOptions) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if options.log_level is not None:
        values["KDINDEX_LOG_LEVEL"] = options.log_level
    if options.diagnostics is not None:
        values["KDINDEX_ENABLE_DIAGNOSTICS"] = "1" if options.diagnostics else "0"
    return values


@contextmanager
def runtime_overrides(options: BenchCLIOptions) -> Iterator[kd_config.RuntimeConfig]:
    """Apply CLI runtime flags for the duration of a run, then restore the environment."""

    values = _override_values(options)
    previous = {key: os.environ.get(key) for key in _OVERRIDE_KEYS}
    os.environ.update(values)
    kd_config.reset_runtime_config_cache()
    try:
        yield kd_config.runtime_config()
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        kd_config.reset_runtime_config_cache()


def _count_mismatches(
    tree: kdindex.KDTree,
    points: np.ndarray,
    queries: np.ndarray,
    *,
    k: int,
    radius: float | None,
) -> int:
    mismatches = 0
    for query in queries:
        _, distances = tree.nearest_neighbors(query, k, return_distances=True)
        expected = linear_knn_distances(points, query, k, tree.metric)
        if distances.shape != expected.shape or not np.allclose(distances, expected):
            mismatches += 1
        if radius is not None:
            _, indices = tree.points_within_radius(query, radius, return_indices=True)
            if set(indices.tolist()) != linear_radius_indices(points, query, radius, tree.metric):
                mismatches += 1
    return mismatches


def run_benchmark(options: BenchCLIOptions) -> BenchmarkResult:
    """Build an index over Gaussian points and time k-NN (and radius) queries."""

    with runtime_overrides(options):
        return _run_benchmark(options)


def _run_benchmark(options: BenchCLIOptions) -> BenchmarkResult:
    points = gaussian_points(
        default_rng(options.seed), options.tree_points, options.dimension, dtype=np.float64
    )
    queries = gaussian_points(
        default_rng(options.seed + 1), options.queries, options.dimension, dtype=np.float64
    )

    start = time.perf_counter()
    tree = kdindex.build(
        points,
        options.dimension,
        metric=options.metric,
        workers=options.workers,
    )
    build_seconds = time.perf_counter() - start

    start = time.perf_counter()
    for query in queries:
        tree.nearest_neighbors(query, options.k)
    elapsed = time.perf_counter() - start

    radius_seconds = None
    radius_matches = None
    if options.radius is not None:
        radius_matches = 0
        start = time.perf_counter()
        for query in queries:
            radius_matches += int(tree.points_within_radius(query, options.radius).shape[0])
        radius_seconds = time.perf_counter() - start

    mismatches = None
    if options.validate:
        mismatches = _count_mismatches(
            tree, points, queries, k=options.k, radius=options.radius
        )

    count = int(queries.shape[0])
    return BenchmarkResult(
        build_seconds=build_seconds,
        elapsed_seconds=elapsed,
        queries=count,
        k=options.k,
        latency_ms=(elapsed / count) * 1e3 if count else 0.0,
        queries_per_second=count / elapsed if elapsed > 0 else float("inf"),
        metric=tree.metric.name,
        radius_seconds=radius_seconds,
        radius_matches=radius_matches,
        mismatches=mismatches,
    )


def _render(result: BenchmarkResult, options: BenchCLIOptions) -> None:
    typer.echo(
        f"kdindex | build={result.build_seconds:.4f}s "
        f"points={options.tree_points} dimension={options.dimension} "
        f"queries={result.queries} k={result.k} metric={result.metric} "
        f"time={result.elapsed_seconds:.4f}s "
        f"latency={result.latency_ms:.4f}ms "
        f"throughput={result.queries_per_second:,.1f} q/s"
    )
    if result.radius_seconds is not None:
        typer.echo(
            f"radius | radius={options.radius} time={result.radius_seconds:.4f}s "
            f"matches={result.radius_matches}"
        )
    if result.mismatches is not None:
        typer.echo(f"validate | mismatches={result.mismatches}")


_SHAPE_PANEL = "Benchmark shape"
_RUNTIME_PANEL = "Runtime controls"

app = typer.Typer(
    add_completion=False,
    pretty_exceptions_enable=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Benchmark and validate the implicit k-d tree.",
)


@app.command()
def bench(
    dimension: Annotated[
        int,
        typer.Option(
            "--dimension",
            min=1,
            help="Dimensionality of tree/query points.",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = 3,
    tree_points: Annotated[
        int,
        typer.Option(
            "--tree-points",
            min=1,
            help="Number of points indexed before querying.",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = 16_384,
    queries: Annotated[
        int,
        typer.Option(
            "--queries",
            min=0,
            help="Number of query points per run.",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = 1_024,
    k: Annotated[
        int,
        typer.Option(
            "--k",
            min=1,
            help="Number of neighbours requested per query.",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = 8,
    radius: Annotated[
        Optional[float],
        typer.Option(
            "--radius",
            min=0.0,
            help="Also time radius queries (measured with the selected metric).",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = None,
    seed: Annotated[
        int,
        typer.Option(
            "--seed",
            help="Base random seed for point/query generation.",
            rich_help_panel=_SHAPE_PANEL,
        ),
    ] = 0,
    metric: Annotated[
        Optional[str],
        typer.Option(
            "--metric",
            help="Registered metric name (default: KDINDEX_METRIC).",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option(
            "--workers",
            min=1,
            help="Construction threads (default: KDINDEX_BUILD_WORKERS).",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    validate: Annotated[
        bool,
        typer.Option(
            "--validate/--no-validate",
            help="Compare every query against a linear scan.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = False,
    diagnostics: Annotated[
        Optional[bool],
        typer.Option(
            "--enable-diagnostics/--disable-diagnostics",
            help="Control CPU/RSS polling in operation logs.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help="Override runtime log level.",
            rich_help_panel=_RUNTIME_PANEL,
        ),
    ] = None,
) -> None:
    try:
        resolved_metric = get_metric(metric)
    except KeyError as exc:
        raise typer.BadParameter(
            f"unknown metric {metric!r}; choose from {', '.join(kdindex.available_metrics())}",
            param_hint="--metric",
        ) from exc

    options = BenchCLIOptions(
        dimension=dimension,
        tree_points=tree_points,
        queries=queries,
        k=k,
        radius=radius,
        seed=seed,
        metric=resolved_metric.name,
        workers=workers,
        validate=validate,
        diagnostics=diagnostics,
        log_level=log_level,
    )
    result = run_benchmark(options)
    _render(result, options)
    if result.mismatches:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()


__all__ = [
    "BenchCLIOptions",
    "BenchmarkResult",
    "app",
    "main",
    "run_benchmark",
    "runtime_overrides",
]
