#!/usr/bin/env python
"""Quick-start guide for kdindex library usage.

Run with: python -m kdindex

This module does not import kdindex internals so the help text prints
without loading numpy.
"""

from __future__ import annotations

QUICKSTART = """\
================================================================================
                                   KDINDEX
          Build-once k-d tree for nearest-neighbour and radius queries
================================================================================

INSTALLATION
------------
    pip install kdindex

BASIC USAGE (squared Euclidean)
-------------------------------
    import numpy as np
    import kdindex

    points = np.random.randn(10000, 3)
    tree = kdindex.build(points, dimensions=3)

    # k nearest neighbours, nearest first
    neighbours = tree.nearest_neighbors(points[0], k=10)

    # With input indices and distances
    neighbours, indices, distances = tree.nearest_neighbors(
        points[0], k=10, return_indices=True, return_distances=True
    )

    # Everything within a radius (measured with the tree's metric)
    nearby = tree.points_within_radius(points[0], radius=0.25)

METRICS
-------
    kdindex.available_metrics()
    # ('chebyshev', 'euclidean', 'manhattan', 'squared_euclidean')

    tree = kdindex.build(points, dimensions=3, metric="manhattan")
    tree = kdindex.build(points, dimensions=3, metric=my_distance_function)

    Custom metrics must be true distances that never shrink when a
    coordinate difference grows, otherwise pruning can miss neighbours.

UPDATES
-------
    The index is immutable. To change its contents, build a new one.

CONFIGURATION (environment)
---------------------------
    KDINDEX_METRIC              default metric name (squared_euclidean)
    KDINDEX_LOG_LEVEL           logging level for the kdindex logger (INFO)
    KDINDEX_ENABLE_DIAGNOSTICS  CPU/RSS polling in operation logs (1)
    KDINDEX_BUILD_WORKERS       threads used during construction (1)
    KDINDEX_PARALLEL_THRESHOLD  minimum subtree size built on a worker (4096)

BENCHMARKING CLI
----------------
    python -m cli.bench --dimension 3 --tree-points 8192 --k 10 --validate

================================================================================
"""


def main() -> None:
    """Print quick-start guide."""
    print(QUICKSTART)


if __name__ == "__main__":
    main()
