import numpy as np
import pytest

import kdindex
from kdindex import InvalidInputError
from kdindex.core.metrics import get_metric
from kdindex.queries import nearest_neighbor, nearest_neighbors

from tests.utils.datasets import gaussian_points, integer_grid_points, uniform_points
from tests.utils.linear import linear_knn_distances, linear_search

WIKIPEDIA_POINTS = [(7, 2), (5, 4), (2, 3), (4, 7), (9, 6), (8, 1)]


def _build_wikipedia_tree():
    return kdindex.build(WIKIPEDIA_POINTS, dimensions=2, metric="squared_euclidean")


def test_wikipedia_nearest_neighbor():
    tree = _build_wikipedia_tree()

    result = tree.nearest_neighbors((9, 2), 1)

    assert result.tolist() == [[8, 1]]


def test_nearest_neighbor_matches_linear_search():
    rng = np.random.default_rng(0)
    points = uniform_points(rng, 2_000, 2, extent=1000.0)
    queries = uniform_points(rng, 100, 2, extent=1000.0)
    metric = get_metric("squared_euclidean")
    tree = kdindex.build(points, 2, metric=metric)

    for query in queries:
        tree_nearest = tree.nearest_neighbors(query, 1)
        linear_nearest = linear_search(points, query, metric)
        assert metric(query, tree_nearest[0]) == metric(query, linear_nearest)


@pytest.mark.parametrize("metric_name", ["squared_euclidean", "euclidean", "manhattan", "chebyshev"])
@pytest.mark.parametrize("k", [1, 3, 10])
def test_knn_distances_match_bruteforce(metric_name, k):
    rng = np.random.default_rng(k)
    points = gaussian_points(rng, 400, 3)
    queries = gaussian_points(rng, 25, 3)
    tree = kdindex.build(points, 3, metric=metric_name)

    for query in queries:
        _, distances = tree.nearest_neighbors(query, k, return_distances=True)
        expected = linear_knn_distances(points, query, k, tree.metric)
        np.testing.assert_allclose(distances, expected, rtol=1e-12, atol=1e-12)


def test_knn_with_many_ties_matches_bruteforce_distances():
    rng = np.random.default_rng(21)
    points = integer_grid_points(rng, 250, 3, high=4)
    queries = integer_grid_points(rng, 30, 3, high=5)
    tree = kdindex.build(points, 3)

    for query in queries:
        for k in (1, 5, 17):
            _, distances = tree.nearest_neighbors(query, k, return_distances=True)
            expected = linear_knn_distances(points, query, k, tree.metric)
            np.testing.assert_array_equal(distances, expected)


def test_results_are_sorted_nearest_first():
    points = gaussian_points(np.random.default_rng(4), 200, 2)
    tree = kdindex.build(points, 2)

    found, indices, distances = tree.nearest_neighbors(
        [0.1, -0.2], 12, return_indices=True, return_distances=True
    )

    assert found.shape == (12, 2)
    assert np.all(np.diff(distances) >= 0.0)
    np.testing.assert_array_equal(found, points[indices])
    for point, distance in zip(found, distances):
        assert tree.metric([0.1, -0.2], point) == pytest.approx(distance)


def test_return_indices_only():
    tree = _build_wikipedia_tree()

    found, indices = tree.nearest_neighbors((9, 2), 2, return_indices=True)

    assert indices.tolist() == [5, 0]
    assert found.tolist() == [[8, 1], [7, 2]]


def test_k_larger_than_point_count_is_truncated():
    tree = _build_wikipedia_tree()

    found, distances = tree.nearest_neighbors((0, 0), 50, return_distances=True)

    assert found.shape == (6, 2)
    assert sorted(map(tuple, found.tolist())) == sorted(WIKIPEDIA_POINTS)
    assert np.all(np.diff(distances) >= 0.0)


def test_duplicate_points_are_returned_separately():
    tree = kdindex.build([[1.0, 1.0], [1.0, 1.0], [5.0, 5.0]], 2)

    _, indices, distances = tree.nearest_neighbors(
        [1.0, 1.0], 2, return_indices=True, return_distances=True
    )

    assert sorted(indices.tolist()) == [0, 1]
    assert distances.tolist() == [0.0, 0.0]


@pytest.mark.parametrize("k", [0, -1, 1.5, True, "3", None])
def test_invalid_k_raises(k):
    tree = _build_wikipedia_tree()
    with pytest.raises(InvalidInputError):
        tree.nearest_neighbors((9, 2), k)


@pytest.mark.parametrize("target", [(1.0,), (1.0, 2.0, 3.0), [[1.0, 2.0]], ("a", "b")])
def test_malformed_target_raises(target):
    tree = _build_wikipedia_tree()
    with pytest.raises(InvalidInputError):
        tree.nearest_neighbors(target, 1)


def test_repeated_queries_are_identical():
    points = gaussian_points(np.random.default_rng(8), 300, 4)
    tree = kdindex.build(points, 4)
    query = gaussian_points(np.random.default_rng(9), 1, 4)[0]

    first = tree.nearest_neighbors(query, 7, return_indices=True, return_distances=True)
    second = tree.nearest_neighbors(query, 7, return_indices=True, return_distances=True)

    for lhs, rhs in zip(first, second):
        np.testing.assert_array_equal(lhs, rhs)


def test_custom_callable_metric():
    def weighted(lhs, rhs):
        diff = np.asarray(lhs, dtype=np.float64) - np.asarray(rhs, dtype=np.float64)
        return float(np.sum(np.array([1.0, 4.0]) * diff * diff))

    points = gaussian_points(np.random.default_rng(12), 150, 2)
    tree = kdindex.build(points, 2, metric=weighted)

    assert tree.metric.name == "weighted"
    for query in gaussian_points(np.random.default_rng(13), 10, 2):
        _, distances = tree.nearest_neighbors(query, 4, return_distances=True)
        np.testing.assert_allclose(distances, linear_knn_distances(points, query, 4, weighted))


def test_finite_bounds_give_same_results():
    points = uniform_points(np.random.default_rng(30), 300, 2, extent=10.0)
    unbounded = kdindex.build(points, 2)
    bounded = kdindex.build(points, 2, lower_bound=-10.0, upper_bound=10.0)

    for query in uniform_points(np.random.default_rng(31), 20, 2, extent=12.0):
        _, expected = unbounded.nearest_neighbors(query, 5, return_distances=True)
        _, actual = bounded.nearest_neighbors(query, 5, return_distances=True)
        np.testing.assert_allclose(actual, expected)


def test_module_level_helpers():
    tree = _build_wikipedia_tree()

    assert nearest_neighbors(tree, (9, 2), 1).tolist() == [[8, 1]]
    point, distance = nearest_neighbor(tree, (9, 2), return_distance=True)
    assert point.tolist() == [8, 1]
    assert distance == 2.0
    assert tree.nearest_neighbor((2, 2)).tolist() == [2, 3]


def test_pruning_skips_most_nodes_on_large_trees(caplog: pytest.LogCaptureFixture):
    import logging

    from kdindex import config as kd_config

    kd_config.reset_runtime_config_cache()
    points = uniform_points(np.random.default_rng(40), 4_096, 2, extent=100.0)
    tree = kdindex.build(points, 2)
    caplog.set_level(logging.INFO, logger="kdindex.queries.knn")

    tree.nearest_neighbors([1.0, 1.0], 1)

    records = [record for record in caplog.records if "op=knn_query" in record.message]
    assert records
    fields = dict(
        part.split("=", 1) for part in records[-1].message.split() if "=" in part
    )
    assert int(fields["visited"]) < 200


def _float_squared_distances(points, query):
    diff = np.asarray(points, dtype=np.float64) - np.asarray(query, dtype=np.float64)
    return np.sum(diff * diff, axis=1)


def test_uint8_points_rank_by_true_distance():
    points = np.array([[10, 10], [200, 200]], dtype=np.uint8)
    tree = kdindex.build(points, 2)

    _, distances = tree.nearest_neighbors(points[0], 2, return_distances=True)
    assert distances.tolist() == [0.0, 72_200.0]

    line = kdindex.build(np.array([[0], [250]], dtype=np.uint8), 1)
    found = line.nearest_neighbors(np.array([255], dtype=np.uint8), 2)
    assert found.tolist() == [[250], [0]]


def test_large_int64_distances_stay_non_negative():
    points = np.array([[0, 0], [4_000_000_000, 0]], dtype=np.int64)
    tree = kdindex.build(points, 2)

    found, distances = tree.nearest_neighbors(points[1], 2, return_distances=True)

    assert found.tolist() == [[4_000_000_000, 0], [0, 0]]
    assert distances[0] == 0.0
    assert distances[1] == pytest.approx(1.6e19)


@pytest.mark.parametrize(
    "dtype, low, high",
    [
        (np.uint8, 0, 256),
        (np.int64, -4_000_000_000, 4_000_000_000),
    ],
)
def test_integer_dtypes_match_float_bruteforce(dtype, low, high):
    rng = np.random.default_rng(50)
    points = rng.integers(low, high, size=(300, 2)).astype(dtype)
    queries = rng.integers(low, high, size=(25, 2)).astype(dtype)
    tree = kdindex.build(points, 2)

    for query in queries:
        _, distances = tree.nearest_neighbors(query, 6, return_distances=True)
        expected = np.sort(_float_squared_distances(points, query))[:6]
        np.testing.assert_allclose(distances, expected, rtol=1e-12)


def test_nan_target_raises():
    tree = _build_wikipedia_tree()
    with pytest.raises(InvalidInputError):
        tree.nearest_neighbors([float("nan"), 0.0], 1)
