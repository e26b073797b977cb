import logging

import numpy as np
import pytest

import kdindex
from kdindex import InvalidInputError
from kdindex import config as kd_config
from kdindex.queries import points_within_radius

from tests.utils.datasets import gaussian_points, integer_grid_points
from tests.utils.linear import linear_distances, linear_radius_indices


@pytest.mark.parametrize("metric_name", ["squared_euclidean", "euclidean", "manhattan", "chebyshev"])
@pytest.mark.parametrize("radius", [0.0, 0.05, 0.4, 1.5])
def test_radius_matches_bruteforce(metric_name, radius):
    rng = np.random.default_rng(7)
    points = gaussian_points(rng, 300, 2)
    queries = gaussian_points(rng, 20, 2)
    tree = kdindex.build(points, 2, metric=metric_name)

    for query in queries:
        _, indices = tree.points_within_radius(query, radius, return_indices=True)
        assert set(indices.tolist()) == linear_radius_indices(points, query, radius, tree.metric)
        assert len(indices) == len(set(indices.tolist()))


def test_radius_results_sorted_by_distance():
    points = gaussian_points(np.random.default_rng(1), 200, 3)
    tree = kdindex.build(points, 3)

    found, indices, distances = tree.points_within_radius(
        np.zeros(3), 1.0, return_indices=True, return_distances=True
    )

    assert found.shape[0] == indices.shape[0] == distances.shape[0]
    assert np.all(np.diff(distances) >= 0.0)
    assert np.all(distances <= 1.0)
    np.testing.assert_array_equal(found, points[indices])


def test_zero_radius_returns_exact_matches_only():
    points = integer_grid_points(np.random.default_rng(3), 200, 2, high=5)
    tree = kdindex.build(points, 2)
    target = points[0]

    found, indices = tree.points_within_radius(target, 0, return_indices=True)

    expected = {int(i) for i in np.flatnonzero((points == target).all(axis=1))}
    assert set(indices.tolist()) == expected
    assert all((row == target).all() for row in found)


def test_empty_result_when_nothing_is_close():
    tree = kdindex.build([[0.0, 0.0], [1.0, 1.0]], 2)

    found = tree.points_within_radius([50.0, 50.0], 1.0)

    assert found.shape == (0, 2)


def test_radius_uses_metric_units():
    tree = kdindex.build([[0.0, 0.0], [3.0, 4.0]], 2, metric="squared_euclidean")

    assert tree.points_within_radius([0.0, 0.0], 24.9).tolist() == [[0.0, 0.0]]
    assert tree.points_within_radius([0.0, 0.0], 25.0).shape[0] == 2


def test_limit_keeps_nearest_matches():
    rng = np.random.default_rng(14)
    points = gaussian_points(rng, 400, 2)
    tree = kdindex.build(points, 2)

    for query in gaussian_points(rng, 15, 2):
        _, distances = tree.points_within_radius(query, 0.5, limit=5, return_distances=True)
        all_distances = linear_distances(points, query, tree.metric)
        expected = np.sort(all_distances[all_distances <= 0.5])[:5]
        np.testing.assert_allclose(distances, expected)


@pytest.mark.parametrize("radius", [-0.1, float("nan"), "1", None])
def test_invalid_radius_raises(radius):
    tree = kdindex.build([[0.0, 0.0]], 2)
    with pytest.raises(InvalidInputError):
        tree.points_within_radius([0.0, 0.0], radius)


@pytest.mark.parametrize("limit", [0, -2, 1.5, True])
def test_invalid_limit_raises(limit):
    tree = kdindex.build([[0.0, 0.0]], 2)
    with pytest.raises(InvalidInputError):
        tree.points_within_radius([0.0, 0.0], 1.0, limit=limit)


def test_malformed_target_raises():
    tree = kdindex.build([[0.0, 0.0]], 2)
    with pytest.raises(InvalidInputError):
        tree.points_within_radius([0.0], 1.0)


def test_module_level_helper_and_idempotence():
    points = gaussian_points(np.random.default_rng(22), 150, 2)
    tree = kdindex.build(points, 2)

    first = points_within_radius(tree, [0.0, 0.0], 0.3, return_indices=True)
    second = points_within_radius(tree, [0.0, 0.0], 0.3, return_indices=True)

    for lhs, rhs in zip(first, second):
        np.testing.assert_array_equal(lhs, rhs)


def test_radius_emits_operation_log(caplog: pytest.LogCaptureFixture):
    kd_config.reset_runtime_config_cache()
    tree = kdindex.build([[0.0, 0.0], [1.0, 0.0], [4.0, 4.0]], 2)
    caplog.set_level(logging.INFO, logger="kdindex.queries.radius")

    tree.points_within_radius([0.0, 0.0], 1.0)

    records = [record for record in caplog.records if "op=radius_query" in record.message]
    assert records, "expected radius operation log"
    message = records[-1].message
    assert "matches=2" in message
    assert "radius=1" in message


@pytest.mark.parametrize(
    "dtype, low, high, radius",
    [
        (np.uint8, 0, 256, 2_500.0),
        (np.int64, -4_000_000_000, 4_000_000_000, 1e18),
    ],
)
def test_integer_dtypes_match_float_bruteforce(dtype, low, high, radius):
    rng = np.random.default_rng(60)
    points = rng.integers(low, high, size=(300, 2)).astype(dtype)
    queries = rng.integers(low, high, size=(25, 2)).astype(dtype)
    tree = kdindex.build(points, 2)

    for query in queries:
        _, indices, distances = tree.points_within_radius(
            query, radius, return_indices=True, return_distances=True
        )
        diff = points.astype(np.float64) - query.astype(np.float64)
        reference = np.sum(diff * diff, axis=1)
        assert set(indices.tolist()) == {int(i) for i in np.flatnonzero(reference <= radius)}
        assert np.all(distances >= 0.0)


def test_uint8_radius_does_not_wrap():
    points = np.array([[10, 10], [200, 200]], dtype=np.uint8)
    tree = kdindex.build(points, 2)

    found = tree.points_within_radius(points[0], 100.0)

    assert found.tolist() == [[10, 10]]


def test_nan_target_raises():
    tree = kdindex.build([[0.0, 0.0]], 2)
    with pytest.raises(InvalidInputError):
        tree.points_within_radius([0.0, float("nan")], 1.0)
