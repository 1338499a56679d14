"""Tests for building regression tasks."""

from __future__ import annotations

import numpy as np
import pytest

from spatialrf.application.data_loader import join_points
from spatialrf.application.task_builder import build_task
from spatialrf.domain.exceptions import SchemaError


def test_default_features_are_all_other_columns(raster, points) -> None:
    dataset = join_points(raster, points, target="response")

    task = build_task(dataset, "response")

    assert task.task_id == "response"
    assert task.feature_names == ("plot_id", "cov1", "cov2", "cov3")
    assert task.n_obs == points.n_points
    assert task.crs == raster.projection


def test_explicit_features_and_coordinates(raster, points) -> None:
    dataset = join_points(raster, points, target="response")

    task = build_task(dataset, "response", task_id="biomass", feature_names=dataset.covariate_names, coords_as_features=True)

    assert task.task_id == "biomass"
    assert task.model_feature_names == ("cov1", "cov2", "cov3", "x", "y")
    matrix = task.feature_matrix()
    assert matrix.shape == (points.n_points, 5)
    np.testing.assert_allclose(matrix[:, 3:], dataset.coordinates)


def test_missing_target_raises(raster, points) -> None:
    dataset = join_points(raster, points)

    with pytest.raises(SchemaError, match="Target column 'biomass' not found"):
        build_task(dataset, "biomass")


def test_unknown_feature_raises(raster, points) -> None:
    dataset = join_points(raster, points, target="response")

    with pytest.raises(SchemaError):
        build_task(dataset, "response", feature_names=["cov1", "slope"])


def test_task_data_is_read_only(task) -> None:
    with pytest.raises(ValueError):
        task.data["cov1"][0] = 0.0
    with pytest.raises(TypeError):
        task.data["cov1"] = np.zeros(task.n_obs)
