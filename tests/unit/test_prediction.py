"""Tests for tabular and raster prediction."""

from __future__ import annotations

import numpy as np
import pytest

from spatialrf.application.data_loader import join_points
from spatialrf.application.prediction import predict
from spatialrf.application.task_builder import build_task
from spatialrf.application.training import learner, train
from spatialrf.constants import NODATA_VALUE
from spatialrf.domain.exceptions import PredictionError
from spatialrf.domain.value_objects import CovariateRaster, SurfacePrediction, TabularPrediction


@pytest.fixture
def raster_task(raster, points):
    dataset = join_points(raster, points, target="response")
    return build_task(dataset, "response", feature_names=dataset.covariate_names)


@pytest.fixture
def model(raster_task):
    return train(learner("regr.ranger", num_trees=20), raster_task)


class TestTabular:
    def test_one_value_per_requested_row(self, model, raster_task) -> None:
        prediction = predict(model, raster_task, row_ids=[3, 1, 7])

        assert isinstance(prediction, TabularPrediction)
        assert prediction.row_ids.tolist() == [3, 1, 7]
        np.testing.assert_allclose(prediction.truth, raster_task.truth([3, 1, 7]))
        np.testing.assert_allclose(
            prediction.response,
            model.estimator.predict(raster_task.feature_matrix([3, 1, 7])),
        )

    def test_all_rows_by_default(self, model, raster_task) -> None:
        assert len(predict(model, raster_task)) == raster_task.n_obs

    def test_out_of_range_rows(self, model, raster_task) -> None:
        with pytest.raises(PredictionError):
            predict(model, raster_task, row_ids=[raster_task.n_obs])

    def test_task_missing_feature(self, model, task_factory) -> None:
        with pytest.raises(PredictionError, match="lacks model features: cov3"):
            predict(model, task_factory(n_features=2))


class TestSurface:
    def test_surface_keeps_grid(self, model, raster) -> None:
        surface = predict(model, raster)

        assert isinstance(surface, SurfacePrediction)
        assert surface.shape == raster.shape
        assert surface.n_cells == raster.n_cells
        assert surface.geotransform == raster.geotransform
        assert surface.projection == raster.projection
        assert surface.truth is None
        assert surface.valid_mask.all()

    def test_cell_values_match_tabular_prediction(self, model, raster) -> None:
        surface = predict(model, raster)

        features = raster.values[:, 4, 9].reshape(1, -1)
        assert surface.response[4, 9] == pytest.approx(model.estimator.predict(features)[0])

    def test_block_size_does_not_change_result(self, model, raster) -> None:
        whole = predict(model, raster)
        blocked = predict(model, raster, block_size=7)

        np.testing.assert_allclose(whole.response, blocked.response)

    def test_nodata_cells_propagate(self, model, raster) -> None:
        values = np.array(raster.values)
        values[0, 2, 3] = -1.0
        values[2, 5, 5] = np.nan
        masked = CovariateRaster(values, raster.band_names, raster.geotransform, raster.projection, nodata=(-1.0, None, None))

        surface = predict(model, masked)

        assert surface.response[2, 3] == NODATA_VALUE
        assert surface.response[5, 5] == NODATA_VALUE
        assert surface.valid_mask.sum() == raster.n_cells - 2
        assert not surface.mask[2, 3]

    def test_nodata_in_unused_band_is_ignored(self, raster, points) -> None:
        dataset = join_points(raster, points, target="response", covariates=["cov1", "cov2"])
        task = build_task(dataset, "response", feature_names=dataset.covariate_names)
        model = train(learner("regr.ranger", num_trees=10), task)
        values = np.array(raster.values)
        values[2] = -1.0
        masked = CovariateRaster(values, raster.band_names, raster.geotransform, raster.projection, nodata=(None, None, -1.0))

        surface = predict(model, masked)

        assert surface.valid_mask.all()
        np.testing.assert_allclose(surface.response, predict(model, raster).response)

    def test_band_order_follows_names(self, model, raster) -> None:
        reordered = CovariateRaster(
            raster.values[::-1],
            tuple(reversed(raster.band_names)),
            raster.geotransform,
            raster.projection,
        )

        np.testing.assert_allclose(predict(model, reordered).response, predict(model, raster).response)

    def test_missing_band_raises(self, model, raster) -> None:
        renamed = CovariateRaster(raster.values, ("cov1", "cov2", "slope"), raster.geotransform, raster.projection)

        with pytest.raises(PredictionError, match="cov3"):
            predict(model, renamed)

    def test_coordinates_as_features(self, raster, points) -> None:
        dataset = join_points(raster, points, target="response")
        task = build_task(dataset, "response", feature_names=dataset.covariate_names, coords_as_features=True)
        model = train(learner("regr.ranger", num_trees=10), task)

        surface = predict(model, raster, block_size=16)

        x, y = raster.cell_centers(0, 0, 1, 1)
        features = np.concatenate([raster.values[:, 0, 0], [x[0, 0], y[0, 0]]]).reshape(1, -1)
        assert surface.response[0, 0] == pytest.approx(model.estimator.predict(features)[0])

    def test_truth_is_attached(self, model, raster) -> None:
        truth = raster.values.sum(axis=0)

        surface = predict(model, raster, truth=truth)

        assert surface.truth.shape == raster.shape

    def test_truth_shape_checked(self, model, raster) -> None:
        with pytest.raises(PredictionError):
            predict(model, raster, truth=np.zeros((2, 2)))


def test_unsupported_input(model) -> None:
    with pytest.raises(PredictionError, match="cannot predict on dict"):
        predict(model, {"cov1": [1.0]})
