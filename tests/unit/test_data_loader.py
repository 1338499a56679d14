"""Tests for joining covariate rasters onto response points."""

from __future__ import annotations

import numpy as np
import pytest

from spatialrf.application.data_loader import join_points
from spatialrf.domain.exceptions import DataLoadError, ProjectionMismatchError, SchemaError
from spatialrf.domain.value_objects import CovariateRaster, PointLayer
from spatialrf.logging import Reporter


class _ListLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str]] = []

    def info(self, message) -> None:
        self.records.append(("info", message))

    def warning(self, message) -> None:
        self.records.append(("warning", message))

    def exception(self, message, exc=None) -> None:
        self.records.append(("exception", message))


@pytest.fixture
def reporter() -> Reporter:
    return Reporter(logger=_ListLogger())


def test_join_adds_one_column_per_band(raster, points) -> None:
    dataset = join_points(raster, points, target="response")

    assert dataset.n_obs == points.n_points
    assert dataset.column_names == ("response", "plot_id", "cov1", "cov2", "cov3")
    assert dataset.covariate_names == ("cov1", "cov2", "cov3")
    expected, _ = raster.sample(points.coordinates)
    np.testing.assert_allclose(dataset.columns["cov2"], expected[:, 1])


def test_reserved_coordinate_attributes_are_stripped(raster, points_factory, reporter) -> None:
    points = points_factory(raster, n=10, extra={"X": np.zeros(10), "y": np.ones(10)})

    dataset = join_points(raster, points, target="response", reporter=reporter)

    assert "X" not in dataset.columns
    assert "y" not in dataset.columns
    warnings = [message for level, message in reporter.logger.records if level == "warning"]
    assert any("X, y" in message for message in warnings)


def test_missing_target_raises(raster, points) -> None:
    with pytest.raises(SchemaError, match="Target attribute 'biomass' not found"):
        join_points(raster, points, target="biomass")


def test_band_name_clash_raises(raster, points_factory) -> None:
    points = points_factory(raster, n=5, extra={"cov1": np.zeros(5)})

    with pytest.raises(SchemaError) as excinfo:
        join_points(raster, points, target="response")
    assert excinfo.value.names == ["cov1"]


def test_reserved_band_names_raise(points) -> None:
    raster = CovariateRaster(np.ones((2, 3, 3)), ("elev", "x"), (0, 100, 0, 300, 0, -100), points.crs)

    with pytest.raises(SchemaError):
        join_points(raster, points)


def test_points_outside_or_without_response_are_dropped(raster, reporter) -> None:
    points = PointLayer(
        coordinates=np.array([[15.0, 15.0], [25.0, 25.0], [900.0, 15.0], [35.0, 35.0]]),
        attributes={"response": np.array([1.0, 2.0, 3.0, np.nan])},
        crs=raster.projection,
    )

    dataset = join_points(raster, points, target="response", reporter=reporter)

    assert dataset.n_obs == 2
    np.testing.assert_allclose(dataset.columns["response"], [1.0, 2.0])
    assert any("Dropped 2 of 4" in message for _, message in reporter.logger.records)


def test_no_usable_point_raises(raster) -> None:
    points = PointLayer(
        coordinates=np.array([[-50.0, 15.0], [900.0, 15.0]]),
        attributes={"response": np.array([1.0, 2.0])},
        crs=raster.projection,
    )

    with pytest.raises(DataLoadError):
        join_points(raster, points, target="response")


class TestProjection:
    @pytest.fixture
    def osr(self):
        osgeo = pytest.importorskip("osgeo")
        from osgeo import osr

        return osr

    def _wkt(self, osr, epsg: int) -> str:
        srs = osr.SpatialReference()
        srs.ImportFromEPSG(epsg)
        return srs.ExportToWkt()

    def test_crs_mismatch_raises(self, osr, raster, points) -> None:
        utm = CovariateRaster(raster.values, raster.band_names, raster.geotransform, self._wkt(osr, 32632))
        geographic = PointLayer(points.coordinates, points.attributes, self._wkt(osr, 4326))

        with pytest.raises(ProjectionMismatchError) as excinfo:
            join_points(utm, geographic, target="response")
        assert excinfo.value.raster_crs == "EPSG:32632"
        assert excinfo.value.vector_crs == "EPSG:4326"

    def test_reproject_transforms_points(self, osr, raster) -> None:
        utm_wkt = self._wkt(osr, 32632)
        utm = CovariateRaster(raster.values, raster.band_names, raster.geotransform, utm_wkt)
        centres = np.array([[15.0, 285.0], [205.0, 105.0]])

        src = osr.SpatialReference()
        src.ImportFromEPSG(32632)
        dst = osr.SpatialReference()
        dst.ImportFromEPSG(4326)
        for srs in (src, dst):
            srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
        transform = osr.CoordinateTransformation(src, dst)
        lonlat = np.array([transform.TransformPoint(float(x), float(y))[:2] for x, y in centres])
        points = PointLayer(lonlat, {"response": np.array([1.0, 2.0])}, self._wkt(osr, 4326))

        dataset = join_points(utm, points, target="response", reproject=True)

        assert dataset.n_obs == 2
        np.testing.assert_allclose(dataset.coordinates, centres, atol=1e-3)
        np.testing.assert_allclose(dataset.columns["cov1"], [raster.values[0, 1, 1], raster.values[0, 19, 20]])


def test_covariates_restrict_joined_bands(raster, points) -> None:
    values = np.array(raster.values)
    values[2] = -1.0
    masked = CovariateRaster(values, raster.band_names, raster.geotransform, raster.projection, nodata=(None, None, -1.0))

    dataset = join_points(masked, points, target="response", covariates=["cov2", "cov1", "plot_id"])

    assert dataset.n_obs == points.n_points
    assert dataset.covariate_names == ("cov1", "cov2")
    assert "cov3" not in dataset.columns


def test_covariates_without_raster_band_raise(raster, points) -> None:
    with pytest.raises(SchemaError, match="None of the requested covariates"):
        join_points(raster, points, target="response", covariates=["plot_id"])
