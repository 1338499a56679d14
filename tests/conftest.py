"""Synthetic rasters, point layers and tasks shared by the test suite."""

from __future__ import annotations

import numpy as np
import pytest

from spatialrf.application.task_builder import build_task
from spatialrf.domain.value_objects import CovariateRaster, JoinedDataset, PointLayer

PROJECTION = 'LOCAL_CS["spatialrf test grid",UNIT["metre",1]]'


def make_raster(rows: int = 30, cols: int = 40, n_bands: int = 3, cell: float = 10.0, nodata=None) -> CovariateRaster:
    """Smooth covariate surfaces on a north-up grid with origin (0, rows * cell)."""
    yy, xx = np.mgrid[0:rows, 0:cols].astype(float)
    bands = [np.sin(xx * (i + 1) / 11.0) + np.cos(yy * (i + 2) / 13.0) + i for i in range(n_bands)]
    return CovariateRaster(
        values=np.stack(bands),
        band_names=tuple(f"cov{i + 1}" for i in range(n_bands)),
        geotransform=(0.0, cell, 0.0, rows * cell, 0.0, -cell),
        projection=PROJECTION,
        nodata=(nodata,) * n_bands if nodata is not None else (),
    )


def make_points(raster: CovariateRaster, n: int = 60, seed: int = 0, extra=None) -> PointLayer:
    """Random points inside the raster with a ``response`` driven by the bands."""
    rng = np.random.RandomState(seed)
    xmin, ymin, xmax, ymax = raster.extent
    coords = np.column_stack([rng.uniform(xmin + 1, xmax - 1, n), rng.uniform(ymin + 1, ymax - 1, n)])
    sampled, _ = raster.sample(coords)
    response = sampled.sum(axis=1) + rng.normal(0, 0.05, n)
    attributes = {"response": response, "plot_id": np.arange(n, dtype=float)}
    attributes.update(extra or {})
    return PointLayer(coordinates=coords, attributes=attributes, crs=raster.projection)


def make_task(n: int = 100, n_features: int = 12, seed: int = 0, constant_target: bool = False, **kwargs):
    """Regression task on coordinates in [0, 1000]^2 with ``n_features`` covariates."""
    rng = np.random.RandomState(seed)
    coords = rng.uniform(0, 1000, size=(n, 2))
    columns = {}
    for i in range(n_features):
        columns[f"cov{i + 1}"] = (
            np.sin(coords[:, 0] / (100.0 + 30 * i)) + np.cos(coords[:, 1] / (120.0 + 20 * i)) + rng.normal(0, 0.1, n)
        )
    if constant_target:
        columns["response"] = np.full(n, 3.0)
    else:
        weights = (1.0, 2.0, -1.0)
        signal = sum(w * columns[f"cov{i + 1}"] for i, w in enumerate(weights[:n_features]))
        columns["response"] = signal + rng.normal(0, 0.1, n)
    dataset = JoinedDataset(coordinates=coords, columns=columns, crs=PROJECTION)
    return build_task(dataset, "response", **kwargs)


@pytest.fixture
def raster_factory():
    return make_raster


@pytest.fixture
def points_factory():
    return make_points


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def raster() -> CovariateRaster:
    return make_raster()


@pytest.fixture
def points(raster) -> PointLayer:
    return make_points(raster)


@pytest.fixture
def task():
    return make_task()
