"""Predict with a fitted model on task rows or on a covariate raster.

``predict`` is a single entry point; the input type selects the mode:

- ``TaskRegr`` gives a ``TabularPrediction`` with one value per requested row
- ``CovariateRaster`` gives a ``SurfacePrediction`` on the raster's grid,
  computed block by block; cells with nodata in a model band are set to
  ``NODATA_VALUE`` and left out of the surface mask

"""

from __future__ import annotations

from functools import singledispatch
from typing import Optional, Sequence

import numpy as np

from spatialrf.constants import DEFAULT_BLOCK_SIZE, NODATA_VALUE
from spatialrf.domain.exceptions import PredictionError
from spatialrf.domain.value_objects import (
    CovariateRaster,
    FittedModel,
    SurfacePrediction,
    TabularPrediction,
    TaskRegr,
)
from spatialrf.logging import Reporter


def _estimate(model: FittedModel, features: np.ndarray, source: Optional[str] = None) -> np.ndarray:
    try:
        return np.asarray(model.estimator.predict(features), dtype=np.float64).reshape(-1)
    except (ValueError, TypeError) as exc:
        raise PredictionError(f"estimator failed to predict: {exc}", source=source) from exc


def predict(model: FittedModel, data, row_ids: Optional[Sequence[int]] = None, **kwargs):
    """Predict the response for ``data``.

    Parameters
    ----------
    model : FittedModel
        Trained model
    data : TaskRegr or CovariateRaster
        Rows to predict or covariate stack to map
    row_ids : sequence of int, optional
        Task rows to predict; all rows when omitted. Ignored for rasters.
    **kwargs
        Raster mode only: ``block_size``, ``truth`` (2-D array on the raster
        grid) and ``reporter``

    Raises
    ------
    PredictionError
        If the input lacks a feature the model was trained on, or the input
        type is not supported

    """
    return _predict(data, model, row_ids, **kwargs)


@singledispatch
def _predict(data, model: FittedModel, row_ids=None, **kwargs):
    raise PredictionError(f"cannot predict on {type(data).__name__}; expected TaskRegr or CovariateRaster")


@_predict.register
def _predict_task(data: TaskRegr, model: FittedModel, row_ids=None, **kwargs) -> TabularPrediction:
    missing = [name for name in model.covariate_names if name not in data.data]
    if missing:
        raise PredictionError(f"task '{data.task_id}' lacks model features: {', '.join(missing)}")

    if row_ids is None:
        rows = data.row_ids
    else:
        rows = np.asarray(row_ids, dtype=np.int64).reshape(-1)
        if rows.size and (rows.min() < 0 or rows.max() >= data.n_obs):
            raise PredictionError(f"row ids must be in [0, {data.n_obs - 1}]")

    columns = [np.asarray(data.data[name][rows], dtype=np.float64) for name in model.covariate_names]
    if model.coords_as_features:
        columns.extend([data.coordinates[rows, 0], data.coordinates[rows, 1]])
    features = np.column_stack(columns)

    return TabularPrediction(
        row_ids=rows,
        truth=data.truth(rows),
        response=_estimate(model, features),
        task_id=data.task_id,
    )


def _windows(n_rows: int, n_cols: int, block_size: int):
    for row_off in range(0, n_rows, block_size):
        rows = min(block_size, n_rows - row_off)
        for col_off in range(0, n_cols, block_size):
            yield row_off, col_off, rows, min(block_size, n_cols - col_off)


@_predict.register
def _predict_raster(
    data: CovariateRaster,
    model: FittedModel,
    row_ids=None,
    block_size: int = DEFAULT_BLOCK_SIZE,
    truth: Optional[np.ndarray] = None,
    reporter: Optional[Reporter] = None,
    **kwargs,
) -> SurfacePrediction:
    missing = [name for name in model.covariate_names if name not in data.band_names]
    if missing:
        raise PredictionError(f"raster lacks bands for model features: {', '.join(missing)}", source=data.path)
    if block_size < 1:
        raise PredictionError(f"block size must be >= 1, got {block_size}", source=data.path)

    n_rows, n_cols = data.shape
    if truth is not None:
        truth = np.asarray(truth, dtype=np.float64)
        if truth.shape != (n_rows, n_cols):
            raise PredictionError(f"truth shape {truth.shape} differs from raster shape {(n_rows, n_cols)}", source=data.path)

    bands = [data.band_names.index(name) for name in model.covariate_names]
    response = np.full((n_rows, n_cols), NODATA_VALUE, dtype=np.float64)
    predicted = np.zeros((n_rows, n_cols), dtype=bool)
    windows = list(_windows(n_rows, n_cols, block_size))

    for done, (row_off, col_off, rows, cols) in enumerate(windows, start=1):
        # Nodata in bands the model does not use is ignored.
        mask = data.valid_mask((row_off, col_off, rows, cols), bands=bands)
        if mask.any():
            block = data.values[bands, row_off : row_off + rows, col_off : col_off + cols]
            features = block[:, mask].T
            if model.coords_as_features:
                xs, ys = data.cell_centers(row_off, col_off, rows, cols)
                features = np.column_stack([features, xs[mask], ys[mask]])
            out = response[row_off : row_off + rows, col_off : col_off + cols]
            out[mask] = _estimate(model, features, source=data.path)
            predicted[row_off : row_off + rows, col_off : col_off + cols] = mask
        if reporter is not None:
            reporter.progress(100 * done / len(windows))

    return SurfacePrediction(
        response=response,
        geotransform=data.geotransform,
        projection=data.projection,
        nodata=NODATA_VALUE,
        truth=truth,
        source=data.path,
        mask=predicted,
    )
