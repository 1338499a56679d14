"""Regression performance measures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Union

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from spatialrf.domain.exceptions import ConfigurationError, PredictionError
from spatialrf.domain.value_objects import SurfacePrediction, TabularPrediction


def _rmse(truth: np.ndarray, response: np.ndarray) -> float:
    return float(np.sqrt(mean_squared_error(truth, response)))


@dataclass(frozen=True)
class Measure:
    """A named score function and whether lower values are better."""

    key: str
    name: str
    fn: Callable[[np.ndarray, np.ndarray], float]
    minimize: bool = True

    def __call__(self, truth: np.ndarray, response: np.ndarray) -> float:
        return float(self.fn(truth, response))


_MEASURES: Dict[str, Measure] = {
    "regr.rmse": Measure("regr.rmse", "Root mean squared error", _rmse),
    "regr.mse": Measure("regr.mse", "Mean squared error", mean_squared_error),
    "regr.mae": Measure("regr.mae", "Mean absolute error", mean_absolute_error),
    "regr.rsq": Measure("regr.rsq", "Coefficient of determination", r2_score, minimize=False),
}


def available_measures() -> List[str]:
    return sorted(_MEASURES)


def get_measure(measure: Union[str, Measure]) -> Measure:
    """Look up a measure by key; ``Measure`` instances pass through.

    Raises
    ------
    ConfigurationError
        If the key is unknown

    """
    if isinstance(measure, Measure):
        return measure
    found = _MEASURES.get(measure)
    if found is None:
        raise ConfigurationError(
            f"Unknown measure: {measure}. Available: {', '.join(available_measures())}", config_key="measure"
        )
    return found


def score(prediction: Union[TabularPrediction, SurfacePrediction], measure: Union[str, Measure] = "regr.rmse") -> float:
    """Score a prediction against its ground truth.

    Surfaces are scored on cells that are valid in the response and finite in
    the truth.

    Raises
    ------
    PredictionError
        If the prediction carries no truth or no scorable values

    """
    measure = get_measure(measure)

    if isinstance(prediction, SurfacePrediction):
        if prediction.truth is None:
            raise PredictionError("surface prediction has no ground truth to score against", source=prediction.source)
        mask = prediction.valid_mask & np.isfinite(prediction.truth)
        truth = prediction.truth[mask]
        response = prediction.response[mask]
    else:
        truth = prediction.truth
        response = prediction.response

    if truth.size == 0:
        raise PredictionError("prediction has no values to score")
    return measure(truth, response)
