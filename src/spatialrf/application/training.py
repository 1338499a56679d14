"""Learner construction, training, resampling and model persistence."""

from __future__ import annotations

import numbers
import pickle
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from spatialrf.application.measures import get_measure, score
from spatialrf.application.prediction import predict
from spatialrf.domain.exceptions import ConfigurationError, DataLoadError, ModelTrainingError, OutputError, ResamplingError
from spatialrf.domain.value_objects import (
    FittedModel,
    Learner,
    ResamplingPlan,
    ResampleResult,
    TaskRegr,
    TuneRange,
    TuneValues,
)
from spatialrf.infrastructure.ml.learner_factory import LearnerFactory
from spatialrf.logging import Reporter


def to_tune(*values: Any, lower: Optional[float] = None, upper: Optional[float] = None, integer: Optional[bool] = None):
    """Mark a hyperparameter as tunable.

    ``to_tune(2, 4, 6)`` enumerates candidates; ``to_tune(lower=1, upper=10)``
    declares a range expanded by the tuner's resolution. Ranges with integer
    bounds produce integer candidates unless ``integer`` says otherwise.
    """
    if values and (lower is not None or upper is not None):
        raise ConfigurationError("to_tune takes either candidate values or lower/upper bounds, not both")
    if values:
        return TuneValues(values)
    if lower is None or upper is None:
        raise ConfigurationError("to_tune needs candidate values or both lower and upper bounds")
    if integer is None:
        integer = isinstance(lower, int) and isinstance(upper, int)
    try:
        return TuneRange(lower, upper, integer=integer)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def learner(key: str, **params: Any) -> Learner:
    """Create a learner description.

    Parameters may use estimator names or aliases such as ``num.trees``
    (pass those through ``**{"num.trees": 100}``). Values created with
    :func:`to_tune` are kept for tuning; everything else is fixed.

    Raises
    ------
    ConfigurationError
        If the key or a parameter name is unknown

    """
    # Validates the key and all names, fixed or tunable.
    LearnerFactory.translate_params(key, {name: None for name in params})

    values = {}
    space = {}
    for name, value in params.items():
        if isinstance(value, (TuneValues, TuneRange)):
            space[name] = value
        else:
            values[name] = value
    return Learner(key=key.lower(), param_values=values, param_space=space)


def build_estimator(learner_: Learner):
    """Unfitted estimator with the learner's fixed parameters."""
    return LearnerFactory.create(learner_.key, **learner_.param_values)


def check_estimator_params(learner_key: str, params: Mapping[str, Any], n_features: int) -> None:
    """Reject feature-subset settings that do not fit the task.

    ``params`` uses estimator argument names. An integer ``max_features`` must
    lie in ``[1, n_features]`` and a float in ``(0, 1]``.

    Raises
    ------
    ModelTrainingError
        If ``max_features`` is out of range

    """
    value = params.get("max_features")
    if value is None or isinstance(value, str):
        return
    if isinstance(value, bool):
        raise ModelTrainingError(learner_key, f"max_features must be a number, got {value!r}")
    if isinstance(value, numbers.Integral):
        if not 1 <= value <= n_features:
            raise ModelTrainingError(
                learner_key, f"max_features={value} is outside [1, {n_features}] for {n_features} features"
            )
    elif isinstance(value, numbers.Real):
        if not 0.0 < value <= 1.0:
            raise ModelTrainingError(learner_key, f"max_features={value} must be a share in (0, 1]")


def train(
    learner: Learner,
    task: TaskRegr,
    row_ids: Optional[Sequence[int]] = None,
    reporter: Optional[Reporter] = None,
) -> FittedModel:
    """Fit a learner on (a subset of) the task rows.

    Raises
    ------
    ConfigurationError
        If the learner still has tunable parameters
    ModelTrainingError
        If the estimator rejects its parameters or fails to fit

    """
    if learner.is_tunable:
        raise ConfigurationError(
            f"Learner {learner.key} has unresolved tuning parameters {sorted(learner.param_space)}; tune it first",
            config_key="learner",
        )
    rows = task.row_ids if row_ids is None else np.asarray(row_ids, dtype=np.int64).reshape(-1)
    estimator = build_estimator(learner)
    check_estimator_params(learner.key, estimator.get_params(deep=False), len(task.model_feature_names))
    if reporter is not None:
        reporter.info(f"Training {learner.key} on {rows.size} rows of task '{task.task_id}'")

    try:
        estimator.fit(task.feature_matrix(rows), task.truth(rows))
    except (ValueError, TypeError) as exc:
        raise ModelTrainingError(learner.key, str(exc), exc) from exc

    return FittedModel(
        learner=learner,
        estimator=estimator,
        feature_names=task.model_feature_names,
        task_id=task.task_id,
        train_row_ids=rows,
        coords_as_features=task.coords_as_features,
    )


def resample(
    learner: Learner,
    task: TaskRegr,
    plan: ResamplingPlan,
    measure: str = "regr.rmse",
    reporter: Optional[Reporter] = None,
) -> ResampleResult:
    """Train and score a fixed learner on every iteration of a plan."""
    if plan.n_obs != task.n_obs:
        raise ResamplingError(plan.strategy, f"plan covers {plan.n_obs} rows but task '{task.task_id}' has {task.n_obs}")
    measure_ = get_measure(measure)

    scores = []
    predictions = []
    for i, (train_rows, test_rows) in enumerate(plan.splits(), start=1):
        model = train(learner, task, train_rows)
        prediction = predict(model, task, test_rows)
        predictions.append(prediction)
        scores.append(score(prediction, measure_))
        if reporter is not None:
            reporter.info(f"{plan.strategy} iteration {i}/{plan.iters}: {measure_.key} = {scores[-1]:.4f}")
            reporter.progress(100 * i / plan.iters)

    return ResampleResult(learner=learner, measure=measure_.key, scores=tuple(scores), predictions=tuple(predictions))


def save_model(model: FittedModel, path: Union[str, Path]) -> Path:
    """Pickle a fitted model."""
    from spatialrf import __version__

    path = Path(path)
    model_data = {"model": model, "learner_key": model.learner.key, "version": __version__}
    try:
        with path.open("wb") as handle:
            pickle.dump(model_data, handle)
    except OSError as exc:
        raise OutputError(str(path), str(exc)) from exc
    return path


def load_model(path: Union[str, Path]) -> FittedModel:
    """Load a model written by :func:`save_model`."""
    path = Path(path)
    try:
        with path.open("rb") as handle:
            model_data = pickle.load(handle)
    except (OSError, pickle.UnpicklingError, EOFError) as exc:
        raise DataLoadError(str(path), f"cannot read model: {exc}") from exc
    model = model_data.get("model") if isinstance(model_data, dict) else None
    if not isinstance(model, FittedModel):
        raise DataLoadError(str(path), "file does not contain a spatialrf model")
    return model
