"""Grid-search hyperparameter tuning over a resampling plan.

Every hyperparameter combination is fitted and scored on every iteration of
the plan with scikit-learn's ``GridSearchCV`` (one model per combination and
fold). The archive keeps all individual scores; the selected combination is
the one with the best fold-mean score, ties going to the earliest combination
in grid order.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
from sklearn.metrics import make_scorer
from sklearn.model_selection import GridSearchCV

from spatialrf.application.measures import get_measure
from spatialrf.application.training import build_estimator, check_estimator_params
from spatialrf.constants import DEFAULT_MEASURE, DEFAULT_TUNING_RESOLUTION
from spatialrf.domain.exceptions import ConfigurationError, ModelTrainingError, ResamplingError
from spatialrf.domain.value_objects import (
    ArchiveRow,
    Learner,
    ResamplingPlan,
    TaskRegr,
    TuningArchive,
    TuningResult,
)
from spatialrf.infrastructure.ml.learner_factory import LearnerFactory
from spatialrf.logging import Reporter


@dataclass(frozen=True)
class Terminator:
    """Stop after ``n_evals`` combinations; ``None`` evaluates the whole grid."""

    n_evals: Optional[int] = None

    def __post_init__(self) -> None:
        if self.n_evals is not None and self.n_evals < 1:
            raise ConfigurationError(f"n_evals must be >= 1, got {self.n_evals}", config_key="n_evals")

    def apply(self, combinations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if self.n_evals is None:
            return combinations
        return combinations[: self.n_evals]


def grid_combinations(learner: Learner, resolution: int = DEFAULT_TUNING_RESOLUTION) -> List[Dict[str, Any]]:
    """Expand the learner's tuning space into combinations, first parameter slowest."""
    names = list(learner.param_space)
    try:
        grids = [learner.param_space[name].candidates(resolution) for name in names]
    except ValueError as exc:
        raise ConfigurationError(str(exc), config_key="resolution") from exc
    return [dict(zip(names, values)) for values in itertools.product(*grids)]


def tune(
    learner: Learner,
    task: TaskRegr,
    plan: ResamplingPlan,
    measure: str = DEFAULT_MEASURE,
    terminator: Optional[Terminator] = None,
    resolution: int = DEFAULT_TUNING_RESOLUTION,
    n_jobs: Optional[int] = None,
    reporter: Optional[Reporter] = None,
) -> TuningResult:
    """Tune the learner's tunable hyperparameters by grid search.

    Parameters
    ----------
    learner : Learner
        Learner with at least one :func:`~spatialrf.application.training.to_tune` parameter
    task : TaskRegr
        Task whose rows the plan indexes
    plan : ResamplingPlan
        Iterations on which each combination is scored
    measure : str, default="regr.rmse"
        Measure key; its ``minimize`` flag decides the direction
    terminator : Terminator, optional
        Limit on the number of evaluated combinations
    resolution : int, default=5
        Grid points per ``TuneRange``
    n_jobs : int, optional
        Parallel fits, passed to ``GridSearchCV``
    reporter : Reporter, optional
        Progress and log sink

    Returns
    -------
    TuningResult
        Best parameters (user-facing names), best fold-mean score and the
        archive with ``combinations x iterations`` rows

    Raises
    ------
    ConfigurationError
        If the learner has nothing to tune or the measure is unknown
    ModelTrainingError
        If a combination cannot be fitted (e.g. ``mtry`` above the feature count)

    """
    if not learner.is_tunable:
        raise ConfigurationError(f"Learner {learner.key} has no parameters marked with to_tune", config_key="learner")
    if plan.n_obs != task.n_obs:
        raise ResamplingError(plan.strategy, f"plan covers {plan.n_obs} rows but task '{task.task_id}' has {task.n_obs}")
    measure_ = get_measure(measure)
    terminator = terminator or Terminator()

    combinations = terminator.apply(grid_combinations(learner, resolution))
    translated = [LearnerFactory.translate_params(learner.key, combo) for combo in combinations]
    param_grid = [{name: [value] for name, value in params.items()} for params in translated]

    # Every combination is checked before any model is fitted.
    estimator = build_estimator(learner)
    fixed = estimator.get_params(deep=False)
    for params in translated:
        check_estimator_params(learner.key, {**fixed, **params}, len(task.model_feature_names))
    if reporter is not None:
        reporter.info(
            f"Tuning {learner.key}: {len(combinations)} combinations x {plan.iters} {plan.strategy} iterations"
        )

    search = GridSearchCV(
        estimator=estimator,
        param_grid=param_grid,
        scoring=make_scorer(measure_.fn, greater_is_better=not measure_.minimize),
        cv=plan.splits(),
        refit=False,
        n_jobs=n_jobs,
        error_score="raise",
    )
    try:
        search.fit(task.feature_matrix(), task.truth())
    except (ValueError, TypeError) as exc:
        raise ModelTrainingError(learner.key, f"grid search failed: {exc}", exc) from exc

    # make_scorer negates losses; store them with their natural sign.
    sign = -1.0 if measure_.minimize else 1.0
    rows = []
    for config_id, combo in enumerate(combinations):
        for fold in range(plan.iters):
            split_score = float(search.cv_results_[f"split{fold}_test_score"][config_id])
            rows.append(ArchiveRow(params=combo, fold=fold + 1, score=sign * split_score, config_id=config_id))
    archive = TuningArchive(rows=tuple(rows), param_names=tuple(learner.param_space), measure=measure_.key)

    means = np.array([entry["score"] for entry in archive.aggregate()])
    best = int(np.argmin(means) if measure_.minimize else np.argmax(means))
    if reporter is not None:
        reporter.info(f"Best {measure_.key} = {means[best]:.4f} with {combinations[best]}")

    return TuningResult(
        learner=learner,
        best_params=combinations[best],
        best_score=float(means[best]),
        measure=measure_.key,
        archive=archive,
    )
