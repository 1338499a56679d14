"""spatialrf: spatial random-forest regression workflow.

Loads a covariate raster and a response point layer, builds a regression task,
evaluates learners with random and spatial resampling, tunes hyperparameters by
grid search and predicts full-resolution surfaces.

Example:
    >>> from spatialrf import build_task, learner, resampling, train, predict, score
    >>> task = build_task(dataset, target="response")
    >>> plan = resampling("holdout", ratio=0.7, seed=1).instantiate(task)
    >>> model = train(learner("regr.ranger", num_trees=100), task, plan.train_sets[0])
    >>> score(predict(model, task, plan.test_sets[0]), "regr.rmse")

"""

from __future__ import annotations

__version__ = "0.3.0"

from spatialrf.application.measures import get_measure, score
from spatialrf.application.prediction import predict
from spatialrf.application.resampling import (
    CrossValidation,
    Holdout,
    KnnDistanceMatched,
    SpatialBlock,
    resampling,
)
from spatialrf.application.task_builder import build_task
from spatialrf.application.training import learner, load_model, resample, save_model, to_tune, train
from spatialrf.application.tuning import Terminator, tune

__all__ = [
    "CrossValidation",
    "Holdout",
    "KnnDistanceMatched",
    "SpatialBlock",
    "Terminator",
    "__version__",
    "build_task",
    "get_measure",
    "learner",
    "load_model",
    "predict",
    "resample",
    "resampling",
    "save_model",
    "score",
    "to_tune",
    "train",
    "tune",
]
