"""Tests for grid-search tuning over resampling plans."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from spatialrf.application import tuning
from spatialrf.application.resampling import CrossValidation, SpatialBlock
from spatialrf.application.training import learner, to_tune, train
from spatialrf.application.tuning import Terminator, grid_combinations, tune
from spatialrf.domain.exceptions import ConfigurationError, ModelTrainingError

MTRY = (2, 4, 6, 10, 12)
MIN_NODE_SIZE = (5, 10, 15)


def _forest(**tuning):
    return learner("regr.ranger", num_trees=10, seed=1, **tuning)


class TestGridTuning:
    def test_archive_has_one_row_per_combination_and_fold(self, task) -> None:
        plan = SpatialBlock(folds=5, block_size=200.0, seed=1).instantiate(task)
        lrn = _forest(mtry=to_tune(*MTRY), **{"min.node.size": to_tune(*MIN_NODE_SIZE)})

        result = tune(lrn, task, plan, measure="regr.rmse")

        assert len(result.archive) == 5 * 5 * 3
        assert result.archive.param_names == ("mtry", "min.node.size")
        combos = {(row.params["mtry"], row.params["min.node.size"]) for row in result.archive}
        assert combos == set(itertools.product(MTRY, MIN_NODE_SIZE))
        assert sorted({row.fold for row in result.archive}) == [1, 2, 3, 4, 5]
        assert all(row.score >= 0 for row in result.archive)

    def test_best_is_lowest_fold_mean(self, task) -> None:
        plan = SpatialBlock(folds=5, block_size=200.0, seed=1).instantiate(task)
        lrn = _forest(mtry=to_tune(*MTRY), **{"min.node.size": to_tune(*MIN_NODE_SIZE)})

        result = tune(lrn, task, plan)

        aggregated = result.archive.aggregate()
        best = min(aggregated, key=lambda entry: entry["score"])
        assert dict(result.best_params) == best["params"]
        assert result.best_score == pytest.approx(best["score"])
        assert result.measure == "regr.rmse"

    def test_scores_match_manual_training(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        lrn = _forest(mtry=to_tune(4))

        result = tune(lrn, task, plan)

        train_rows, test_rows = plan.splits()[0]
        model = train(lrn.with_params(mtry=4), task, train_rows)
        residuals = model.estimator.predict(task.feature_matrix(test_rows)) - task.truth(test_rows)
        first_fold = next(row for row in result.archive if row.fold == 1)
        assert first_fold.score == pytest.approx(np.sqrt(np.mean(residuals**2)))

    def test_ties_go_to_first_combination(self, task_factory) -> None:
        task = task_factory(n=60, constant_target=True)
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        lrn = _forest(mtry=to_tune(2, 4, 6), **{"min.node.size": to_tune(5, 10)})

        result = tune(lrn, task, plan)

        assert result.best_score == pytest.approx(0.0)
        assert dict(result.best_params) == {"mtry": 2, "min.node.size": 5}

    def test_tuned_learner_fixes_best_params(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        result = tune(_forest(mtry=to_tune(2, 6)), task, plan)

        tuned = result.tuned_learner()

        assert not tuned.is_tunable
        assert tuned.param_values["mtry"] == result.best_params["mtry"]
        assert tuned.param_values["num_trees"] == 10

    def test_terminator_limits_combinations(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        lrn = _forest(mtry=to_tune(*MTRY), **{"min.node.size": to_tune(*MIN_NODE_SIZE)})

        result = tune(lrn, task, plan, terminator=Terminator(n_evals=4))

        assert len(result.archive) == 4 * 3
        assert len(result.archive.aggregate()) == 4

    def test_range_expanded_with_resolution(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        lrn = _forest(mtry=to_tune(lower=2, upper=10))

        result = tune(lrn, task, plan, resolution=3)

        assert sorted({row.params["mtry"] for row in result.archive}) == [2, 6, 10]

    def test_maximised_measure_picks_highest(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)
        result = tune(_forest(mtry=to_tune(2, 12)), task, plan, measure="regr.rsq")

        aggregated = result.archive.aggregate()
        assert result.best_score == pytest.approx(max(entry["score"] for entry in aggregated))

    def test_invalid_hyperparameter_raises(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)

        with pytest.raises(ModelTrainingError, match="max_features=20"):
            tune(_forest(mtry=to_tune(2, 20)), task, plan)

    def test_invalid_combination_rejected_before_fitting(self, task, monkeypatch) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)

        def no_search(*args, **kwargs):
            raise AssertionError("grid search must not start")

        monkeypatch.setattr(tuning, "GridSearchCV", no_search)

        with pytest.raises(ModelTrainingError):
            tune(_forest(mtry=to_tune(0.5, 1.5)), task, plan)

    def test_learner_without_tuning_space_rejected(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)

        with pytest.raises(ConfigurationError):
            tune(_forest(), task, plan)

    def test_unknown_measure_rejected(self, task) -> None:
        plan = CrossValidation(folds=3, seed=0).instantiate(task)

        with pytest.raises(ConfigurationError):
            tune(_forest(mtry=to_tune(2)), task, plan, measure="regr.mape")


class TestGridCombinations:
    def test_first_parameter_varies_slowest(self) -> None:
        lrn = learner("regr.ranger", mtry=to_tune(2, 4), **{"min.node.size": to_tune(5, 10)})

        assert grid_combinations(lrn) == [
            {"mtry": 2, "min.node.size": 5},
            {"mtry": 2, "min.node.size": 10},
            {"mtry": 4, "min.node.size": 5},
            {"mtry": 4, "min.node.size": 10},
        ]


def test_terminator_rejects_non_positive_budget() -> None:
    with pytest.raises(ConfigurationError):
        Terminator(n_evals=0)
