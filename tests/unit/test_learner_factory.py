"""Tests for the learner registry."""

from __future__ import annotations

import pytest
from sklearn.ensemble import ExtraTreesRegressor, GradientBoostingRegressor, RandomForestRegressor

from spatialrf.domain.exceptions import ConfigurationError
from spatialrf.infrastructure.ml.learner_factory import LearnerFactory, LearnerMetadata


class TestLearnerFactory:
    def test_builtin_learners_registered(self) -> None:
        assert LearnerFactory.get_available_learners() == ["regr.extra_trees", "regr.gbm", "regr.ranger"]

    def test_create_random_forest_with_aliases(self) -> None:
        estimator = LearnerFactory.create("regr.ranger", **{"num.trees": 50, "mtry": 3, "min.node.size": 5})

        assert isinstance(estimator, RandomForestRegressor)
        assert estimator.n_estimators == 50
        assert estimator.max_features == 3
        assert estimator.min_samples_split == 5
        assert estimator.random_state == 42

    @pytest.mark.parametrize("key", ["regr.ranger", "regr.extra_trees"])
    def test_forest_defaults_follow_ranger(self, key) -> None:
        estimator = LearnerFactory.create(key)

        assert estimator.n_estimators == 500
        assert estimator.max_features == "sqrt"
        assert estimator.min_samples_split == 5

    def test_explicit_parameters_override_defaults(self) -> None:
        estimator = LearnerFactory.create("regr.ranger", mtry=None)

        assert estimator.max_features is None
        assert estimator.min_samples_split == 5

    def test_keys_are_case_insensitive(self) -> None:
        assert isinstance(LearnerFactory.create("REGR.EXTRA_TREES"), ExtraTreesRegressor)

    def test_gbm_aliases(self) -> None:
        estimator = LearnerFactory.create("regr.gbm", **{"n.trees": 20, "shrinkage": 0.05})

        assert isinstance(estimator, GradientBoostingRegressor)
        assert estimator.n_estimators == 20
        assert estimator.learning_rate == 0.05

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown learner: regr.svm"):
            LearnerFactory.create("regr.svm")

    def test_unknown_parameter(self) -> None:
        with pytest.raises(ConfigurationError) as excinfo:
            LearnerFactory.translate_params("regr.ranger", {"splitrule": "variance"})
        assert excinfo.value.config_key == "splitrule"

    def test_alias_and_estimator_name_conflict(self) -> None:
        with pytest.raises(ConfigurationError, match="both set 'max_features'"):
            LearnerFactory.translate_params("regr.ranger", {"mtry": 2, "max_features": 3})

    def test_metadata(self) -> None:
        metadata = LearnerFactory.get_metadata("regr.ranger")

        assert isinstance(metadata, LearnerMetadata)
        assert metadata.name == "Random Forest"
        assert metadata.supports_feature_importance
        assert LearnerFactory.get_metadata("regr.unknown") is None

    def test_registry_is_rebuilt_after_clear(self) -> None:
        LearnerFactory.clear_registry()
        assert "regr.ranger" in LearnerFactory.get_available_learners()

    def test_custom_registration(self) -> None:
        LearnerFactory.register(
            "regr.small_forest",
            RandomForestRegressor,
            LearnerMetadata(key="regr.small_forest", name="Small forest", description="Few trees"),
            default_params={"n_estimators": 5},
        )
        try:
            assert LearnerFactory.create("regr.small_forest").n_estimators == 5
        finally:
            LearnerFactory.clear_registry()
        assert "regr.small_forest" not in LearnerFactory.get_available_learners()
