"""Registry of regression learners backed by scikit-learn estimators.

Learners are looked up by key (e.g. ``"regr.ranger"``) instead of long
if/elif chains. Each entry carries the estimator class, metadata, default
parameters and a table of parameter aliases so that ranger-style names such
as ``mtry`` or ``min.node.size`` resolve to the estimator's own arguments.

Example:
    >>> LearnerFactory.create("regr.ranger", **{"num.trees": 200, "mtry": 3})
    RandomForestRegressor(max_features=3, min_samples_split=5, n_estimators=200,
                          random_state=42)

"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type

from spatialrf.constants import RANDOM_STATE
from spatialrf.domain.exceptions import ConfigurationError


@dataclass
class LearnerMetadata:
    """Metadata for a registered learner.

    Attributes
    ----------
    key : str
        Registry key (e.g. "regr.ranger")
    name : str
        Full name (e.g. "Random Forest")
    description : str
        Human-readable description
    param_aliases : dict
        Alternative parameter names mapped to estimator argument names
    supports_feature_importance : bool
        Whether the fitted estimator exposes ``feature_importances_``

    """

    key: str
    name: str
    description: str
    param_aliases: Dict[str, str] = field(default_factory=dict)
    supports_feature_importance: bool = False


_FOREST_ALIASES = {
    "num.trees": "n_estimators",
    "num_trees": "n_estimators",
    "mtry": "max_features",
    "min.node.size": "min_samples_split",
    "min_node_size": "min_samples_split",
    "max.depth": "max_depth",
    "sample.fraction": "max_samples",
    "sample_fraction": "max_samples",
    "num.threads": "n_jobs",
    "num_threads": "n_jobs",
    "seed": "random_state",
}

_GBM_ALIASES = {
    "n.trees": "n_estimators",
    "n_trees": "n_estimators",
    "interaction.depth": "max_depth",
    "interaction_depth": "max_depth",
    "shrinkage": "learning_rate",
    "n.minobsinnode": "min_samples_leaf",
    "n_minobsinnode": "min_samples_leaf",
    "bag.fraction": "subsample",
    "bag_fraction": "subsample",
    "seed": "random_state",
}


# ranger regression defaults: mtry = floor(sqrt(p)), min.node.size = 5
_RANGER_DEFAULTS = {
    "n_estimators": 500,
    "max_features": "sqrt",
    "min_samples_split": 5,
    "random_state": RANDOM_STATE,
}


class LearnerFactory:
    """Factory for regression estimators."""

    _registry: ClassVar[Dict[str, Dict[str, Any]]] = {}
    _initialized: ClassVar[bool] = False

    @classmethod
    def _ensure_initialized(cls) -> None:
        if not cls._initialized:
            cls._initialized = True
            initialize_factory()

    @classmethod
    def register(
        cls,
        key: str,
        estimator_class: Type,
        metadata: LearnerMetadata,
        default_params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Register an estimator class under ``key``."""
        cls._registry[key.lower()] = {
            "class": estimator_class,
            "metadata": metadata,
            "default_params": default_params or {},
        }

    @classmethod
    def _entry(cls, key: str) -> Dict[str, Any]:
        cls._ensure_initialized()
        entry = cls._registry.get(key.lower())
        if entry is None:
            available = ", ".join(cls.get_available_learners())
            raise ConfigurationError(f"Unknown learner: {key}. Available learners: {available}", config_key="learner")
        return entry

    @classmethod
    def translate_params(cls, key: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Map user-facing parameter names to estimator argument names.

        Raises
        ------
        ConfigurationError
            If a name is unknown or two names resolve to the same argument

        """
        entry = cls._entry(key)
        aliases = entry["metadata"].param_aliases
        valid = set(entry["class"]().get_params(deep=False))

        translated: Dict[str, Any] = {}
        origin: Dict[str, str] = {}
        for name, value in params.items():
            target = aliases.get(name, name)
            if target not in valid:
                raise ConfigurationError(f"Learner {key} has no parameter '{name}'", config_key=name)
            if target in translated:
                raise ConfigurationError(
                    f"Parameters '{origin[target]}' and '{name}' both set '{target}' for learner {key}",
                    config_key=name,
                )
            translated[target] = value
            origin[target] = name
        return translated

    @classmethod
    def create(cls, key: str, **params) -> Any:
        """Create an estimator instance.

        Parameters
        ----------
        key : str
            Learner key (e.g. "regr.ranger")
        **params
            Hyperparameters, by estimator name or alias

        Raises
        ------
        ConfigurationError
            If the learner key or a parameter name is unknown

        """
        entry = cls._entry(key)
        final_params = {**entry["default_params"], **cls.translate_params(key, params)}
        return entry["class"](**final_params)

    @classmethod
    def get_available_learners(cls) -> List[str]:
        cls._ensure_initialized()
        return sorted(cls._registry.keys())

    @classmethod
    def get_metadata(cls, key: str) -> Optional[LearnerMetadata]:
        cls._ensure_initialized()
        entry = cls._registry.get(key.lower())
        return None if entry is None else entry["metadata"]

    @classmethod
    def clear_registry(cls) -> None:
        """Clear the registry; built-in learners are registered again on next use."""
        cls._registry.clear()
        cls._initialized = False


def initialize_factory() -> None:
    """Register the built-in regression learners."""
    from sklearn.ensemble import ExtraTreesRegressor, GradientBoostingRegressor, RandomForestRegressor

    LearnerFactory.register(
        key="regr.ranger",
        estimator_class=RandomForestRegressor,
        metadata=LearnerMetadata(
            key="regr.ranger",
            name="Random Forest",
            description="Bagged regression trees with random feature subsets",
            param_aliases=_FOREST_ALIASES,
            supports_feature_importance=True,
        ),
        default_params=_RANGER_DEFAULTS,
    )
    LearnerFactory.register(
        key="regr.extra_trees",
        estimator_class=ExtraTreesRegressor,
        metadata=LearnerMetadata(
            key="regr.extra_trees",
            name="Extra Trees",
            description="Extremely randomized regression trees",
            param_aliases=_FOREST_ALIASES,
            supports_feature_importance=True,
        ),
        default_params=_RANGER_DEFAULTS,
    )
    LearnerFactory.register(
        key="regr.gbm",
        estimator_class=GradientBoostingRegressor,
        metadata=LearnerMetadata(
            key="regr.gbm",
            name="Gradient Boosting",
            description="Stage-wise boosted regression trees",
            param_aliases=_GBM_ALIASES,
            supports_feature_importance=True,
        ),
        default_params={"random_state": RANDOM_STATE},
    )
