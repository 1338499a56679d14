"""End-to-end spatial regression use case.

Runs the stages in order: load and join, build the task, score a baseline on
a random holdout, build the spatial resampling plan, tune (or resample) on it,
fit the final model on all rows and predict the covariate surface.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from spatialrf.application.data_loader import load_training_data
from spatialrf.application.measures import available_measures, score
from spatialrf.application.prediction import predict
from spatialrf.application.resampling import Holdout, KnnDistanceMatched, resampling
from spatialrf.application.task_builder import build_task
from spatialrf.application.training import learner, resample, save_model, to_tune, train
from spatialrf.application.tuning import Terminator, tune
from spatialrf.constants import (
    ARCHIVE_FILE_EXTENSION,
    DEFAULT_BLOCK_SIZE,
    DEFAULT_HOLDOUT_RATIO,
    DEFAULT_LEARNER,
    DEFAULT_MEASURE,
    DEFAULT_SPATIAL_FOLDS,
    DEFAULT_TUNING_RESOLUTION,
    KNNDM_SAMPLE_SIZE,
    MODEL_FILE_EXTENSION,
)
from spatialrf.domain.exceptions import ConfigurationError, OutputError
from spatialrf.domain.value_objects import (
    CovariateRaster,
    FittedModel,
    JoinedDataset,
    ResampleResult,
    ResamplingPlan,
    SurfacePrediction,
    TaskRegr,
    TuningResult,
)
from spatialrf.logging import FeedbackProtocol, Reporter

_SPATIAL_STRATEGIES = ("spcv_block", "spcv_knndm", "cv")


@dataclass
class WorkflowConfig:
    """Settings for :func:`run_spatial_regression`.

    ``tuning`` maps parameter names to a list of candidate values or to a
    ``{"lower": ..., "upper": ...}`` range. ``block_size`` is required for
    ``spcv_block``. For ``spcv_knndm`` the prediction domain is read from
    ``domain_path`` when given, otherwise the valid raster cells are used.
    """

    raster_path: str
    points_path: str
    target: str
    output_dir: Optional[str] = None
    layer: Optional[Union[int, str]] = None
    reproject: bool = False
    features: Optional[List[str]] = None
    coords_as_features: bool = False
    learner: str = DEFAULT_LEARNER
    learner_params: Dict[str, Any] = field(default_factory=dict)
    tuning: Dict[str, Any] = field(default_factory=dict)
    measure: str = DEFAULT_MEASURE
    holdout_ratio: float = DEFAULT_HOLDOUT_RATIO
    spatial_resampling: str = "spcv_block"
    folds: int = DEFAULT_SPATIAL_FOLDS
    block_size: Optional[float] = None
    block_selection: str = "random"
    domain_path: Optional[str] = None
    resolution: int = DEFAULT_TUNING_RESOLUTION
    n_evals: Optional[int] = None
    n_jobs: Optional[int] = None
    prediction_block_size: int = DEFAULT_BLOCK_SIZE
    seed: int = 0

    def __post_init__(self) -> None:
        for key in ("raster_path", "points_path", "target"):
            if not getattr(self, key):
                raise ConfigurationError(f"'{key}' is required", config_key=key)
        if not 0.0 < self.holdout_ratio < 1.0:
            raise ConfigurationError(f"holdout_ratio must be in (0, 1), got {self.holdout_ratio}", config_key="holdout_ratio")
        if self.spatial_resampling not in _SPATIAL_STRATEGIES:
            raise ConfigurationError(
                f"spatial_resampling must be one of {', '.join(_SPATIAL_STRATEGIES)}, got '{self.spatial_resampling}'",
                config_key="spatial_resampling",
            )
        if self.spatial_resampling == "spcv_block" and (self.block_size is None or self.block_size <= 0):
            raise ConfigurationError("spcv_block needs a positive block_size", config_key="block_size")
        if self.folds < 2:
            raise ConfigurationError(f"folds must be >= 2, got {self.folds}", config_key="folds")
        if self.measure not in available_measures():
            raise ConfigurationError(f"Unknown measure: {self.measure}", config_key="measure")
        if self.resolution < 1:
            raise ConfigurationError(f"resolution must be >= 1, got {self.resolution}", config_key="resolution")
        if self.prediction_block_size < 1:
            raise ConfigurationError("prediction_block_size must be >= 1", config_key="prediction_block_size")
        if not isinstance(self.tuning, Mapping) or not isinstance(self.learner_params, Mapping):
            raise ConfigurationError("tuning and learner_params must be mappings")
        overlap = set(self.tuning) & set(self.learner_params)
        if overlap:
            raise ConfigurationError(f"Parameters both fixed and tuned: {sorted(overlap)}", config_key="tuning")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> WorkflowConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}", config_key=unknown[0])
        try:
            return cls(**values)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> WorkflowConfig:
        path = Path(path)
        try:
            values = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Cannot read configuration file {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {exc}") from exc
        if not isinstance(values, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a JSON object")
        return cls.from_dict(values)


@dataclass
class WorkflowResult:
    """Everything produced by one workflow run."""

    dataset: JoinedDataset
    task: TaskRegr
    holdout_plan: ResamplingPlan
    holdout_score: float
    spatial_plan: ResamplingPlan
    model: FittedModel
    surface: SurfacePrediction
    tuning: Optional[TuningResult] = None
    spatial_resample: Optional[ResampleResult] = None
    outputs: Dict[str, Path] = field(default_factory=dict)


def _tune_token(name: str, spec: Any):
    if isinstance(spec, Mapping):
        unknown = set(spec) - {"lower", "upper", "integer"}
        if unknown:
            raise ConfigurationError(f"Tuning range for '{name}' has unknown keys {sorted(unknown)}", config_key=name)
        return to_tune(lower=spec.get("lower"), upper=spec.get("upper"), integer=spec.get("integer"))
    if isinstance(spec, (list, tuple)) and spec:
        return to_tune(*spec)
    raise ConfigurationError(f"Tuning values for '{name}' must be a non-empty list or a lower/upper range", config_key=name)


def _prediction_cells(
    raster: CovariateRaster, size: int, seed: int, features: Optional[Sequence[str]] = None
) -> np.ndarray:
    """Centres of raster cells valid in the ``features`` bands, subsampled to ``size``."""
    xs, ys = raster.cell_centers()
    bands = None
    if features:
        bands = [raster.band_names.index(name) for name in features if name in raster.band_names]
    mask = raster.valid_mask(bands=bands)
    cells = np.column_stack([xs[mask], ys[mask]])
    if cells.shape[0] > size:
        keep = np.random.RandomState(seed).choice(cells.shape[0], size=size, replace=False)
        cells = cells[np.sort(keep)]
    return cells


def _spatial_strategy(config: WorkflowConfig, raster: CovariateRaster, reporter: Reporter):
    if config.spatial_resampling == "spcv_block":
        return resampling(
            "spcv_block",
            folds=config.folds,
            block_size=config.block_size,
            selection=config.block_selection,
            seed=config.seed,
        )
    if config.spatial_resampling == "spcv_knndm":
        if config.domain_path:
            from spatialrf.infrastructure.geo.vector_io import read_domain

            reporter.info(f"Sampling prediction domain from {config.domain_path}")
            return KnnDistanceMatched(folds=config.folds, modeldomain=read_domain(config.domain_path), seed=config.seed)
        return KnnDistanceMatched(
            folds=config.folds,
            predpoints=_prediction_cells(raster, KNNDM_SAMPLE_SIZE, config.seed, config.features),
            seed=config.seed,
        )
    return resampling("cv", folds=config.folds, seed=config.seed)


def _write_outputs(config: WorkflowConfig, result: WorkflowResult, reporter: Reporter) -> None:
    from spatialrf.infrastructure.geo.raster_io import write_surface

    output_dir = Path(config.output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputError(str(output_dir), str(exc)) from exc

    result.outputs["surface"] = write_surface(result.surface, output_dir / f"{config.target}_prediction.tif")
    result.outputs["model"] = save_model(result.model, output_dir / f"{config.target}_model{MODEL_FILE_EXTENSION}")
    if result.tuning is not None:
        result.outputs["archive"] = result.tuning.archive.to_csv(
            output_dir / f"{config.target}_tuning_archive{ARCHIVE_FILE_EXTENSION}"
        )
    for name, path in result.outputs.items():
        reporter.info(f"Wrote {name}: {path}")


def run_spatial_regression(config: WorkflowConfig, feedback: Optional[FeedbackProtocol] = None) -> WorkflowResult:
    """Run the full workflow described by ``config``.

    Raises
    ------
    SpatialRFException
        Any stage failure aborts the run with the stage's error

    """
    reporter = Reporter.from_feedback(feedback)

    dataset, raster = load_training_data(
        config.raster_path,
        config.points_path,
        config.target,
        reproject=config.reproject,
        layer=config.layer,
        reporter=reporter,
        covariates=config.features,
    )
    task = build_task(
        dataset,
        config.target,
        feature_names=config.features or dataset.covariate_names,
        coords_as_features=config.coords_as_features,
    )
    reporter.info(f"Task '{task.task_id}': {task.n_obs} rows, features {', '.join(task.model_feature_names)}")
    base = learner(config.learner, **config.learner_params)

    holdout_plan = Holdout(ratio=config.holdout_ratio, seed=config.seed).instantiate(task)
    holdout_model = train(base, task, holdout_plan.train_sets[0], reporter=reporter)
    holdout_score = score(predict(holdout_model, task, holdout_plan.test_sets[0]), config.measure)
    reporter.info(f"Holdout {config.measure}: {holdout_score:.4f}")
    reporter.progress(20)

    spatial_plan = _spatial_strategy(config, raster, reporter).instantiate(task)
    reporter.info(f"{spatial_plan.strategy} plan with {spatial_plan.iters} iterations")
    reporter.progress(30)

    tuning = None
    spatial_resample = None
    if config.tuning:
        tunable = base.with_params(**{name: _tune_token(name, spec) for name, spec in config.tuning.items()})
        tuning = tune(
            tunable,
            task,
            spatial_plan,
            measure=config.measure,
            terminator=Terminator(config.n_evals),
            resolution=config.resolution,
            n_jobs=config.n_jobs,
            reporter=reporter,
        )
        final_learner = tuning.tuned_learner()
    else:
        spatial_resample = resample(base, task, spatial_plan, measure=config.measure)
        reporter.info(f"Spatial {config.measure}: {spatial_resample.aggregate:.4f}")
        final_learner = base
    reporter.progress(60)

    model = train(final_learner, task, reporter=reporter)
    surface = predict(model, raster, block_size=config.prediction_block_size)
    reporter.progress(100)

    result = WorkflowResult(
        dataset=dataset,
        task=task,
        holdout_plan=holdout_plan,
        holdout_score=holdout_score,
        spatial_plan=spatial_plan,
        model=model,
        surface=surface,
        tuning=tuning,
        spatial_resample=spatial_resample,
    )
    if config.output_dir:
        _write_outputs(config, result, reporter)
    return result
