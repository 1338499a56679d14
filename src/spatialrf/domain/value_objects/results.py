"""Fitted models, predictions and tuning/resampling results."""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from spatialrf.domain.exceptions import OutputError
from spatialrf.domain.value_objects.learner import Learner
from spatialrf.domain.value_objects.spatial import frozen_array


@dataclass(frozen=True, eq=False)
class FittedModel:
    """A learner's trained estimator together with what it was trained on."""

    learner: Learner
    estimator: Any
    feature_names: Tuple[str, ...]
    task_id: str
    train_row_ids: np.ndarray
    coords_as_features: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        object.__setattr__(self, "train_row_ids", frozen_array(self.train_row_ids, dtype=np.int64))

    @property
    def covariate_names(self) -> Tuple[str, ...]:
        """Feature names that must be supplied by the input (coordinates excluded)."""
        if self.coords_as_features:
            return self.feature_names[:-2]
        return self.feature_names


@dataclass(frozen=True, eq=False)
class TabularPrediction:
    """One predicted value per task row, with the row's ground truth."""

    row_ids: np.ndarray
    truth: np.ndarray
    response: np.ndarray
    task_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "row_ids", frozen_array(self.row_ids, dtype=np.int64))
        object.__setattr__(self, "truth", frozen_array(self.truth, dtype=np.float64))
        object.__setattr__(self, "response", frozen_array(self.response, dtype=np.float64))
        if not (self.row_ids.shape == self.truth.shape == self.response.shape):
            raise ValueError("row_ids, truth and response must have the same length")

    def __len__(self) -> int:
        return int(self.row_ids.size)


@dataclass(frozen=True, eq=False)
class SurfacePrediction:
    """Prediction surface on the grid of the input covariate raster.

    ``mask`` marks the cells that hold a prediction. Without it, cells equal to
    ``nodata`` or not finite count as empty.
    """

    response: np.ndarray
    geotransform: Tuple[float, ...]
    projection: str
    nodata: float
    truth: Optional[np.ndarray] = None
    source: Optional[str] = None
    mask: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "response", frozen_array(self.response, dtype=np.float64))
        if self.truth is not None:
            object.__setattr__(self, "truth", frozen_array(self.truth, dtype=np.float64))
        if self.mask is not None:
            mask = frozen_array(self.mask, dtype=bool)
            if mask.shape != self.response.shape:
                raise ValueError(f"mask shape {mask.shape} differs from response shape {self.response.shape}")
            object.__setattr__(self, "mask", mask)

    @property
    def shape(self) -> Tuple[int, int]:
        return int(self.response.shape[0]), int(self.response.shape[1])

    @property
    def n_cells(self) -> int:
        return int(self.response.size)

    @property
    def valid_mask(self) -> np.ndarray:
        if self.mask is not None:
            return self.mask
        return np.isfinite(self.response) & (self.response != self.nodata)


@dataclass(frozen=True)
class ArchiveRow:
    """Score of one hyperparameter combination on one resampling iteration."""

    params: Mapping[str, Any]
    fold: int
    score: float
    config_id: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))


@dataclass(frozen=True)
class TuningArchive:
    """Every (combination, fold, score) evaluated during tuning."""

    rows: Tuple[ArchiveRow, ...]
    param_names: Tuple[str, ...]
    measure: str

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ArchiveRow]:
        return iter(self.rows)

    def aggregate(self) -> List[Dict[str, Any]]:
        """Fold-mean score per combination, in evaluation order."""
        grouped: Dict[int, List[ArchiveRow]] = {}
        for row in self.rows:
            grouped.setdefault(row.config_id, []).append(row)
        return [
            {
                "config_id": config_id,
                "params": dict(rows[0].params),
                "score": float(np.mean([r.score for r in rows])),
                "folds": len(rows),
            }
            for config_id, rows in sorted(grouped.items())
        ]

    def to_csv(self, path: str | Path) -> Path:
        """Write one line per archive row."""
        path = Path(path)
        try:
            with path.open("w", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle)
                writer.writerow(["config_id", *self.param_names, "fold", self.measure])
                for row in self.rows:
                    writer.writerow([row.config_id, *(row.params[name] for name in self.param_names), row.fold, row.score])
        except OSError as exc:
            raise OutputError(str(path), str(exc)) from exc
        return path


@dataclass(frozen=True, eq=False)
class TuningResult:
    """Outcome of a grid search."""

    learner: Learner
    best_params: Mapping[str, Any]
    best_score: float
    measure: str
    archive: TuningArchive

    def __post_init__(self) -> None:
        object.__setattr__(self, "best_params", MappingProxyType(dict(self.best_params)))

    def tuned_learner(self) -> Learner:
        """Fresh learner with the selected hyperparameters fixed."""
        return self.learner.with_params(**self.best_params)


@dataclass(frozen=True, eq=False)
class ResampleResult:
    """Per-iteration scores of a fixed learner over a resampling plan."""

    learner: Learner
    measure: str
    scores: Tuple[float, ...]
    predictions: Tuple[TabularPrediction, ...] = field(default=())

    @property
    def aggregate(self) -> float:
        return float(np.mean(self.scores))
