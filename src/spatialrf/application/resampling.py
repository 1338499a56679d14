"""Resampling strategies that split task rows into train/test iterations.

All strategies expose ``instantiate(task) -> ResamplingPlan`` and are
deterministic for a given ``seed``:

- ``Holdout``: one random train/test split by ratio
- ``CrossValidation``: shuffled k-fold
- ``SpatialBlock``: square blocks of the coordinate space dealt to folds
- ``KnnDistanceMatched``: k-means clusters merged into folds so that the
  test-to-train nearest neighbour distances resemble the
  prediction-to-train distances of the target domain

Example:
    >>> plan = SpatialBlock(folds=5, block_size=500.0, seed=1).instantiate(task)
    >>> for train_rows, test_rows in plan.splits():
    ...     ...

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple

import numpy as np

from spatialrf.constants import (
    DEFAULT_CV_FOLDS,
    DEFAULT_HOLDOUT_RATIO,
    DEFAULT_SPATIAL_FOLDS,
    KNNDM_MAX_CANDIDATES,
    KNNDM_MAX_CLUSTERS_RATIO,
    KNNDM_SAMPLE_SIZE,
)
from spatialrf.domain.exceptions import ConfigurationError, ResamplingError
from spatialrf.domain.value_objects import DomainGeometry, ResamplingPlan, TaskRegr


def _resolve_train_size(ratio: float, n_obs: int, strategy: str) -> int:
    """Convert a train ratio to an absolute count, keeping both sides non-empty."""
    if not 0.0 < ratio < 1.0:
        raise ResamplingError(strategy, f"ratio must be in (0, 1), got {ratio}")
    n_train = round(ratio * n_obs)
    if not 0 < n_train < n_obs:
        raise ResamplingError(
            strategy, f"ratio {ratio} leaves an empty train or test set for {n_obs} observations"
        )
    return int(n_train)


def _plan_from_folds(strategy: str, task: TaskRegr, folds: np.ndarray, n_folds: int, params: Dict[str, Any]):
    train_sets = []
    test_sets = []
    for fold in range(n_folds):
        test = np.flatnonzero(folds == fold)
        if test.size == 0:
            raise ResamplingError(strategy, f"fold {fold + 1} of {n_folds} is empty")
        train_sets.append(np.flatnonzero(folds != fold))
        test_sets.append(test)
    return ResamplingPlan(
        strategy=strategy,
        task_id=task.task_id,
        n_obs=task.n_obs,
        train_sets=tuple(train_sets),
        test_sets=tuple(test_sets),
        params=params,
    )


def _check_folds(strategy: str, folds: int, n_obs: int) -> None:
    if folds < 2:
        raise ResamplingError(strategy, f"folds must be >= 2, got {folds}")
    if folds > n_obs:
        raise ResamplingError(strategy, f"{folds} folds requested for {n_obs} observations")


@dataclass(frozen=True)
class Holdout:
    """Single random split; ``round(ratio * n)`` rows go to training."""

    key: ClassVar[str] = "holdout"

    ratio: float = DEFAULT_HOLDOUT_RATIO
    seed: int = 0

    def instantiate(self, task: TaskRegr) -> ResamplingPlan:
        n_train = _resolve_train_size(self.ratio, task.n_obs, self.key)
        order = np.random.RandomState(self.seed).permutation(task.n_obs)
        return ResamplingPlan(
            strategy=self.key,
            task_id=task.task_id,
            n_obs=task.n_obs,
            train_sets=(order[:n_train],),
            test_sets=(order[n_train:],),
            params={"ratio": self.ratio, "seed": self.seed},
        )


@dataclass(frozen=True)
class CrossValidation:
    """Non-spatial shuffled k-fold cross-validation."""

    key: ClassVar[str] = "cv"

    folds: int = DEFAULT_CV_FOLDS
    seed: int = 0

    def instantiate(self, task: TaskRegr) -> ResamplingPlan:
        from sklearn.model_selection import KFold

        _check_folds(self.key, self.folds, task.n_obs)
        splitter = KFold(n_splits=self.folds, shuffle=True, random_state=self.seed)
        folds = np.empty(task.n_obs, dtype=np.int64)
        for fold, (_, test) in enumerate(splitter.split(task.coordinates)):
            folds[test] = fold
        return _plan_from_folds(self.key, task, folds, self.folds, {"folds": self.folds, "seed": self.seed})


@dataclass(frozen=True)
class SpatialBlock:
    """Square spatial blocks dealt to folds round-robin.

    Blocks have side ``block_size`` in CRS units and are anchored at the
    minimum coordinates of the task. ``selection="random"`` shuffles the
    blocks before dealing, ``"systematic"`` deals them in row-major order.
    """

    key: ClassVar[str] = "spcv_block"

    folds: int = DEFAULT_SPATIAL_FOLDS
    block_size: float = 1.0
    selection: str = "random"
    seed: int = 0

    def block_ids(self, coordinates: np.ndarray) -> np.ndarray:
        """Block index of each coordinate pair."""
        coordinates = np.asarray(coordinates, dtype=np.float64)
        origin = coordinates.min(axis=0)
        cells = np.floor((coordinates - origin) / self.block_size).astype(np.int64)
        n_cols = int(cells[:, 0].max()) + 1
        return cells[:, 1] * n_cols + cells[:, 0]

    def instantiate(self, task: TaskRegr) -> ResamplingPlan:
        if self.block_size <= 0:
            raise ResamplingError(self.key, f"block size must be positive, got {self.block_size}")
        if self.selection not in ("random", "systematic"):
            raise ResamplingError(self.key, f"unknown selection '{self.selection}'")
        _check_folds(self.key, self.folds, task.n_obs)

        block_ids = self.block_ids(task.coordinates)
        blocks = np.unique(block_ids)
        if blocks.size < self.folds:
            raise ResamplingError(
                self.key,
                f"only {blocks.size} occupied blocks of size {self.block_size} for {self.folds} folds; "
                "use a smaller block size or fewer folds",
            )
        if self.selection == "random":
            blocks = np.random.RandomState(self.seed).permutation(blocks)

        block_to_fold = {block: i % self.folds for i, block in enumerate(blocks)}
        folds = np.array([block_to_fold[block] for block in block_ids], dtype=np.int64)
        params = {
            "folds": self.folds,
            "block_size": self.block_size,
            "selection": self.selection,
            "seed": self.seed,
            "n_blocks": int(blocks.size),
        }
        return _plan_from_folds(self.key, task, folds, self.folds, params)


def _nearest_distances(source: np.ndarray, reference: np.ndarray) -> np.ndarray:
    from sklearn.neighbors import NearestNeighbors

    neighbours = NearestNeighbors(n_neighbors=1).fit(reference)
    distances, _ = neighbours.kneighbors(source)
    return distances[:, 0]


def _merge_clusters(labels: np.ndarray, n_folds: int) -> np.ndarray:
    """Merge clusters into folds, largest cluster first into the smallest fold."""
    clusters, sizes = np.unique(labels, return_counts=True)
    fold_sizes = np.zeros(n_folds, dtype=np.int64)
    cluster_to_fold = {}
    for idx in np.argsort(-sizes, kind="stable"):
        fold = int(np.argmin(fold_sizes))
        cluster_to_fold[clusters[idx]] = fold
        fold_sizes[fold] += sizes[idx]
    return np.array([cluster_to_fold[label] for label in labels], dtype=np.int64)


def _fold_distances(coordinates: np.ndarray, folds: np.ndarray, n_folds: int) -> Optional[np.ndarray]:
    """Distances from each row to the nearest row of another fold."""
    distances = np.empty(coordinates.shape[0])
    for fold in range(n_folds):
        test = folds == fold
        if not test.any() or test.all():
            return None
        distances[test] = _nearest_distances(coordinates[test], coordinates[~test])
    return distances


@dataclass(frozen=True, eq=False)
class KnnDistanceMatched:
    """k-fold nearest neighbour distance matching (kNNDM).

    Exactly one of ``modeldomain`` (a polygon sampled with ``sample_size``
    points) or ``predpoints`` (an (m, 2) array) describes where the model will
    predict. Candidate cluster counts range from ``folds`` to
    ``max_clusters_ratio * n``; the candidate whose fold distances are closest
    (Wasserstein distance) to the prediction distances wins.
    """

    key: ClassVar[str] = "spcv_knndm"

    folds: int = DEFAULT_SPATIAL_FOLDS
    modeldomain: Optional[DomainGeometry] = None
    predpoints: Optional[np.ndarray] = None
    sample_size: int = KNNDM_SAMPLE_SIZE
    sampling: str = "regular"
    max_clusters_ratio: float = KNNDM_MAX_CLUSTERS_RATIO
    seed: int = 0

    def _prediction_points(self, task: TaskRegr) -> np.ndarray:
        if (self.modeldomain is None) == (self.predpoints is None):
            raise ResamplingError(self.key, "provide exactly one of modeldomain or predpoints")

        if self.predpoints is not None:
            points = np.asarray(self.predpoints, dtype=np.float64)
            if points.ndim != 2 or points.shape[1] != 2:
                raise ResamplingError(self.key, f"predpoints must have shape (m, 2), got {points.shape}")
        else:
            if self.modeldomain.crs != task.crs:
                from spatialrf.infrastructure.geo.vector_io import same_crs

                if not same_crs(self.modeldomain.crs, task.crs):
                    raise ResamplingError(self.key, "model domain CRS differs from the task CRS")
            from spatialrf.infrastructure.geo.domain_sampling import sample_domain

            try:
                points = sample_domain(self.modeldomain, self.sample_size, sampling=self.sampling, seed=self.seed)
            except ValueError as exc:
                raise ResamplingError(self.key, f"invalid model domain: {exc}") from exc

        points = points[np.all(np.isfinite(points), axis=1)]
        if points.shape[0] < 2:
            raise ResamplingError(self.key, f"need at least 2 prediction points, got {points.shape[0]}")
        return points

    def _candidate_cluster_counts(self, n_unique: int) -> List[int]:
        k_max = max(self.folds, min(int(self.max_clusters_ratio * n_unique), n_unique))
        n_candidates = min(KNNDM_MAX_CANDIDATES, k_max - self.folds + 1)
        grid = np.linspace(self.folds, k_max, n_candidates)
        return [int(k) for k in dict.fromkeys(np.round(grid).astype(int).tolist())]

    def instantiate(self, task: TaskRegr) -> ResamplingPlan:
        from scipy.stats import wasserstein_distance
        from sklearn.cluster import KMeans

        _check_folds(self.key, self.folds, task.n_obs)
        if not 0.0 < self.max_clusters_ratio <= 1.0:
            raise ResamplingError(self.key, f"max_clusters_ratio must be in (0, 1], got {self.max_clusters_ratio}")

        coordinates = np.asarray(task.coordinates)
        n_unique = np.unique(coordinates, axis=0).shape[0]
        if n_unique < self.folds:
            raise ResamplingError(self.key, f"only {n_unique} distinct locations for {self.folds} folds")

        prediction_distances = _nearest_distances(self._prediction_points(task), coordinates)

        best: Optional[Tuple[float, int, np.ndarray]] = None
        for k in self._candidate_cluster_counts(n_unique):
            labels = KMeans(n_clusters=k, n_init=10, random_state=self.seed).fit_predict(coordinates)
            folds = labels if k == self.folds else _merge_clusters(labels, self.folds)
            fold_distances = _fold_distances(coordinates, folds, self.folds)
            if fold_distances is None:
                continue
            w = float(wasserstein_distance(fold_distances, prediction_distances))
            if best is None or w < best[0]:
                best = (w, k, folds)

        if best is None:
            raise ResamplingError(self.key, "no cluster count produced non-empty folds")

        w, k, folds = best
        params = {
            "folds": self.folds,
            "seed": self.seed,
            "clusters": k,
            "wasserstein": w,
            "n_prediction_points": int(prediction_distances.size),
        }
        return _plan_from_folds(self.key, task, folds, self.folds, params)


_STRATEGIES = {cls.key: cls for cls in (Holdout, CrossValidation, SpatialBlock, KnnDistanceMatched)}
_PARAM_ALIASES = {"range": "block_size"}


def resampling(key: str, **params):
    """Create a resampling strategy by key.

    Keys: ``holdout``, ``cv``, ``spcv_block``, ``spcv_knndm``. ``range`` is
    accepted as an alias of ``block_size``.
    """
    strategy = _STRATEGIES.get(key)
    if strategy is None:
        raise ConfigurationError(
            f"Unknown resampling: {key}. Available: {', '.join(sorted(_STRATEGIES))}", config_key="resampling"
        )
    params = {_PARAM_ALIASES.get(name, name): value for name, value in params.items()}
    try:
        return strategy(**params)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid parameters for resampling {key}: {exc}", config_key="resampling") from exc
