"""Instantiated train/test partitions of a task."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from spatialrf.domain.exceptions import ResamplingError
from spatialrf.domain.value_objects.spatial import frozen_array


@dataclass(frozen=True, eq=False)
class ResamplingPlan:
    """Train/test row ids for every iteration of a resampling strategy."""

    strategy: str
    task_id: str
    n_obs: int
    train_sets: Tuple[np.ndarray, ...]
    test_sets: Tuple[np.ndarray, ...]
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.train_sets) != len(self.test_sets):
            raise ResamplingError(self.strategy, "train and test sets differ in number")
        if not self.train_sets:
            raise ResamplingError(self.strategy, "plan has no iterations")

        train_sets = []
        test_sets = []
        for i, (train, test) in enumerate(zip(self.train_sets, self.test_sets), start=1):
            train = np.unique(np.asarray(train, dtype=np.int64))
            test = np.unique(np.asarray(test, dtype=np.int64))
            if train.size == 0 or test.size == 0:
                raise ResamplingError(self.strategy, f"iteration {i} has an empty train or test set")
            if np.intersect1d(train, test).size:
                raise ResamplingError(self.strategy, f"iteration {i} has overlapping train and test rows")
            for rows in (train, test):
                if rows.min() < 0 or rows.max() >= self.n_obs:
                    raise ResamplingError(self.strategy, f"iteration {i} references rows outside the task")
            train_sets.append(frozen_array(train))
            test_sets.append(frozen_array(test))

        object.__setattr__(self, "train_sets", tuple(train_sets))
        object.__setattr__(self, "test_sets", tuple(test_sets))
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def iters(self) -> int:
        return len(self.train_sets)

    def splits(self) -> List[Tuple[np.ndarray, np.ndarray]]:
        """(train, test) pairs, usable as a scikit-learn ``cv`` argument."""
        return list(zip(self.train_sets, self.test_sets))

    def fold_ids(self) -> np.ndarray:
        """Iteration in which each row is tested, -1 for rows never tested."""
        folds = np.full(self.n_obs, -1, dtype=np.int64)
        for i, test in enumerate(self.test_sets):
            folds[test] = i
        return folds

    def fold_of(self, row: int) -> Optional[int]:
        """Iteration (0-based) in which ``row`` is tested, None if it never is."""
        if not 0 <= row < self.n_obs:
            raise IndexError(f"row {row} outside task with {self.n_obs} rows")
        for i, test in enumerate(self.test_sets):
            if np.any(test == row):
                return i
        return None
