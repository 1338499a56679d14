"""Regression task record."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np

from spatialrf.constants import RESERVED_COORDINATE_NAMES
from spatialrf.domain.exceptions import SchemaError
from spatialrf.domain.value_objects.spatial import frozen_array, reserved_names


@dataclass(frozen=True, eq=False)
class TaskRegr:
    """Dataset, target column and spatial metadata for a regression problem.

    Row ids are the positions ``0..n_obs-1`` of the observations. When
    ``coords_as_features`` is set the coordinates are appended to the feature
    matrix as ``x`` and ``y``.
    """

    task_id: str
    target: str
    feature_names: Tuple[str, ...]
    data: Mapping[str, np.ndarray]
    coordinates: np.ndarray
    crs: str
    coords_as_features: bool = False

    def __post_init__(self) -> None:
        names = list(self.data)
        feature_names = tuple(self.feature_names)

        duplicates = sorted({name for name in feature_names if feature_names.count(name) > 1})
        if duplicates:
            raise SchemaError("Duplicate feature names", names=duplicates)
        clashes = reserved_names(names)
        if clashes:
            raise SchemaError("Attribute names collide with reserved coordinate names", names=clashes)
        if self.target not in self.data:
            raise SchemaError(f"Target column '{self.target}' not found", available=names)
        if self.target in feature_names:
            raise SchemaError("Target cannot also be a feature", names=[self.target])
        missing = [name for name in feature_names if name not in self.data]
        if missing:
            raise SchemaError("Unknown feature names", names=missing, available=names)
        if not feature_names and not self.coords_as_features:
            raise SchemaError("Task needs at least one feature")

        coordinates = np.asarray(self.coordinates, dtype=np.float64).reshape(-1, 2)
        n_obs = coordinates.shape[0]
        if n_obs < 2:
            raise SchemaError(f"Task needs at least two observations, got {n_obs}")

        data = {}
        for name in names:
            column = np.asarray(self.data[name])
            if column.shape != (n_obs,):
                raise SchemaError(f"Column '{name}' does not have {n_obs} values")
            data[name] = frozen_array(column)
        if not np.issubdtype(data[self.target].dtype, np.number):
            raise SchemaError(f"Target column '{self.target}' must be numeric")

        object.__setattr__(self, "feature_names", feature_names)
        object.__setattr__(self, "data", MappingProxyType(data))
        object.__setattr__(self, "coordinates", frozen_array(coordinates))

    @property
    def n_obs(self) -> int:
        return int(self.coordinates.shape[0])

    @property
    def row_ids(self) -> np.ndarray:
        return np.arange(self.n_obs)

    @property
    def model_feature_names(self) -> Tuple[str, ...]:
        """Names of the columns of :meth:`feature_matrix`."""
        if self.coords_as_features:
            return self.feature_names + tuple(RESERVED_COORDINATE_NAMES)
        return self.feature_names

    def _rows(self, row_ids: Optional[Sequence[int]]) -> np.ndarray:
        if row_ids is None:
            return self.row_ids
        rows = np.asarray(row_ids, dtype=np.int64).reshape(-1)
        if rows.size and (rows.min() < 0 or rows.max() >= self.n_obs):
            raise IndexError(f"Row ids must be in [0, {self.n_obs - 1}]")
        return rows

    def truth(self, row_ids: Optional[Sequence[int]] = None) -> np.ndarray:
        return np.asarray(self.data[self.target][self._rows(row_ids)], dtype=np.float64)

    def feature_matrix(self, row_ids: Optional[Sequence[int]] = None) -> np.ndarray:
        rows = self._rows(row_ids)
        columns = [np.asarray(self.data[name][rows], dtype=np.float64) for name in self.feature_names]
        if self.coords_as_features:
            columns.extend([self.coordinates[rows, 0], self.coordinates[rows, 1]])
        return np.column_stack(columns) if columns else np.empty((rows.size, 0))
