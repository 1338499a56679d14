"""Learner configuration records and tuning tokens."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, Union

import numpy as np


@dataclass(frozen=True)
class TuneValues:
    """Enumerated candidate values for a tunable hyperparameter."""

    values: tuple

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("TuneValues needs at least one candidate")
        object.__setattr__(self, "values", tuple(self.values))

    def candidates(self, resolution: int) -> List[Any]:
        return list(self.values)


@dataclass(frozen=True)
class TuneRange:
    """Numeric range expanded to ``resolution`` evenly spaced grid points."""

    lower: float
    upper: float
    integer: bool = False

    def __post_init__(self) -> None:
        if self.lower > self.upper:
            raise ValueError(f"lower ({self.lower}) must not exceed upper ({self.upper})")

    def candidates(self, resolution: int) -> List[Any]:
        if resolution < 1:
            raise ValueError("resolution must be >= 1")
        if resolution == 1:
            grid = np.array([self.lower], dtype=float)
        else:
            grid = np.linspace(self.lower, self.upper, resolution)
        if self.integer:
            # Rounding can collapse neighbouring points on narrow ranges.
            return [int(v) for v in dict.fromkeys(np.round(grid).astype(int).tolist())]
        return [float(v) for v in grid]


TuneToken = Union[TuneValues, TuneRange]


@dataclass(frozen=True, eq=False)
class Learner:
    """A registered algorithm plus fixed and tunable hyperparameters.

    Learners are never mutated: :meth:`with_params` returns a new instance.
    """

    key: str
    param_values: Mapping[str, Any]
    param_space: Mapping[str, TuneToken]

    def __post_init__(self) -> None:
        overlap = set(self.param_values) & set(self.param_space)
        if overlap:
            raise ValueError(f"Parameters both fixed and tunable: {sorted(overlap)}")
        object.__setattr__(self, "param_values", MappingProxyType(dict(self.param_values)))
        object.__setattr__(self, "param_space", MappingProxyType(dict(self.param_space)))

    @property
    def is_tunable(self) -> bool:
        return bool(self.param_space)

    def with_params(self, **params: Any) -> Learner:
        """Return a copy with ``params`` fixed; tuning tokens stay tokens."""
        values = dict(self.param_values)
        space = dict(self.param_space)
        for name, value in params.items():
            if isinstance(value, (TuneValues, TuneRange)):
                values.pop(name, None)
                space[name] = value
            else:
                space.pop(name, None)
                values[name] = value
        return Learner(key=self.key, param_values=values, param_space=space)

    def __reduce__(self):
        # mappingproxy objects cannot be pickled
        return (Learner, (self.key, dict(self.param_values), dict(self.param_space)))

    def __repr__(self) -> str:
        return f"Learner(key={self.key!r}, param_values={dict(self.param_values)!r}, tunable={sorted(self.param_space)!r})"
