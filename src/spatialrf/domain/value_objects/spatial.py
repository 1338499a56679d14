"""Spatial data records: covariate rasters, joined point datasets and domains."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np

from spatialrf.constants import RESERVED_COORDINATE_NAMES
from spatialrf.domain.exceptions import SchemaError


def frozen_array(values, dtype=None) -> np.ndarray:
    """Return a read-only copy of ``values``."""
    array = np.array(values, dtype=dtype, copy=True)
    array.setflags(write=False)
    return array


def reserved_names(names) -> list[str]:
    """Return the names colliding (case-insensitively) with coordinate axes."""
    reserved = {name.lower() for name in RESERVED_COORDINATE_NAMES}
    return [name for name in names if str(name).lower() in reserved]


@dataclass(frozen=True, eq=False)
class CovariateRaster:
    """Multi-band grid of predictor values.

    ``values`` has shape (bands, rows, cols). ``geotransform`` follows the GDAL
    convention ``(x0, dx, rx, y0, ry, dy)``.
    """

    values: np.ndarray
    band_names: Tuple[str, ...]
    geotransform: Tuple[float, ...]
    projection: str
    nodata: Tuple[Optional[float], ...] = ()
    path: Optional[str] = None

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim == 2:
            values = values[np.newaxis, :, :]
        if values.ndim != 3:
            raise ValueError(f"Raster values must be 2-D or 3-D, got shape {values.shape}")
        band_names = tuple(str(name) for name in self.band_names)
        if len(band_names) != values.shape[0]:
            raise ValueError(f"Got {len(band_names)} band names for {values.shape[0]} bands")
        if len(set(band_names)) != len(band_names):
            raise SchemaError("Band names must be unique", names=band_names)
        nodata = tuple(self.nodata) if self.nodata else (None,) * values.shape[0]
        if len(nodata) != values.shape[0]:
            raise ValueError(f"Got {len(nodata)} nodata values for {values.shape[0]} bands")
        if len(self.geotransform) != 6:
            raise ValueError("geotransform must have 6 coefficients")

        object.__setattr__(self, "values", frozen_array(values))
        object.__setattr__(self, "band_names", band_names)
        object.__setattr__(self, "nodata", nodata)
        object.__setattr__(self, "geotransform", tuple(float(v) for v in self.geotransform))

    @property
    def n_bands(self) -> int:
        return int(self.values.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        """(rows, cols)."""
        return int(self.values.shape[1]), int(self.values.shape[2])

    @property
    def n_cells(self) -> int:
        rows, cols = self.shape
        return rows * cols

    @property
    def resolution(self) -> Tuple[float, float]:
        return abs(self.geotransform[1]), abs(self.geotransform[5])

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) of the grid corners."""
        rows, cols = self.shape
        corners_x, corners_y = self.pixel_to_map(
            np.array([0, 0, rows, rows], dtype=float),
            np.array([0, cols, 0, cols], dtype=float),
        )
        return float(corners_x.min()), float(corners_y.min()), float(corners_x.max()), float(corners_y.max())

    def pixel_to_map(self, rows: np.ndarray, cols: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map pixel (row, col) positions to map coordinates."""
        x0, dx, rx, y0, ry, dy = self.geotransform
        x = x0 + cols * dx + rows * rx
        y = y0 + cols * ry + rows * dy
        return x, y

    def map_to_pixel(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return the integer (row, col) of the cells containing map coordinates."""
        x0, dx, rx, y0, ry, dy = self.geotransform
        det = dx * dy - rx * ry
        if det == 0:
            raise ValueError("Degenerate geotransform")
        col = (dy * (x - x0) - rx * (y - y0)) / det
        row = (-ry * (x - x0) + dx * (y - y0)) / det
        return np.floor(row).astype(np.int64), np.floor(col).astype(np.int64)

    def cell_centers(self, row_off: int = 0, col_off: int = 0, rows: Optional[int] = None, cols: Optional[int] = None):
        """Return map coordinates of cell centres for a window, each (rows, cols)."""
        n_rows, n_cols = self.shape
        rows = n_rows - row_off if rows is None else rows
        cols = n_cols - col_off if cols is None else cols
        rr, cc = np.meshgrid(
            np.arange(row_off, row_off + rows, dtype=float) + 0.5,
            np.arange(col_off, col_off + cols, dtype=float) + 0.5,
            indexing="ij",
        )
        return self.pixel_to_map(rr, cc)

    def _band_indices(self, bands: Optional[Sequence[int]]) -> List[int]:
        return list(range(self.n_bands)) if bands is None else [int(b) for b in bands]

    def valid_mask(
        self, window: Optional[Tuple[int, int, int, int]] = None, bands: Optional[Sequence[int]] = None
    ) -> np.ndarray:
        """Cells where every selected band is finite and differs from its nodata value.

        ``window`` is ``(row_off, col_off, rows, cols)``; ``bands`` are band
        indices, all bands when omitted.
        """
        bands = self._band_indices(bands)
        values = self.values
        if window is not None:
            row_off, col_off, rows, cols = window
            values = values[:, row_off : row_off + rows, col_off : col_off + cols]
        values = values[bands]
        mask = np.all(np.isfinite(values), axis=0)
        for i, band in enumerate(bands):
            if self.nodata[band] is not None:
                mask &= values[i] != self.nodata[band]
        return mask

    def sample(self, coordinates: np.ndarray, bands: Optional[Sequence[int]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Sample band values at point locations.

        Only the ``bands`` indices (all bands when omitted) are sampled and
        checked against nodata.

        Returns
        -------
        values : np.ndarray
            (n, len(bands)) sampled values, NaN where the point is not usable
        valid : np.ndarray
            Boolean mask of points inside the grid and on valid cells

        """
        bands = self._band_indices(bands)
        coordinates = np.asarray(coordinates, dtype=float).reshape(-1, 2)
        rows, cols = self.map_to_pixel(coordinates[:, 0], coordinates[:, 1])
        n_rows, n_cols = self.shape
        inside = (rows >= 0) & (rows < n_rows) & (cols >= 0) & (cols < n_cols)

        sampled = np.full((coordinates.shape[0], len(bands)), np.nan)
        if np.any(inside):
            sampled[inside] = self.values[:, rows[inside], cols[inside]][bands].T
        valid = inside & np.all(np.isfinite(sampled), axis=1)
        for i, band in enumerate(bands):
            if self.nodata[band] is not None:
                valid &= sampled[:, i] != self.nodata[band]
        sampled[~valid] = np.nan
        return sampled, valid


@dataclass(frozen=True, eq=False)
class PointLayer:
    """Georeferenced points with numeric attributes, as read from a vector file."""

    coordinates: np.ndarray
    attributes: Mapping[str, np.ndarray]
    crs: str
    path: Optional[str] = None

    def __post_init__(self) -> None:
        coordinates = np.asarray(self.coordinates, dtype=np.float64).reshape(-1, 2)
        attributes = {}
        for name, column in self.attributes.items():
            column = np.asarray(column)
            if column.shape != (coordinates.shape[0],):
                raise ValueError(f"Attribute '{name}' has {column.shape} values for {coordinates.shape[0]} points")
            attributes[name] = frozen_array(column)
        object.__setattr__(self, "coordinates", frozen_array(coordinates))
        object.__setattr__(self, "attributes", MappingProxyType(attributes))

    @property
    def n_points(self) -> int:
        return int(self.coordinates.shape[0])


@dataclass(frozen=True, eq=False)
class JoinedDataset:
    """Response points carrying their own attributes and sampled covariates.

    Column names are unique and never equal a reserved coordinate-axis name.
    """

    coordinates: np.ndarray
    columns: Mapping[str, np.ndarray]
    crs: str
    covariate_names: Tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        coordinates = np.asarray(self.coordinates, dtype=np.float64).reshape(-1, 2)
        clashes = reserved_names(self.columns)
        if clashes:
            raise SchemaError("Attribute names collide with reserved coordinate names", names=clashes)
        columns = {}
        for name, column in self.columns.items():
            column = np.asarray(column)
            if column.shape != (coordinates.shape[0],):
                raise ValueError(f"Column '{name}' has {column.shape} values for {coordinates.shape[0]} points")
            columns[str(name)] = frozen_array(column)
        object.__setattr__(self, "coordinates", frozen_array(coordinates))
        object.__setattr__(self, "columns", MappingProxyType(columns))
        object.__setattr__(self, "covariate_names", tuple(self.covariate_names))

    @property
    def n_obs(self) -> int:
        return int(self.coordinates.shape[0])

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self.columns)


@dataclass(frozen=True)
class DomainGeometry:
    """Polygon (or multipolygon) describing the prediction domain, as WKT."""

    wkt: str
    crs: str
    path: Optional[str] = None
