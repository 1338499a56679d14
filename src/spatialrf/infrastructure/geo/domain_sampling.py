"""Sample prediction locations inside a polygon domain."""

from __future__ import annotations

import math

import numpy as np
from osgeo import ogr

from spatialrf.constants import KNNDM_MAX_SAMPLING_ROUNDS
from spatialrf.domain.value_objects import DomainGeometry

ogr.UseExceptions()

_POLYGON_TYPES = (ogr.wkbPolygon, ogr.wkbMultiPolygon)


def domain_geometry(domain: DomainGeometry) -> ogr.Geometry:
    """Parse and validate the domain polygon.

    Raises
    ------
    ValueError
        If the WKT does not describe a non-empty, valid polygon with area

    """
    try:
        geom = ogr.CreateGeometryFromWkt(domain.wkt)
    except RuntimeError as exc:
        raise ValueError(f"domain WKT cannot be parsed: {exc}") from exc
    if geom is None:
        raise ValueError("domain WKT cannot be parsed")
    if ogr.GT_Flatten(geom.GetGeometryType()) not in _POLYGON_TYPES:
        raise ValueError(f"domain must be a polygon, got {geom.GetGeometryName()}")
    if geom.IsEmpty():
        raise ValueError("domain polygon is empty")
    if not geom.IsValid():
        raise ValueError("domain polygon is not valid (self-intersecting or badly nested rings)")
    if geom.GetArea() <= 0:
        raise ValueError("domain polygon has no area")
    return geom


def _inside(geom: ogr.Geometry, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    keep = np.zeros(xs.size, dtype=bool)
    point = ogr.Geometry(ogr.wkbPoint)
    for i, (x, y) in enumerate(zip(xs, ys)):
        point.SetPoint_2D(0, float(x), float(y))
        keep[i] = geom.Contains(point)
    return keep


def sample_domain(domain: DomainGeometry, size: int, sampling: str = "regular", seed: int = 0) -> np.ndarray:
    """Return up to ``size`` points inside the domain, shape (n, 2).

    ``regular`` lays a square grid sized from the polygon area; ``random``
    draws uniform points by rejection from the bounding box.
    """
    if size < 1:
        raise ValueError("size must be >= 1")
    geom = domain_geometry(domain)
    min_x, max_x, min_y, max_y = geom.GetEnvelope()

    if sampling == "regular":
        spacing = math.sqrt(geom.GetArea() / size)
        xs = np.arange(min_x + spacing / 2, max_x, spacing)
        ys = np.arange(min_y + spacing / 2, max_y, spacing)
        grid_x, grid_y = np.meshgrid(xs, ys)
        grid_x = grid_x.ravel()
        grid_y = grid_y.ravel()
        keep = _inside(geom, grid_x, grid_y)
        return np.column_stack([grid_x[keep], grid_y[keep]])[:size]

    if sampling == "random":
        rng = np.random.RandomState(seed)
        accepted = []
        n_found = 0
        for _ in range(KNNDM_MAX_SAMPLING_ROUNDS):
            xs = rng.uniform(min_x, max_x, size)
            ys = rng.uniform(min_y, max_y, size)
            keep = _inside(geom, xs, ys)
            accepted.append(np.column_stack([xs[keep], ys[keep]]))
            n_found += int(keep.sum())
            if n_found >= size:
                break
        return np.concatenate(accepted)[:size]

    raise ValueError(f"Unknown sampling '{sampling}', expected 'regular' or 'random'")
