"""Join a covariate raster onto a response point layer."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from spatialrf.domain.exceptions import DataLoadError, ProjectionMismatchError, SchemaError
from spatialrf.domain.value_objects import CovariateRaster, JoinedDataset, PointLayer
from spatialrf.domain.value_objects.spatial import reserved_names
from spatialrf.logging import Reporter


def _crs_matches(raster_crs: str, points_crs: str) -> bool:
    if raster_crs == points_crs:
        return True
    from spatialrf.infrastructure.geo.vector_io import same_crs

    return same_crs(raster_crs, points_crs)


def join_points(
    raster: CovariateRaster,
    points: PointLayer,
    target: Optional[str] = None,
    reproject: bool = False,
    reporter: Optional[Reporter] = None,
    covariates: Optional[Sequence[str]] = None,
) -> JoinedDataset:
    """Attach the covariate values of the cell under each point.

    Parameters
    ----------
    raster : CovariateRaster
        Covariate stack
    points : PointLayer
        Response points with their attributes
    target : str, optional
        Response attribute; checked for presence when given
    reproject : bool, default=False
        Transform the points into the raster CRS instead of failing when the
        two CRS differ
    reporter : Reporter, optional
        Destination for warnings about stripped attributes and dropped points
    covariates : sequence of str, optional
        Names to keep; bands not listed are neither joined nor checked for
        nodata. Names that are not bands are ignored. All bands when omitted.

    Raises
    ------
    ProjectionMismatchError
        If the CRS differ and ``reproject`` is False
    SchemaError
        If the target is missing or a band name equals a point attribute name
    DataLoadError
        If no point falls on a valid raster cell

    """
    reporter = reporter or Reporter.from_feedback(None)

    attributes = dict(points.attributes)
    stripped = reserved_names(attributes)
    if stripped:
        reporter.warning(f"Dropping attributes that collide with coordinate names: {', '.join(stripped)}")
        for name in stripped:
            del attributes[name]

    if target is not None and target not in attributes:
        raise SchemaError(f"Target attribute '{target}' not found", available=list(attributes))

    band_names = raster.band_names
    if covariates is not None:
        wanted = set(covariates)
        band_names = tuple(name for name in raster.band_names if name in wanted)
        if not band_names:
            raise SchemaError("None of the requested covariates is a raster band", names=list(covariates))
    bands = [raster.band_names.index(name) for name in band_names]

    clashes = [name for name in band_names if name in attributes]
    if clashes:
        raise SchemaError("Raster band names duplicate point attribute names", names=clashes)
    band_clashes = reserved_names(band_names)
    if band_clashes:
        raise SchemaError("Raster band names collide with reserved coordinate names", names=band_clashes)

    coordinates = np.asarray(points.coordinates)
    if not _crs_matches(raster.projection, points.crs):
        from spatialrf.infrastructure.geo.vector_io import crs_name, transform_coordinates

        if not reproject:
            raise ProjectionMismatchError(
                crs_name(raster.projection),
                crs_name(points.crs),
                raster_path=raster.path,
                vector_path=points.path,
            )
        reporter.info(f"Reprojecting {points.n_points} points from {crs_name(points.crs)} to {crs_name(raster.projection)}")
        coordinates = transform_coordinates(coordinates, points.crs, raster.projection)

    sampled, valid = raster.sample(coordinates, bands=bands)
    if target is not None:
        valid &= np.isfinite(np.asarray(attributes[target], dtype=np.float64))
    n_dropped = int((~valid).sum())
    if n_dropped == points.n_points:
        raise DataLoadError(points.path or "points", "no point falls on a valid raster cell")
    if n_dropped:
        reporter.warning(f"Dropped {n_dropped} of {points.n_points} points outside the raster, on nodata cells or without a response")

    columns = {name: np.asarray(values)[valid] for name, values in attributes.items()}
    for i, name in enumerate(band_names):
        columns[name] = sampled[valid, i]

    return JoinedDataset(
        coordinates=coordinates[valid],
        columns=columns,
        crs=raster.projection,
        covariate_names=band_names,
    )


def load_training_data(
    raster_path: str,
    points_path: str,
    target: str,
    reproject: bool = False,
    layer: Optional[Union[int, str]] = None,
    reporter: Optional[Reporter] = None,
    covariates: Optional[Sequence[str]] = None,
) -> Tuple[JoinedDataset, CovariateRaster]:
    """Read the raster and point files and join them.

    Returns the joined dataset and the covariate raster (kept for surface
    prediction). ``covariates`` restricts the joined bands as in
    :func:`join_points`.
    """
    from spatialrf.infrastructure.geo.raster_io import open_covariate_raster
    from spatialrf.infrastructure.geo.vector_io import read_points

    reporter = reporter or Reporter.from_feedback(None)
    raster = open_covariate_raster(raster_path)
    reporter.info(f"Loaded raster {raster_path}: {raster.n_bands} bands, {raster.shape[0]}x{raster.shape[1]} cells")
    points = read_points(points_path, layer=layer)
    reporter.info(f"Loaded {points.n_points} points from {points_path}")

    dataset = join_points(
        raster, points, target=target, reproject=reproject, reporter=reporter, covariates=covariates
    )
    reporter.info(f"Joined dataset: {dataset.n_obs} observations, {len(dataset.column_names)} attributes")
    return dataset, raster
