"""Read covariate rasters and write prediction surfaces with GDAL."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from osgeo import gdal

from spatialrf.domain.exceptions import DataLoadError, OutputError
from spatialrf.domain.value_objects import CovariateRaster, SurfacePrediction

gdal.UseExceptions()


def _open(path: str) -> gdal.Dataset:
    try:
        dataset = gdal.Open(str(path), gdal.GA_ReadOnly)
    except RuntimeError as exc:
        raise DataLoadError(str(path), str(exc)) from exc
    if dataset is None:
        raise DataLoadError(str(path), "GDAL could not open the file")
    return dataset


def open_covariate_raster(path: str, band_names: Optional[Sequence[str]] = None) -> CovariateRaster:
    """Load every band of a raster into memory.

    Parameters
    ----------
    path : str
        Raster file readable by GDAL
    band_names : sequence of str, optional
        Names overriding band descriptions. Bands without a description are
        named ``b1``, ``b2``...

    Raises
    ------
    DataLoadError
        If the file cannot be opened or has no coordinate reference system

    """
    dataset = _open(path)
    n_bands = dataset.RasterCount
    if n_bands == 0:
        raise DataLoadError(str(path), "raster has no bands")
    projection = dataset.GetProjection()
    if not projection:
        raise DataLoadError(str(path), "raster has no coordinate reference system")
    if band_names is not None and len(band_names) != n_bands:
        raise DataLoadError(str(path), f"{len(band_names)} band names given for {n_bands} bands")

    values = np.empty((n_bands, dataset.RasterYSize, dataset.RasterXSize), dtype=np.float64)
    names = []
    nodata = []
    for i in range(n_bands):
        band = dataset.GetRasterBand(i + 1)
        values[i] = band.ReadAsArray()
        names.append(band_names[i] if band_names is not None else (band.GetDescription() or f"b{i + 1}"))
        nodata.append(band.GetNoDataValue())

    geotransform = dataset.GetGeoTransform()
    dataset = None
    return CovariateRaster(
        values=values,
        band_names=tuple(names),
        geotransform=geotransform,
        projection=projection,
        nodata=tuple(nodata),
        path=str(path),
    )


def _create(path: str, cols: int, rows: int, bands: int, geotransform, projection) -> gdal.Dataset:
    driver = gdal.GetDriverByName("GTiff")
    if driver is None:
        raise OutputError(str(path), "GTiff driver unavailable")
    try:
        dst_ds = driver.Create(str(path), cols, rows, bands, gdal.GDT_Float64)
    except RuntimeError as exc:
        raise OutputError(str(path), str(exc)) from exc
    if dst_ds is None:
        raise OutputError(str(path), "GDAL could not create the file")
    dst_ds.SetGeoTransform(tuple(geotransform))
    dst_ds.SetProjection(projection)
    return dst_ds


def write_covariate_raster(raster: CovariateRaster, path: str | Path) -> Path:
    """Write a multi-band covariate raster as GeoTIFF, keeping band names."""
    rows, cols = raster.shape
    dst_ds = _create(str(path), cols, rows, raster.n_bands, raster.geotransform, raster.projection)
    for i in range(raster.n_bands):
        out = dst_ds.GetRasterBand(i + 1)
        out.SetDescription(raster.band_names[i])
        if raster.nodata[i] is not None:
            out.SetNoDataValue(float(raster.nodata[i]))
        out.WriteArray(np.asarray(raster.values[i]))
        out.FlushCache()
    dst_ds = None
    return Path(path)


def write_surface(prediction: SurfacePrediction, path: str | Path, band_name: str = "response") -> Path:
    """Write a prediction surface as a single-band GeoTIFF."""
    rows, cols = prediction.shape
    dst_ds = _create(str(path), cols, rows, 1, prediction.geotransform, prediction.projection)
    out = dst_ds.GetRasterBand(1)
    out.SetDescription(band_name)
    out.SetNoDataValue(float(prediction.nodata))
    out.WriteArray(np.asarray(prediction.response))
    out.FlushCache()
    dst_ds = None
    return Path(path)
