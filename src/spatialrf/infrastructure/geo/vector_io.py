"""Vector and coordinate reference system helpers backed by OGR/OSR."""

from __future__ import annotations

from typing import Optional, Union

import numpy as np
from osgeo import ogr, osr

from spatialrf.domain.exceptions import DataLoadError
from spatialrf.domain.value_objects import DomainGeometry, PointLayer
from spatialrf.logging import create_logger

ogr.UseExceptions()
osr.UseExceptions()

_NUMERIC_FIELD_TYPES = (ogr.OFTInteger, ogr.OFTInteger64, ogr.OFTReal)
_POLYGON_TYPES = (ogr.wkbPolygon, ogr.wkbMultiPolygon)

log = create_logger("spatialrf.vector")


def _open_layer(path: str, layer: Optional[Union[int, str]]):
    try:
        ds = ogr.Open(str(path))
    except RuntimeError as exc:
        raise DataLoadError(str(path), str(exc)) from exc
    if ds is None:
        raise DataLoadError(str(path), "OGR could not open the file")
    lyr = ds.GetLayer(0 if layer is None else layer)
    if lyr is None:
        raise DataLoadError(str(path), f"layer {layer!r} not found")
    return ds, lyr


def _layer_crs(path: str, lyr) -> str:
    srs = lyr.GetSpatialRef()
    if srs is None:
        raise DataLoadError(str(path), "layer has no coordinate reference system")
    return srs.ExportToWkt()


def read_points(path: str, layer: Optional[Union[int, str]] = None) -> PointLayer:
    """Read point features and their numeric attributes.

    Non-numeric attribute fields are dropped with a warning. Null values become
    NaN.

    Raises
    ------
    DataLoadError
        If the file cannot be opened, has no CRS, has no features, or contains
        a feature without point geometry

    """
    ds, lyr = _open_layer(path, layer)
    crs = _layer_crs(path, lyr)

    defn = lyr.GetLayerDefn()
    numeric_fields = []
    skipped = []
    for i in range(defn.GetFieldCount()):
        field_defn = defn.GetFieldDefn(i)
        if field_defn.GetType() in _NUMERIC_FIELD_TYPES:
            numeric_fields.append(field_defn.GetName())
        else:
            skipped.append(field_defn.GetName())
    if skipped:
        log.warning(f"Ignoring non-numeric attributes in {path}: {', '.join(skipped)}")

    coords = []
    columns = {name: [] for name in numeric_fields}
    for feat in lyr:
        geom = feat.GetGeometryRef()
        if geom is None or ogr.GT_Flatten(geom.GetGeometryType()) != ogr.wkbPoint:
            raise DataLoadError(str(path), f"feature {feat.GetFID()} is not a point")
        coords.append((geom.GetX(), geom.GetY()))
        for name in numeric_fields:
            value = feat.GetField(name)
            columns[name].append(np.nan if value is None else value)
    ds = None

    if not coords:
        raise DataLoadError(str(path), "layer has no features")

    return PointLayer(
        coordinates=np.asarray(coords, dtype=np.float64),
        attributes={name: np.asarray(values, dtype=np.float64) for name, values in columns.items()},
        crs=crs,
        path=str(path),
    )


def read_domain(path: str, layer: Optional[Union[int, str]] = None) -> DomainGeometry:
    """Union the polygon features of a layer into a single domain geometry."""
    ds, lyr = _open_layer(path, layer)
    crs = _layer_crs(path, lyr)

    union = None
    for feat in lyr:
        geom = feat.GetGeometryRef()
        if geom is None:
            continue
        if ogr.GT_Flatten(geom.GetGeometryType()) not in _POLYGON_TYPES:
            raise DataLoadError(str(path), f"feature {feat.GetFID()} is not a polygon")
        union = geom.Clone() if union is None else union.Union(geom)
    ds = None

    if union is None:
        raise DataLoadError(str(path), "layer has no polygon features")
    return DomainGeometry(wkt=union.ExportToWkt(), crs=crs, path=str(path))


def _srs(wkt: str) -> osr.SpatialReference:
    srs = osr.SpatialReference()
    srs.ImportFromWkt(wkt)
    srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
    return srs


def same_crs(wkt_a: str, wkt_b: str) -> bool:
    """Whether two WKT definitions describe the same CRS."""
    if not wkt_a or not wkt_b:
        return wkt_a == wkt_b
    return bool(_srs(wkt_a).IsSame(_srs(wkt_b)))


def crs_name(wkt: str) -> str:
    """Short label for messages, e.g. ``EPSG:32632``."""
    if not wkt:
        return "undefined"
    srs = _srs(wkt)
    srs.AutoIdentifyEPSG()
    code = srs.GetAuthorityCode(None)
    if code:
        return f"{srs.GetAuthorityName(None)}:{code}"
    return srs.GetName() or "custom"


def transform_coordinates(coordinates: np.ndarray, src_wkt: str, dst_wkt: str) -> np.ndarray:
    """Reproject (n, 2) coordinates from ``src_wkt`` to ``dst_wkt``."""
    coordinates = np.asarray(coordinates, dtype=np.float64).reshape(-1, 2)
    transform = osr.CoordinateTransformation(_srs(src_wkt), _srs(dst_wkt))
    transformed = transform.TransformPoints([(float(x), float(y)) for x, y in coordinates])
    return np.asarray([(pt[0], pt[1]) for pt in transformed], dtype=np.float64)
