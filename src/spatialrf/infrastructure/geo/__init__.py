"""Raster and vector I/O backed by GDAL/OGR/OSR."""
