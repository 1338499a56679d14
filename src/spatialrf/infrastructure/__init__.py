"""Adapters for GDAL/OGR and scikit-learn."""
