"""Custom exception hierarchy for spatialrf.

Every workflow stage raises one of these exceptions and aborts; nothing is
retried or silently skipped.

Example:
    >>> try:
    ...     dataset, raster = load_training_data(raster_path, points_path, "response")
    ... except ProjectionMismatchError as e:
    ...     print(f"Reproject {e.vector_path} to {e.raster_crs} first")

"""

from __future__ import annotations

from typing import Optional, Sequence


class SpatialRFException(Exception):  # noqa: N818
    """Base exception for all spatialrf-specific errors."""


class ConfigurationError(SpatialRFException):
    """Invalid configuration, learner key or parameter value.

    Parameters
    ----------
    message : str
        Description of the configuration error
    config_key : str, optional
        The specific configuration key that caused the error

    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        super().__init__(message)


class DataLoadError(SpatialRFException):
    """Failed to load raster or vector data.

    Parameters
    ----------
    path : str
        Path to the file that failed to load
    reason : str
        Description of why loading failed

    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load {path}: {reason}")


class ProjectionMismatchError(SpatialRFException):
    """CRS mismatch between two spatial datasets.

    Parameters
    ----------
    raster_crs : str
        Coordinate reference system of the reference dataset
    vector_crs : str
        Coordinate reference system of the dataset that does not match
    raster_path : str, optional
        Path to the reference file
    vector_path : str, optional
        Path to the mismatching file

    """

    def __init__(
        self, raster_crs: str, vector_crs: str, raster_path: Optional[str] = None, vector_path: Optional[str] = None
    ):
        self.raster_crs = raster_crs
        self.vector_crs = vector_crs
        self.raster_path = raster_path
        self.vector_path = vector_path

        message = f"CRS mismatch: Raster ({raster_crs}) != Vector ({vector_crs})"
        if raster_path or vector_path:
            message += f"\nRaster: {raster_path}\nVector: {vector_path}"

        super().__init__(message)


class SchemaError(SpatialRFException):
    """Invalid, duplicate, reserved or missing attribute names.

    Parameters
    ----------
    reason : str
        Description of the schema violation
    names : sequence of str, optional
        The offending attribute names
    available : sequence of str, optional
        Attribute names that are available

    """

    def __init__(self, reason: str, names: Optional[Sequence[str]] = None, available: Optional[Sequence[str]] = None):
        self.reason = reason
        self.names = list(names) if names else []
        self.available = list(available) if available else []

        message = reason
        if self.names:
            message += f": {', '.join(self.names)}"
        if self.available:
            message += f"\nAvailable attributes: {', '.join(self.available)}"

        super().__init__(message)


class ResamplingError(SpatialRFException):
    """A resampling strategy cannot build a valid plan.

    Parameters
    ----------
    strategy : str
        Strategy key (e.g. "spcv_block", "spcv_knndm")
    reason : str
        Description of the failure

    """

    def __init__(self, strategy: str, reason: str):
        self.strategy = strategy
        self.reason = reason
        super().__init__(f"Resampling '{strategy}' failed: {reason}")


class ModelTrainingError(SpatialRFException):
    """Model training failed.

    Parameters
    ----------
    learner_key : str
        Learner that failed to train (e.g. "regr.ranger")
    reason : str
        Description of the failure
    original_exception : Exception, optional
        The original exception that caused the failure

    """

    def __init__(self, learner_key: str, reason: str, original_exception: Optional[Exception] = None):
        self.learner_key = learner_key
        self.reason = reason
        self.original_exception = original_exception

        message = f"Training failed for {learner_key}: {reason}"

        if original_exception:
            message += f"\nOriginal error: {type(original_exception).__name__}: {original_exception!s}"

        super().__init__(message)


class PredictionError(SpatialRFException):
    """Applying a fitted model failed.

    Raised on feature/band mismatches, or when a prediction has no ground
    truth to score against.

    Parameters
    ----------
    reason : str
        Description of the failure
    source : str, optional
        Raster path or task id the prediction was made for

    """

    def __init__(self, reason: str, source: Optional[str] = None):
        self.reason = reason
        self.source = source

        message = f"Prediction failed: {reason}"
        if source:
            message += f"\nSource: {source}"

        super().__init__(message)


class OutputError(SpatialRFException):
    """Failed to write output files.

    Parameters
    ----------
    output_path : str
        Path where output was attempted
    reason : str
        Description of the failure

    """

    def __init__(self, output_path: str, reason: str):
        self.output_path = output_path
        self.reason = reason
        super().__init__(f"Failed to write output to {output_path}: {reason}")
