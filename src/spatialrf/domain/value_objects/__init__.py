"""Immutable records exchanged between the workflow stages."""

from spatialrf.domain.value_objects.learner import Learner, TuneRange, TuneToken, TuneValues
from spatialrf.domain.value_objects.resampling_plan import ResamplingPlan
from spatialrf.domain.value_objects.results import (
    ArchiveRow,
    FittedModel,
    ResampleResult,
    SurfacePrediction,
    TabularPrediction,
    TuningArchive,
    TuningResult,
)
from spatialrf.domain.value_objects.spatial import CovariateRaster, DomainGeometry, JoinedDataset, PointLayer
from spatialrf.domain.value_objects.task import TaskRegr

__all__ = [
    "ArchiveRow",
    "CovariateRaster",
    "DomainGeometry",
    "FittedModel",
    "JoinedDataset",
    "Learner",
    "PointLayer",
    "ResampleResult",
    "ResamplingPlan",
    "SurfacePrediction",
    "TabularPrediction",
    "TaskRegr",
    "TuneRange",
    "TuneToken",
    "TuneValues",
    "TuningArchive",
    "TuningResult",
]
