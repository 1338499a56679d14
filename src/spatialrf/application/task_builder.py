"""Build regression tasks from joined datasets."""

from __future__ import annotations

from typing import Optional, Sequence

from spatialrf.domain.exceptions import SchemaError
from spatialrf.domain.value_objects import JoinedDataset, TaskRegr


def build_task(
    dataset: JoinedDataset,
    target: str,
    task_id: Optional[str] = None,
    feature_names: Optional[Sequence[str]] = None,
    coords_as_features: bool = False,
) -> TaskRegr:
    """Wrap a joined dataset into a regression task.

    Parameters
    ----------
    dataset : JoinedDataset
        Points with response and covariate columns
    target : str
        Response column
    task_id : str, optional
        Identifier; defaults to ``target``
    feature_names : sequence of str, optional
        Feature columns. Defaults to every column except the target.
    coords_as_features : bool, default=False
        Also use the point coordinates as ``x``/``y`` features

    Raises
    ------
    SchemaError
        On duplicate or reserved names, a missing target, unknown features or
        fewer than two observations

    """
    if target not in dataset.columns:
        raise SchemaError(f"Target column '{target}' not found", available=list(dataset.column_names))

    if feature_names is None:
        features = tuple(name for name in dataset.column_names if name != target)
    else:
        features = tuple(feature_names)

    return TaskRegr(
        task_id=task_id or target,
        target=target,
        feature_names=features,
        data=dataset.columns,
        coordinates=dataset.coordinates,
        crs=dataset.crs,
        coords_as_features=coords_as_features,
    )
