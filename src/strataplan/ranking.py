"""Within-stratum desirability ranking by diagonal Mahalanobis distance."""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np
import pandas as pd

VARIANCE_EPSILON = 1e-8


def diagonal_mahalanobis(values: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Squared Mahalanobis distance of each row to the column means.

    The covariance is diagonal (per-column sample variance). Zero or undefined
    variances are replaced by ``VARIANCE_EPSILON`` so the matrix stays
    invertible.

    Returns
    -------
    (distances, centroid, variances)
    """
    x = np.asarray(values, dtype=float)
    if x.ndim != 2:
        raise ValueError(f"Expected a 2-D array, got shape {x.shape}")
    centroid = x.mean(axis=0)
    if x.shape[0] > 1:
        variances = x.var(axis=0, ddof=1)
    else:
        variances = np.full(x.shape[1], np.nan)
    variances = np.where(np.isnan(variances) | (variances == 0), VARIANCE_EPSILON, variances)
    distances = (((x - centroid) ** 2) / variances).sum(axis=1)
    return distances, centroid, variances


def rank_stratum(ids: pd.Series, values: np.ndarray, id_col: str = "id") -> pd.DataFrame:
    """Rank units from most to least typical of their stratum.

    Ties keep the original row order. Columns: ``rank``, ``id_col``,
    ``distance``.
    """
    distances, _, _ = diagonal_mahalanobis(values)
    order = np.argsort(distances, kind="mergesort")
    ranked_ids = pd.Series(ids).reset_index(drop=True).iloc[order]
    return pd.DataFrame(
        {
            "rank": np.arange(1, len(order) + 1),
            id_col: ranked_ids.values,
            "distance": distances[order],
        }
    )


def recruitment_lists(prepared, assignment) -> Dict[int, pd.DataFrame]:
    """One ranked list per stratum, keyed by stratum label."""
    lists = {}
    matrix = prepared.matrix.to_numpy(dtype=float)
    for stratum in assignment.strata:
        mask = assignment.labels == stratum
        lists[stratum] = rank_stratum(
            prepared.ids[mask], matrix[mask], id_col=prepared.id_col
        )
    return lists
