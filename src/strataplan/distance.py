"""Gower-style mixed-type dissimilarity between units.

References:
- Gower, J.C. (1971). A general coefficient of similarity and some of its
  properties. Biometrics, 27(4), 857-871.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .prepare import PreparedTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceMatrix:
    """Square, symmetric dissimilarities with a zero diagonal, values in [0, 1]."""

    values: np.ndarray
    labels: pd.Series

    @property
    def n_units(self) -> int:
        return self.values.shape[0]

    def as_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=self.labels.values, columns=self.labels.values)


def gower_matrix(
    matrix: pd.DataFrame,
    binary_columns: Optional[Iterable[str]] = None,
) -> np.ndarray:
    """All-pairs Gower dissimilarity over a complete numeric matrix.

    Continuous columns contribute ``|x_i - x_j| / range``; binary (dummy)
    columns contribute a mismatch indicator. The distance is the mean of the
    per-column contributions. A column with zero range contributes 0.
    """
    if matrix.isna().any().any():
        raise ValueError("gower_matrix expects a complete matrix; drop missing rows first")

    binary = set(binary_columns or ())
    n, p = matrix.shape
    total = np.zeros((n, n), dtype=float)
    if p == 0:
        return total

    for name in matrix.columns:
        x = matrix[name].to_numpy(dtype=float)
        if name in binary:
            total += (x[:, None] != x[None, :]).astype(float)
            continue
        rng = x.max() - x.min()
        if rng > 0:
            total += np.abs(x[:, None] - x[None, :]) / rng

    dist = total / p
    np.fill_diagonal(dist, 0.0)
    # guard against float drift above 1
    np.clip(dist, 0.0, 1.0, out=dist)
    return dist


def gower_distance(prepared: PreparedTable) -> DistanceMatrix:
    """Dissimilarity matrix for every unit of ``prepared``."""
    values = gower_matrix(prepared.matrix, prepared.binary_columns)
    logger.debug("Computed %dx%d Gower matrix over %d columns",
                 values.shape[0], values.shape[1], prepared.matrix.shape[1])
    return DistanceMatrix(values=values, labels=prepared.ids)
