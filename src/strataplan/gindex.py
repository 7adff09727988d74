"""Generalizability index between a recruited sample and its population.

The index is the Bhattacharyya coefficient between the distributions of
sampling propensity scores in the sample and in the population, estimated on
shared histogram bins. Fitting the propensity model is left to the caller.

References:
- Tipton, E. (2014). How generalizable is your experiment? An index for
  comparing experimental samples and populations. Journal of Educational and
  Behavioral Statistics, 39(6), 478-501.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np


def _as_scores(values: Sequence[float], what: str) -> np.ndarray:
    x = np.asarray(values, dtype=float).ravel()
    x = x[~np.isnan(x)]
    if x.size == 0:
        raise ValueError(f"{what} scores are empty")
    if np.any((x < 0) | (x > 1)):
        raise ValueError(f"{what} scores must be probabilities in [0, 1]")
    return x


def generalizability_index(
    sample_scores: Sequence[float],
    population_scores: Sequence[float],
    bins: Optional[int] = None,
) -> float:
    """Similarity in [0, 1] of two propensity-score distributions (1 = identical).

    ``bins`` defaults to the square root of the smaller group size, at least 5.
    """
    s = _as_scores(sample_scores, "Sample")
    p = _as_scores(population_scores, "Population")
    if bins is None:
        bins = max(5, int(np.sqrt(min(s.size, p.size))))
    if bins < 1:
        raise ValueError("bins must be at least 1")

    lo = min(s.min(), p.min())
    hi = max(s.max(), p.max())
    if hi == lo:
        return 1.0
    edges = np.linspace(lo, hi, bins + 1)
    fs, _ = np.histogram(s, bins=edges)
    fp, _ = np.histogram(p, bins=edges)
    b = float(np.sum(np.sqrt((fs / fs.sum()) * (fp / fp.sum()))))
    return min(max(b, 0.0), 1.0)
