"""Stratification of a population by clustering its Gower distance matrix.

Each unit is represented by its row of the distance matrix (its distances to
every other unit) and the rows are clustered with k-means (k-means++ seeding,
Lloyd iterations, Euclidean distance).

References:
- Tipton, E. (2014). Stratified sampling using cluster analysis: A sample
  selection strategy for improved generalizations from experiments.
  Evaluation Review, 37(2), 109-139.
- Arthur, D. & Vassilvitskii, S. (2007). k-means++: The advantages of careful
  seeding. SODA '07.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist

from .config import ConfigurationError, StratifyConfig, validate_config, validate_n_strata
from .distance import DistanceMatrix, gower_distance
from .prepare import PreparedTable, prepare_table
from .profile import ProfileTables, profile_strata
from .progress import (
    CONVERGED,
    DISTANCE_COMPUTED,
    ITERATION,
    VARIANCE_EXPLAINED,
    EventSink,
    emit,
)
from .ranking import recruitment_lists

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KMeansSolution:
    labels: np.ndarray  # 1..k
    centroids: np.ndarray
    wcss_history: List[float]
    n_iter: int
    converged: bool
    total_ss: float
    within_ss: float

    @property
    def between_ss(self) -> float:
        return self.total_ss - self.within_ss

    @property
    def between_over_total(self) -> float:
        """Share of total variation explained by the clusters, in [0, 1]."""
        if self.total_ss <= 0:
            return 0.0
        return float(min(max(self.between_ss / self.total_ss, 0.0), 1.0))


@dataclass(frozen=True)
class StratumAssignment:
    """Unit -> stratum partition; labels run 1..n_strata."""

    ids: pd.Series
    labels: np.ndarray
    n_strata: int

    @property
    def strata(self) -> List[int]:
        return list(range(1, self.n_strata + 1))

    def members(self, stratum: int) -> pd.Series:
        return self.ids[self.labels == stratum].reset_index(drop=True)

    def sizes(self) -> pd.Series:
        counts = pd.Series(self.labels).value_counts()
        return counts.reindex(self.strata, fill_value=0).astype(int)

    def to_frame(self, id_col: str = "id") -> pd.DataFrame:
        return pd.DataFrame({id_col: self.ids.values, "stratum": self.labels})


@dataclass(frozen=True)
class StratificationResult:
    config: StratifyConfig
    prepared: PreparedTable
    distance: DistanceMatrix
    assignment: StratumAssignment
    solution: KMeansSolution
    profile: ProfileTables
    recruitment_lists: Dict[int, pd.DataFrame]
    warnings: List[str] = field(default_factory=list)

    @property
    def n_strata(self) -> int:
        return self.assignment.n_strata

    @property
    def variance_explained(self) -> float:
        return self.solution.between_over_total

    @property
    def id_col(self) -> str:
        return self.prepared.id_col

    @property
    def variables(self) -> List[str]:
        return list(self.config.variables)

    @property
    def population_size(self) -> int:
        return self.prepared.n_units

    @property
    def units(self) -> pd.DataFrame:
        """Ids, numeric variables and stratum membership, one row per unit."""
        out = self.prepared.to_frame()
        out["stratum"] = self.assignment.labels
        return out


def _kmeans_pp(x: np.ndarray, k: int, rng: np.random.RandomState) -> np.ndarray:
    n = x.shape[0]
    chosen = [rng.randint(n)]
    d2 = cdist(x, x[chosen], metric="sqeuclidean").ravel()
    for _ in range(k - 1):
        total = d2.sum()
        if total > 0:
            nxt = rng.choice(n, p=d2 / total)
        else:
            # every point coincides with a centre
            rest = np.setdiff1d(np.arange(n), chosen)
            nxt = rng.choice(rest)
        chosen.append(int(nxt))
        d2 = np.minimum(d2, cdist(x, x[[nxt]], metric="sqeuclidean").ravel())
    return x[chosen].copy()


def _fill_empty(labels: np.ndarray, d2: np.ndarray, k: int) -> np.ndarray:
    """Move the worst-fitting point of a multi-member cluster into each empty one."""
    labels = labels.copy()
    for c in range(k):
        if np.any(labels == c):
            continue
        counts = np.bincount(labels, minlength=k)
        own = d2[np.arange(len(labels)), labels]
        own = np.where(counts[labels] > 1, own, -np.inf)
        labels[int(np.argmax(own))] = c
    return labels


def _relabel(labels: np.ndarray, k: int) -> np.ndarray:
    """Renumber clusters 1..k in order of first appearance."""
    mapping = {}
    for lab in labels:
        if lab not in mapping:
            mapping[lab] = len(mapping) + 1
    return np.array([mapping[lab] for lab in labels], dtype=int)


def kmeans_distance_rows(
    distance: DistanceMatrix,
    n_strata: int,
    *,
    max_iter: int = 100,
    random_state: int = 19,
    on_event: Optional[EventSink] = None,
) -> KMeansSolution:
    """Cluster the rows of ``distance`` into ``n_strata`` groups.

    Stops when assignments no longer change or after ``max_iter`` iterations;
    hitting the cap is not an error. An ``iteration`` event carries the
    within-cluster sum of squares after each iteration, which never increases.
    """
    x = np.asarray(distance.values, dtype=float)
    n = x.shape[0]
    k = int(n_strata)
    if not 1 < k < n:
        raise ValueError(f"n_strata must be in (1, {n}), got {k}")

    rng = np.random.RandomState(random_state)
    centroids = _kmeans_pp(x, k, rng)
    labels = np.full(n, -1, dtype=int)
    history: List[float] = []
    converged = False
    n_iter = 0

    for it in range(1, max_iter + 1):
        n_iter = it
        d2 = cdist(x, centroids, metric="sqeuclidean")
        new_labels = _fill_empty(np.argmin(d2, axis=1), d2, k)
        changed = int(np.sum(new_labels != labels))
        labels = new_labels

        centroids = np.vstack([x[labels == c].mean(axis=0) for c in range(k)])
        wcss = float(((x - centroids[labels]) ** 2).sum())
        history.append(wcss)
        emit(on_event, ITERATION, f"iteration {it}: within-cluster SS = {wcss:.6f}",
             iteration=it, wcss=wcss, changed=changed)

        if changed == 0:
            converged = True
            break

    if converged:
        emit(on_event, CONVERGED, f"converged after {n_iter} iterations",
             iterations=n_iter, converged=True)
    else:
        logger.warning("k-means stopped at the iteration cap (%d) before converging", max_iter)
        emit(on_event, CONVERGED, f"stopped at iteration cap {max_iter}",
             iterations=n_iter, converged=False)

    total_ss = float(((x - x.mean(axis=0)) ** 2).sum())
    relabeled = _relabel(labels, k)
    order = [int(labels[np.argmax(relabeled == j)]) for j in range(1, k + 1)]

    return KMeansSolution(
        labels=relabeled,
        centroids=centroids[order],
        wcss_history=history,
        n_iter=n_iter,
        converged=converged,
        total_ss=total_ss,
        within_ss=history[-1],
    )


def stratify(
    df: pd.DataFrame,
    config: StratifyConfig,
    *,
    on_event: Optional[EventSink] = None,
    prepared: Optional[PreparedTable] = None,
    distance: Optional[DistanceMatrix] = None,
) -> StratificationResult:
    """Run preparation, distance, clustering, profiling and ranking.

    ``prepared`` and ``distance`` from an earlier run with the same variable
    set can be passed in to skip recomputation when only ``n_strata`` changes.
    Either can be given alone; a ``distance`` whose labels do not match the
    prepared unit ids raises ``ValueError`` and a ``prepared`` built from
    other variables raises ``ConfigurationError``.
    """
    config = validate_config(df, config)

    if prepared is None:
        prepared = prepare_table(df, config)
    else:
        _check_prepared(prepared, config)
    n_strata = validate_n_strata(config.n_strata, prepared.n_units)

    if distance is None:
        distance = gower_distance(prepared)
        emit(on_event, DISTANCE_COMPUTED, "Calculated distance matrix.",
             n_units=distance.n_units)
    else:
        _check_distance(distance, prepared)

    return _finish(config, prepared, distance, n_strata, on_event)


def _check_prepared(prepared: PreparedTable, config: StratifyConfig) -> None:
    names = [v.name for v in prepared.variables]
    if names != list(config.variables):
        raise ConfigurationError(
            f"Prepared table was built from variables {names}, "
            f"not {list(config.variables)}"
        )
    forced = [v.name for v in prepared.variables if v.is_categorical]
    missing = [c for c in config.categorical if c not in forced]
    if missing or prepared.id_col != config.id_col:
        raise ConfigurationError(
            "Prepared table does not match the run configuration "
            f"(id column '{prepared.id_col}', categorical {forced})"
        )


def _check_distance(distance: DistanceMatrix, prepared: PreparedTable) -> None:
    if distance.n_units != prepared.n_units:
        raise ValueError(
            f"Distance matrix covers {distance.n_units} units but the prepared "
            f"table has {prepared.n_units}"
        )
    if not np.array_equal(np.asarray(distance.labels), np.asarray(prepared.ids)):
        raise ValueError("Distance matrix labels do not match the prepared unit ids")


def restratify(
    result: StratificationResult,
    n_strata: int,
    *,
    on_event: Optional[EventSink] = None,
) -> StratificationResult:
    """Repeat the clustering with another stratum count, reusing the distances."""
    n_strata = validate_n_strata(n_strata, result.prepared.n_units)
    config = result.config.with_strata(n_strata)
    return _finish(config, result.prepared, result.distance, n_strata, on_event)


def _finish(
    config: StratifyConfig,
    prepared: PreparedTable,
    distance: DistanceMatrix,
    n_strata: int,
    on_event: Optional[EventSink],
) -> StratificationResult:
    solution = kmeans_distance_rows(
        distance,
        n_strata,
        max_iter=config.max_iter,
        random_state=config.random_state,
        on_event=on_event,
    )
    assignment = StratumAssignment(ids=prepared.ids, labels=solution.labels, n_strata=n_strata)
    emit(
        on_event,
        VARIANCE_EXPLAINED,
        f"{n_strata} strata explain {100 * round(solution.between_over_total, 4):.2f}% "
        "of the total variation in the population.",
        ratio=solution.between_over_total,
        n_strata=n_strata,
    )

    warnings: List[str] = []
    if prepared.dropped:
        warnings.append(
            f"{prepared.dropped} unit(s) with missing values were excluded (complete-case)."
        )
    if not solution.converged:
        warnings.append(
            f"Clustering did not converge within {config.max_iter} iterations; "
            "the best assignment found was kept."
        )
    sizes = assignment.sizes()
    singles = [int(s) for s in sizes.index[sizes == 1]]
    if singles:
        warnings.append(f"Strata {singles} contain a single unit; their sd is undefined.")

    profile = profile_strata(prepared, assignment)
    undefined = profile.deviation.loc[~profile.deviation["deviation_defined"], "variable"].unique()
    if len(undefined):
        warnings.append(
            f"Population mean is 0 for {list(undefined)}; deviation set to the +-0.7 bound."
        )

    return StratificationResult(
        config=config,
        prepared=prepared,
        distance=distance,
        assignment=assignment,
        solution=solution,
        profile=profile,
        recruitment_lists=recruitment_lists(prepared, assignment),
        warnings=warnings,
    )
