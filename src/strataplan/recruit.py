"""Proportional allocation of a recruitment target across strata.

References:
- Cochran, W.G. (1977). Sampling Techniques (3rd ed.). Wiley.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping

import numpy as np
import pandas as pd

from .config import validate_sample_size

logger = logging.getLogger(__name__)

PLAN_COLUMNS = ["stratum", "population_units", "proportion", "to_recruit"]


@dataclass
class RecruitmentPlan:
    """How many units to recruit per stratum, plus the ranked lists to draw from."""

    table: pd.DataFrame
    sample_size: int
    population_size: int
    lists: Dict[int, pd.DataFrame]
    id_col: str
    exact: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def total_to_recruit(self) -> int:
        return int(self.table["to_recruit"].sum())

    def target(self, stratum: int) -> int:
        row = self.table.loc[self.table["stratum"] == stratum, "to_recruit"]
        if row.empty:
            raise KeyError(f"Unknown stratum {stratum}")
        return int(row.iloc[0])


def _largest_remainder(quotas: np.ndarray, total: int, caps: np.ndarray) -> np.ndarray:
    base = np.minimum(np.floor(quotas).astype(int), caps)
    remainder = quotas - np.floor(quotas)
    short = total - int(base.sum())
    # stable sort keeps the lower stratum first on equal remainders
    for i in np.argsort(-remainder, kind="mergesort"):
        if short <= 0:
            break
        if base[i] < caps[i]:
            base[i] += 1
            short -= 1
    return base


def allocate(
    sizes: Mapping[int, int],
    sample_size: int,
    *,
    exact: bool = False,
) -> pd.DataFrame:
    """Split ``sample_size`` across strata in proportion to their size.

    ``proportion`` is rounded to 3 decimals and ``to_recruit`` is
    ``round(sample_size * proportion)`` per stratum. Rounding is independent
    per stratum, so the total can differ from ``sample_size`` by a few units;
    ``exact=True`` instead distributes the target with the largest-remainder
    method so the counts add up exactly.
    """
    strata = sorted(sizes)
    counts = np.array([int(sizes[s]) for s in strata], dtype=int)
    population = int(counts.sum())
    if population <= 0:
        raise ValueError("Cannot allocate across strata with no units")

    proportion = np.round(counts / population, 3)
    if exact:
        to_recruit = _largest_remainder(sample_size * counts / population, sample_size, counts)
    else:
        to_recruit = np.array([int(round(sample_size * p)) for p in proportion], dtype=int)

    return pd.DataFrame(
        {
            "stratum": strata,
            "population_units": counts,
            "proportion": proportion,
            "to_recruit": to_recruit,
        },
        columns=PLAN_COLUMNS,
    )


def recruit(result, sample_size, *, exact: bool = False) -> RecruitmentPlan:
    """Build the recruitment plan for a finished stratification.

    ``sample_size`` must be a positive whole number smaller than the
    population; the partition in ``result`` is not modified.
    """
    population = result.population_size
    n = validate_sample_size(sample_size, population)
    sizes = result.assignment.sizes()
    table = allocate(sizes.to_dict(), n, exact=exact)

    warnings: List[str] = []
    over = table[table["to_recruit"] > table["population_units"]]
    for _, row in over.iterrows():
        warnings.append(
            f"Stratum {int(row['stratum'])} needs {int(row['to_recruit'])} units but only has "
            f"{int(row['population_units'])}."
        )
    total = int(table["to_recruit"].sum())
    if total != n:
        logger.info("Per-stratum rounding gives %d units for a target of %d", total, n)
        warnings.append(
            f"Independent rounding allocates {total} units for a requested sample of {n}."
        )

    return RecruitmentPlan(
        table=table,
        sample_size=n,
        population_size=population,
        lists=result.recruitment_lists,
        id_col=result.id_col,
        exact=exact,
        warnings=warnings,
    )


def recruitment_queue(plan: RecruitmentPlan, stratum: int) -> Iterator:
    """Yield unit ids of ``stratum`` in recruitment order (rank 1 first).

    Approach the first ``plan.target(stratum)`` units; when one declines, take
    the next id from the same iterator.
    """
    if stratum not in plan.lists:
        raise KeyError(f"Unknown stratum {stratum}")
    ranked = plan.lists[stratum].sort_values("rank", kind="mergesort")
    return iter(ranked[plan.id_col].tolist())
