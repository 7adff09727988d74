"""Per-stratum summary statistics and population-relative deviation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

POPULATION = "Population"
DEVIATION_BOUND = 0.7


@dataclass(frozen=True)
class ProfileTables:
    """Summary tables consumed by reports and renderers.

    ``summary``: one row per stratum plus a population row, with
    ``<var>_mean``, ``<var>_sd`` and ``n``.
    ``deviation``: long form (stratum, variable) cells with mean, sd, n,
    population mean and the clipped relative deviation.

    In both, ``stratum`` holds the integer label used by the assignment,
    the recruitment lists and the plan table (nullable ``Int64``, missing
    on the population row) and ``is_population`` marks the population row.
    ``formatted`` is for display: ``"mean / sd"`` strings rounded to 3
    decimals, labelled ``"1"``, ``"2"``, ... and ``"Population"``.
    """

    summary: pd.DataFrame
    deviation: pd.DataFrame
    formatted: pd.DataFrame
    variables: List[str]

    def stratum_means(self) -> pd.DataFrame:
        rows = self.summary[~self.summary["is_population"]]
        out = rows[[f"{v}_mean" for v in self.variables]]
        out.columns = self.variables
        out.index = rows["stratum"].astype(int).values
        return out


def relative_deviation(stratum_mean, population_mean):
    """``(stratum_mean - population_mean) / population_mean`` clipped to +-0.7.

    When the population mean is 0 the ratio is undefined; the cell takes the
    sign extreme (+0.7 / -0.7, or 0 when the stratum mean is 0 as well) and
    the second return value flags it.

    Returns
    -------
    (deviation, defined)
    """
    sm = np.asarray(stratum_mean, dtype=float)
    pm = np.asarray(population_mean, dtype=float)
    defined = pm != 0
    safe = np.where(defined, pm, 1.0)
    raw = np.where(defined, (sm - pm) / safe, np.sign(sm - pm) * DEVIATION_BOUND)
    return np.clip(raw, -DEVIATION_BOUND, DEVIATION_BOUND), defined


def _format_cell(mean: float, sd: float) -> str:
    sd_txt = "NA" if pd.isna(sd) else str(round(float(sd), 3))
    return f"{round(float(mean), 3)} / {sd_txt}"


def profile_strata(prepared, assignment) -> ProfileTables:
    """Mean and sample sd of every (dummy-expanded) variable per stratum."""
    variables = prepared.columns
    data = prepared.matrix.copy()
    data["_stratum"] = assignment.labels

    grouped = data.groupby("_stratum", sort=True)
    means = grouped[variables].mean()
    sds = grouped[variables].std(ddof=1)
    counts = grouped.size()

    rows = []
    for stratum in means.index:
        row = {"stratum": int(stratum), "is_population": False}
        for v in variables:
            row[f"{v}_mean"] = means.at[stratum, v]
            row[f"{v}_sd"] = sds.at[stratum, v]
        row["n"] = int(counts.at[stratum])
        rows.append(row)

    pop_mean = prepared.matrix.mean()
    pop_sd = prepared.matrix.std(ddof=1)
    pop_row = {"stratum": pd.NA, "is_population": True}
    for v in variables:
        pop_row[f"{v}_mean"] = pop_mean[v]
        pop_row[f"{v}_sd"] = pop_sd[v]
    pop_row["n"] = prepared.n_units
    rows.append(pop_row)
    summary = pd.DataFrame(rows)
    summary["stratum"] = summary["stratum"].astype("Int64")

    cells = []
    for _, row in summary.iterrows():
        for v in variables:
            cells.append(
                {
                    "stratum": row["stratum"],
                    "is_population": row["is_population"],
                    "variable": v,
                    "mean": row[f"{v}_mean"],
                    "sd": row[f"{v}_sd"],
                    "n": int(row["n"]),
                    "population_mean": pop_mean[v],
                }
            )
    deviation = pd.DataFrame(
        cells,
        columns=["stratum", "is_population", "variable", "mean", "sd", "n", "population_mean"],
    )
    deviation["stratum"] = deviation["stratum"].astype("Int64")
    deviation["is_population"] = deviation["is_population"].astype(bool)
    dev, defined = relative_deviation(deviation["mean"], deviation["population_mean"])
    deviation["deviation"] = dev
    deviation["deviation_defined"] = defined

    formatted = pd.DataFrame(
        {
            "stratum": [
                POPULATION if pop else str(s)
                for s, pop in zip(summary["stratum"], summary["is_population"])
            ],
            **{
                v: [_format_cell(m, s) for m, s in zip(summary[f"{v}_mean"], summary[f"{v}_sd"])]
                for v in variables
            },
            "n": summary["n"],
        }
    )

    return ProfileTables(
        summary=summary, deviation=deviation, formatted=formatted, variables=list(variables)
    )
