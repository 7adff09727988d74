"""Variable preparation: selection, dummy expansion and complete-case filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from pandas.api import types as ptypes

from .config import ConfigurationError, StratifyConfig

logger = logging.getLogger(__name__)

CONTINUOUS = "continuous"
CATEGORICAL = "categorical"


@dataclass(frozen=True)
class StratifyingVariable:
    name: str
    kind: str

    @property
    def is_categorical(self) -> bool:
        return self.kind == CATEGORICAL


@dataclass(frozen=True)
class PreparedTable:
    """Unit ids next to the fully numeric, dummy-expanded variable matrix.

    ``ids`` and ``matrix`` share a 0..n-1 index and never contain missing
    values. The id column is kept out of ``matrix`` so it can never act as a
    stratifying covariate.
    """

    ids: pd.Series
    matrix: pd.DataFrame
    variables: Tuple[StratifyingVariable, ...]
    id_col: str
    dummy_map: Dict[str, Tuple[str, ...]]
    dropped: int = 0

    @property
    def n_units(self) -> int:
        return len(self.matrix)

    @property
    def columns(self) -> List[str]:
        return list(self.matrix.columns)

    @property
    def binary_columns(self) -> List[str]:
        return [c for cols in self.dummy_map.values() for c in cols]

    def to_frame(self) -> pd.DataFrame:
        """Ids joined with the variable matrix (id column first)."""
        out = self.matrix.copy()
        out.insert(0, self.id_col, self.ids.values)
        return out


def _is_categorical_dtype(s: pd.Series) -> bool:
    return (
        isinstance(s.dtype, pd.CategoricalDtype)
        or ptypes.is_object_dtype(s)
        or ptypes.is_string_dtype(s)
        or ptypes.is_bool_dtype(s)
    )


def classify_variables(
    df: pd.DataFrame,
    variables: Iterable[str],
    categorical: Optional[Iterable[str]] = None,
) -> Tuple[StratifyingVariable, ...]:
    """Label each variable as continuous or categorical.

    Non-numeric dtypes (category, object, string, bool) are categorical;
    ``categorical`` forces numeric codes (e.g. a 1-4 region code) to be
    treated as nominal too.
    """
    forced = set(categorical or ())
    out = []
    for name in variables:
        if name not in df.columns:
            raise ConfigurationError(f"Column '{name}' not found. Available: {list(df.columns)}")
        kind = CATEGORICAL if name in forced or _is_categorical_dtype(df[name]) else CONTINUOUS
        out.append(StratifyingVariable(name=name, kind=kind))
    return tuple(out)


def _expand_categorical(s: pd.Series) -> pd.DataFrame:
    """One-hot encode ``s`` dropping the first level; missing stays missing."""
    cat = s.astype("category")
    dummies = pd.get_dummies(cat, prefix=s.name, prefix_sep="_", drop_first=True, dtype=float)
    # get_dummies encodes a missing value as all zeros
    dummies.loc[s.isna(), :] = float("nan")
    return dummies


def prepare_table(df: pd.DataFrame, config: StratifyConfig) -> PreparedTable:
    """Build the numeric matrix used by every later stage.

    Levels are taken from the whole population so the column set depends only
    on the variable list. Rows with a missing value in any retained variable
    are dropped (complete-case, no imputation).
    """
    variables = classify_variables(df, config.variables, config.categorical)

    parts: List[pd.DataFrame] = []
    dummy_map: Dict[str, Tuple[str, ...]] = {}
    for var in variables:
        col = df[var.name]
        if var.is_categorical:
            expanded = _expand_categorical(col)
            if expanded.shape[1] == 0:
                logger.warning("Categorical variable '%s' has a single level; it adds no columns", var.name)
            dummy_map[var.name] = tuple(expanded.columns)
            parts.append(expanded)
        else:
            parts.append(col.astype(float).to_frame(var.name))

    matrix = pd.concat(parts, axis=1)
    if matrix.columns.duplicated().any():
        dupes = list(matrix.columns[matrix.columns.duplicated()])
        raise ConfigurationError(f"Dummy expansion produced duplicate column names: {dupes}")

    complete = matrix.notna().all(axis=1)
    dropped = int((~complete).sum())
    if not complete.any():
        raise ConfigurationError(
            "No unit has complete data on the selected variables; "
            "remove sparse variables or pre-filter the population."
        )
    if dropped:
        logger.info("Dropped %d unit(s) with missing values (complete-case)", dropped)

    return PreparedTable(
        ids=df.loc[complete, config.id_col].reset_index(drop=True),
        matrix=matrix.loc[complete].reset_index(drop=True),
        variables=variables,
        id_col=config.id_col,
        dummy_map=dummy_map,
        dropped=dropped,
    )


def describe_continuous(df: pd.DataFrame, variables: Iterable[str]) -> pd.DataFrame:
    """Min, median, max, mean and sd of each variable on complete cases."""
    names = list(variables)
    data = df[names].apply(pd.to_numeric, errors="coerce").dropna()
    rows = []
    for name in names:
        x = data[name]
        rows.append(
            {
                "variable": name,
                "min": x.min(),
                "pct50": x.median(),
                "max": x.max(),
                "mean": x.mean(),
                "sd": x.std(),
            }
        )
    out = pd.DataFrame(rows, columns=["variable", "min", "pct50", "max", "mean", "sd"])
    return out.round(3)


def describe_categorical(df: pd.DataFrame, variables: Iterable[str]) -> Dict[str, pd.Series]:
    """Number of observations in each level, complete cases only."""
    names = list(variables)
    data = df[names].dropna()
    return {name: data[name].astype("category").value_counts(sort=False) for name in names}


def describe_variables(
    df: pd.DataFrame,
    variables: Iterable[str],
    categorical: Optional[Iterable[str]] = None,
) -> Tuple[pd.DataFrame, Dict[str, pd.Series]]:
    """Descriptive statistics for the given variables, split by kind."""
    variables = classify_variables(df, variables, categorical)
    cont = [v.name for v in variables if not v.is_categorical]
    cats = [v.name for v in variables if v.is_categorical]
    return describe_continuous(df, cont), describe_categorical(df, cats)
