"""Run configuration for stratification and recruitment.

The presentation layer (CLI, notebook, web form) builds a ``StratifyConfig``
once and hands it to the core; nothing in the core prompts for input.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

import pandas as pd

DEFAULT_MAX_ITER = 100
DEFAULT_RANDOM_STATE = 19


class ConfigurationError(ValueError):
    """Invalid run parameters, raised before any numeric work starts."""


@dataclass(frozen=True)
class StratifyConfig:
    """Immutable argument bundle for one stratification run."""

    id_col: str
    variables: Tuple[str, ...]
    n_strata: int
    categorical: Tuple[str, ...] = ()
    sample_size: Optional[int] = None
    max_iter: int = DEFAULT_MAX_ITER
    random_state: int = DEFAULT_RANDOM_STATE

    @classmethod
    def build(
        cls,
        *,
        id_col: str,
        variables: Sequence[str],
        n_strata,
        categorical: Optional[Sequence[str]] = None,
        sample_size=None,
        max_iter: int = DEFAULT_MAX_ITER,
        random_state: int = DEFAULT_RANDOM_STATE,
    ) -> "StratifyConfig":
        """Build a config from loose inputs (lists, numeric strings from a form)."""
        if isinstance(variables, str):
            variables = [variables]
        return cls(
            id_col=id_col,
            variables=tuple(variables),
            n_strata=n_strata,
            categorical=tuple(categorical or ()),
            sample_size=sample_size,
            max_iter=max_iter,
            random_state=random_state,
        )

    def with_strata(self, n_strata: int) -> "StratifyConfig":
        return replace(self, n_strata=n_strata)


def _as_whole_number(value, what: str) -> int:
    """Coerce ``value`` to int, accepting integral floats such as ``4.0``."""
    if isinstance(value, bool):
        raise ConfigurationError(f"The {what} must be a number, got {value!r}.")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ConfigurationError(f"The {what} must be one number, got {value!r}.")
    if not isinstance(value, numbers.Real):
        raise ConfigurationError(f"The {what} must be a number, got {value!r}.")
    if value != value or value in (float("inf"), float("-inf")):
        raise ConfigurationError(f"The {what} must be a finite number.")
    if int(value) != value:
        raise ConfigurationError(f"The {what} must be a whole number, got {value}.")
    return int(value)


def validate_n_strata(n_strata, population_size: int) -> int:
    n = _as_whole_number(n_strata, "number of strata")
    if n <= 1:
        raise ConfigurationError(
            "The number of strata must be a positive number greater than 1."
        )
    if n >= population_size:
        raise ConfigurationError(
            f"The number of strata ({n}) must be smaller than the population "
            f"size ({population_size})."
        )
    return n


def validate_sample_size(sample_size, population_size: int) -> int:
    n = _as_whole_number(sample_size, "sample size")
    if n <= 0:
        raise ConfigurationError("The sample size must be a positive number.")
    if n >= population_size:
        raise ConfigurationError(
            f"You cannot specify a sample size ({n}) that reaches the total number "
            f"of units in your population ({population_size})."
        )
    return n


def validate_config(df: pd.DataFrame, config: StratifyConfig) -> StratifyConfig:
    """Check every parameter against ``df`` and return a normalised config.

    Raises ``ConfigurationError`` with an actionable message on the first
    problem found.
    """
    if config.id_col not in df.columns:
        raise ConfigurationError(
            f"ID column '{config.id_col}' not found. Available: {list(df.columns)}"
        )
    if not config.variables:
        raise ConfigurationError("You have to select some stratifying variables.")

    missing = [v for v in config.variables if v not in df.columns]
    if missing:
        raise ConfigurationError(
            f"Stratifying variable(s) {missing} not found. Available: {list(df.columns)}"
        )
    if config.id_col in config.variables:
        raise ConfigurationError(
            f"ID column '{config.id_col}' cannot also be a stratifying variable."
        )
    if len(set(config.variables)) != len(config.variables):
        raise ConfigurationError("Stratifying variables must be unique.")

    stray = [c for c in config.categorical if c not in config.variables]
    if stray:
        raise ConfigurationError(
            f"Categorical variable(s) {stray} are not among the stratifying variables."
        )

    if df[config.id_col].duplicated().any():
        raise ConfigurationError(f"ID column '{config.id_col}' contains duplicate values.")

    population_size = len(df)
    n_strata = validate_n_strata(config.n_strata, population_size)

    sample_size = config.sample_size
    if sample_size is not None:
        sample_size = validate_sample_size(sample_size, population_size)

    max_iter = _as_whole_number(config.max_iter, "iteration cap")
    if max_iter < 1:
        raise ConfigurationError("The iteration cap must be at least 1.")

    return replace(config, n_strata=n_strata, sample_size=sample_size, max_iter=max_iter)
