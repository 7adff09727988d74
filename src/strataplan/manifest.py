"""Run manifest generation for stratification packs."""

from __future__ import annotations

import importlib.metadata
import re
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Dict, List, Optional

from strataplan import __version__

CITATION_INFO = {
    "title": "strataplan",
    "method_references": [
        "Tipton, E. (2014). Stratified sampling using cluster analysis. Evaluation Review, 37(2), 109-139.",
        "Tipton, E. (2014). How generalizable is your experiment? JEBS, 39(6), 478-501.",
    ],
    "license": "MIT",
    "version": __version__,
}

LIBRARIES = ("numpy", "pandas", "scipy")


# ---------------------------------------------------------------------------
# Timestamp utility
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    """Return current UTC datetime (single source for consistency)."""
    return datetime.now(timezone.utc)


def format_timestamp_filename(ts: datetime) -> str:
    """Format timestamp for ZIP filenames: ``YYYYMMDDTHHMMSSZ``."""
    return ts.strftime("%Y%m%dT%H%M%SZ")


# ---------------------------------------------------------------------------
# Basename sanitisation
# ---------------------------------------------------------------------------

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\s]+')


def sanitize_basename(name: str) -> str:
    """Make ``name`` safe to embed in a file name (no separators, no hidden names)."""
    clean = _UNSAFE_CHARS.sub("_", name)
    clean = PurePath(clean).name
    clean = clean.strip("_.")
    return clean or "output"


# ---------------------------------------------------------------------------
# Library version detection
# ---------------------------------------------------------------------------


def get_library_version(package_name: str) -> str:
    """Get installed version of a package via importlib.metadata."""
    try:
        return importlib.metadata.version(package_name)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def get_libraries() -> List[Dict[str, str]]:
    return [{"name": name, "version": get_library_version(name)} for name in LIBRARIES]


# ---------------------------------------------------------------------------
# Manifest builder
# ---------------------------------------------------------------------------


def build_stratification_section(result) -> Dict[str, Any]:
    """The ``stratification`` block: parameters, diagnostics and strata sizes."""
    sizes = result.assignment.sizes()
    return {
        "id_column": result.id_col,
        "variables": result.variables,
        "categorical": list(result.config.categorical),
        "matrix_columns": result.prepared.columns,
        "n_strata": result.n_strata,
        "distance": "gower",
        "clustering": {
            "method": "kmeans_on_distance_rows",
            "init": "k-means++",
            "iterations": result.solution.n_iter,
            "converged": result.solution.converged,
            "max_iter": result.config.max_iter,
        },
        "variance_explained": round(result.variance_explained, 6),
        "units_retained": result.population_size,
        "units_dropped": result.prepared.dropped,
        "stratum_sizes": {str(k): int(v) for k, v in sizes.items()},
    }


def build_recruitment_section(plan) -> Dict[str, Any]:
    return {
        "sample_size": plan.sample_size,
        "allocation": "proportional_exact" if plan.exact else "proportional",
        "formula_reference": "Cochran 1977",
        "to_recruit_per_stratum": {
            str(int(s)): int(n) for s, n in zip(plan.table["stratum"], plan.table["to_recruit"])
        },
        "total_to_recruit": plan.total_to_recruit,
    }


def build_manifest(
    *,
    tool: str,
    original_filename: str,
    file_type: str,
    row_count: int,
    timestamp: Optional[datetime] = None,
    reproducibility: Optional[Dict[str, Any]] = None,
    stratification: Optional[Dict[str, Any]] = None,
    recruitment: Optional[Dict[str, Any]] = None,
    warnings: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Build a complete ``run_manifest.json`` dict.

    Parameters
    ----------
    tool:
        Tool name (e.g. ``"stratify"``).
    timestamp:
        If ``None``, uses ``utc_now()``.
    """
    ts = timestamp or utc_now()

    manifest: Dict[str, Any] = {
        "strataplan_version": __version__,
        "timestamp_utc": ts.isoformat(),
        "tool": tool,
        "citation": CITATION_INFO,
        "input": {
            "original_filename": original_filename,
            "file_type": file_type,
            "row_count": row_count,
        },
        "pipeline": {
            "libraries": get_libraries(),
        },
    }

    if reproducibility:
        manifest["reproducibility"] = reproducibility
    if stratification:
        manifest["stratification"] = stratification
    if recruitment:
        manifest["recruitment"] = recruitment
    if warnings:
        manifest["warnings"] = list(warnings)

    return manifest


# ---------------------------------------------------------------------------
# Manifest validation (for tests)
# ---------------------------------------------------------------------------

_REQUIRED_KEYS = {
    "strataplan_version",
    "timestamp_utc",
    "tool",
    "citation",
    "input",
    "pipeline",
}
_REQUIRED_INPUT_KEYS = {"original_filename", "file_type", "row_count"}


def validate_manifest(manifest: Dict[str, Any]) -> None:
    """Raise ``ValueError`` if the manifest is structurally invalid."""
    missing = _REQUIRED_KEYS - set(manifest.keys())
    if missing:
        raise ValueError(f"Missing top-level keys: {missing}")

    missing_input = _REQUIRED_INPUT_KEYS - set(manifest.get("input", {}).keys())
    if missing_input:
        raise ValueError(f"Missing input keys: {missing_input}")

    if not isinstance(manifest["input"]["row_count"], int):
        raise ValueError("input.row_count must be an integer")
