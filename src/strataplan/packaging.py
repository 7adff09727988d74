"""ZIP packaging of a stratification run (manifest, tables, recruitment lists)."""

from __future__ import annotations

import io
import json
import zipfile
from datetime import datetime
from typing import Any, Dict, Tuple

import pandas as pd

from .manifest import format_timestamp_filename, sanitize_basename


def make_zip_filename(input_basename: str, tool: str, timestamp: datetime) -> str:
    """Pattern: ``{basename}__{tool}__{YYYYMMDDTHHMMSSZ}.zip``"""
    safe_base = sanitize_basename(input_basename)
    safe_tool = sanitize_basename(tool)
    return f"{safe_base}__{safe_tool}__{format_timestamp_filename(timestamp)}.zip"


def recruitment_list_filename(stratum: int) -> str:
    return f"recruitment_list_for_{stratum}.csv"


# -----------------------------------------------------------------------
# DataFrame serialisation
# -----------------------------------------------------------------------


def _df_to_bytes(df: pd.DataFrame, ext: str) -> bytes:
    """Serialise a DataFrame to bytes in the given format."""
    buf = io.BytesIO()
    if ext == "csv":
        df.to_csv(buf, index=False, encoding="utf-8-sig")
    elif ext == "tsv":
        df.to_csv(buf, index=False, sep="\t", encoding="utf-8-sig")
    else:  # xlsx
        df.to_excel(buf, index=False, engine="openpyxl")
    buf.seek(0)
    return buf.getvalue()


def summary_workbook_bytes(result) -> bytes:
    """``strata_summary.xlsx`` with the summary, mean/sd and deviation sheets."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        result.profile.formatted.to_excel(writer, sheet_name="mean_sd", index=False)
        result.profile.summary.to_excel(writer, sheet_name="summary", index=False)
        result.profile.deviation.to_excel(writer, sheet_name="deviation", index=False)
    buf.seek(0)
    return buf.getvalue()


# -----------------------------------------------------------------------
# ZIP builder
# -----------------------------------------------------------------------


def build_zip(
    *,
    manifest: Dict[str, Any],
    result,
    input_basename: str,
    plan=None,
) -> Tuple[bytes, str]:
    """Build a ZIP pack for a stratification run.

    Files are written in a deterministic, fixed order so that identical
    inputs always produce the same archive structure.

    Returns
    -------
    (zip_bytes, zip_filename)
    """
    tool = manifest.get("tool", "unknown")
    ts = datetime.fromisoformat(manifest["timestamp_utc"])
    zip_name = make_zip_filename(input_basename, tool, ts)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        # 1. run_manifest.json (always first)
        zf.writestr("run_manifest.json", json.dumps(manifest, indent=2, ensure_ascii=False))

        # 2. unit -> stratum table
        zf.writestr("units.csv", _df_to_bytes(result.units, "csv"))

        # 3. profile tables
        zf.writestr("strata_summary.xlsx", summary_workbook_bytes(result))

        # 4. allocation table (only when a sample size was given)
        if plan is not None:
            zf.writestr("recruitment_plan.csv", _df_to_bytes(plan.table, "csv"))

        # 5. one ranked list per stratum, in stratum order
        for stratum in sorted(result.recruitment_lists):
            ranked = result.recruitment_lists[stratum][["rank", result.id_col]]
            zf.writestr(recruitment_list_filename(stratum), _df_to_bytes(ranked, "csv"))

    buf.seek(0)
    return buf.getvalue(), zip_name
