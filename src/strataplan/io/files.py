from __future__ import annotations

from pathlib import Path
from typing import Optional

import pandas as pd

SUPPORTED_TABULAR_EXTS = {".csv", ".tsv", ".xlsx", ".xls"}


def read_table(path: str | Path, *, sheet: Optional[str] = None, skiprows: int = 0) -> pd.DataFrame:
    path = Path(path)
    ext = path.suffix.lower()
    if ext == ".csv":
        return pd.read_csv(path, encoding="utf-8-sig", skiprows=skiprows)
    if ext == ".tsv":
        return pd.read_csv(path, sep="\t", encoding="utf-8-sig", skiprows=skiprows)
    if ext in {".xlsx", ".xls"}:
        return pd.read_excel(path, sheet_name=sheet if sheet else 0, skiprows=skiprows)
    supported = sorted(SUPPORTED_TABULAR_EXTS)
    raise ValueError(f"Unsupported tabular file: {path} (supported: {supported})")


def write_table(df: pd.DataFrame, path: str | Path) -> None:
    path = Path(path)
    ext = path.suffix.lower()
    if ext == ".csv":
        df.to_csv(path, index=False, encoding="utf-8-sig")
        return
    if ext == ".tsv":
        df.to_csv(path, index=False, sep="\t", encoding="utf-8-sig")
        return
    if ext in {".xlsx", ".xls"}:
        df.to_excel(path, index=False)
        return
    raise ValueError(f"Unsupported output format: {path} (use .csv/.tsv/.xlsx)")
