"""Schema boundary: column presence, identifier normalization, explicit indicator types."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

import pandas as pd

from .config import PERSON_ID
from .errors import SchemaMismatchError


def require_columns(df: pd.DataFrame, columns: Iterable[str], *, table: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaMismatchError(f"{table} is missing required columns: {missing}", missing=missing)


def normalize_person_ids(df: pd.DataFrame, column: str = PERSON_ID) -> pd.DataFrame:
    """Return a copy with the identifier column as pandas string dtype.

    Numeric identifiers (SAS transport numerics arrive as float64) are cast
    through Int64 so ``10001101.0`` becomes ``"10001101"``.
    """
    out = df.copy()
    ids = out[column]
    if pd.api.types.is_numeric_dtype(ids):
        ids = ids.astype("Int64")
    ids = ids.astype("string").str.strip()
    out[column] = ids.mask(ids.eq("").fillna(False))
    return out


def coerce_indicators(
    df: pd.DataFrame,
    columns: Iterable[str],
    codes: Mapping[int, bool],
) -> pd.DataFrame:
    """Map coded yes/no indicators to pandas nullable booleans.

    Values outside ``codes`` (reserved or missing codes) become NA. Columns that
    are already boolean are kept as they are.
    """
    out = df.copy()
    for col in columns:
        if col not in out.columns:
            continue
        series = out[col]
        if pd.api.types.is_bool_dtype(series):
            out[col] = series.astype("boolean")
            continue
        numeric = pd.to_numeric(series, errors="coerce")
        coded = numeric.map(lambda v: codes.get(int(v)) if pd.notna(v) and float(v).is_integer() else None)
        out[col] = coded.astype("boolean")
        n_unmapped = int(out[col].isna().sum() - series.isna().sum())
        if n_unmapped > 0:
            logging.debug("Indicator %s: %s values outside coding %s set to NA", col, n_unmapped, dict(codes))
    return out
