"""CSV export of final cohort tables."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd

from .errors import ExportIOError


def _encode_for_csv(table: pd.DataFrame) -> pd.DataFrame:
    """Booleans as 0/1 and integral floats as integers so ids and indicators round-trip."""
    out = table.copy()
    for col in out.columns:
        series = out[col]
        if pd.api.types.is_bool_dtype(series):
            out[col] = series.astype("Int8")
        elif pd.api.types.is_float_dtype(series):
            values = series.dropna().to_numpy(dtype=float)
            if len(values) and np.all(np.isfinite(values)) and np.all(np.mod(values, 1) == 0):
                out[col] = series.astype("Int64")
    return out


def write_csv(table: pd.DataFrame, destination: str | Path) -> Path:
    """Write ``table`` to ``destination``, replacing any existing file atomically."""
    dest = Path(destination)
    encoded = _encode_for_csv(table)
    tmp_name = None
    replaced = False
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            dir=dest.parent,
            prefix=f".{dest.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
            newline="",
        ) as handle:
            tmp_name = handle.name
            encoded.to_csv(handle, index=False, lineterminator="\n")
        os.replace(tmp_name, dest)
        replaced = True
    except OSError as exc:
        raise ExportIOError(f"Could not write {dest}: {exc}") from exc
    finally:
        if not replaced and tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logging.info("Saved %s (%s rows)", dest.name, len(table))
    if logging.getLogger().isEnabledFor(logging.DEBUG) and not table.empty:
        logging.debug("%s preview:\n%s", dest.name, table.head(20).to_string(index=False))
    return dest
