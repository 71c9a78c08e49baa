"""Cohort construction: diagnosis filter, panel join, eligibility filter, projection."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .config import (
    DIAGNOSIS_CODE,
    DIAGNOSIS_FLAG,
    DIAGNOSIS_PREFIX_LENGTH,
    ELIGIBILITY_CRITERIA,
    PANEL_YEAR,
    PERSON_ID,
)
from .errors import ProjectionError, SchemaMismatchError
from .schema import require_columns


def filter_diagnoses(medical: pd.DataFrame, year: int, target_prefixes: Iterable[str]) -> pd.DataFrame:
    """Return one ``[DUPERSID, diabetes_flag, panel_year]`` row per qualifying condition row.

    A row qualifies when the first three characters of its diagnosis code are in
    ``target_prefixes``. Shorter codes and missing codes never qualify. Input
    order is preserved.
    """
    prefixes = set(target_prefixes)
    bad = sorted(p for p in prefixes if len(p) != DIAGNOSIS_PREFIX_LENGTH)
    if bad:
        raise ValueError(f"Diagnosis prefixes must be {DIAGNOSIS_PREFIX_LENGTH} characters: {bad}")
    require_columns(medical, [PERSON_ID, DIAGNOSIS_CODE], table="medical conditions")

    codes = medical[DIAGNOSIS_CODE].astype("string")
    long_enough = (codes.str.len() >= DIAGNOSIS_PREFIX_LENGTH).fillna(False).astype(bool)
    in_category = codes.str[:DIAGNOSIS_PREFIX_LENGTH].isin(prefixes)
    has_person = medical[PERSON_ID].notna()
    qualifies = (long_enough & in_category & has_person).to_numpy(dtype=bool)

    flags = medical.loc[qualifies, [PERSON_ID]].reset_index(drop=True)
    flags[DIAGNOSIS_FLAG] = 1
    flags[PANEL_YEAR] = int(year)
    logging.info(
        "Year %s: %s of %s condition rows match prefixes %s",
        year,
        len(flags),
        len(medical),
        sorted(prefixes),
    )
    return flags


def count_duplicate_persons(panel: pd.DataFrame) -> int:
    ids = panel[PERSON_ID].dropna()
    return int(ids[ids.duplicated()].nunique())


def join_cohort(flags: pd.DataFrame, panel: pd.DataFrame) -> pd.DataFrame:
    """Inner join diagnosis flags with panel rows on person identifier.

    Unmatched rows on either side are dropped. Duplicate panel identifiers are
    not rejected here and fan out; use ``count_duplicate_persons`` beforehand.
    """
    require_columns(flags, [PERSON_ID], table="diagnosis flags")
    require_columns(panel, [PERSON_ID], table="panel")
    overlap = sorted((set(flags.columns) & set(panel.columns)) - {PERSON_ID})
    if overlap:
        raise SchemaMismatchError(f"Panel table already carries derived columns: {overlap}")

    left = flags[flags[PERSON_ID].notna()].sort_values(PERSON_ID, kind="mergesort")
    right = panel[panel[PERSON_ID].notna()].sort_values(PERSON_ID, kind="mergesort")
    merged = left.merge(right, on=PERSON_ID, how="inner", sort=False)
    return merged.reset_index(drop=True)


def filter_eligible(
    rows: pd.DataFrame,
    criteria: Mapping[str, bool] = ELIGIBILITY_CRITERIA,
) -> pd.DataFrame:
    """Keep rows where every indicator in ``criteria`` holds its required value.

    An absent indicator column or a missing value makes the row ineligible.
    Indicators must already be boolean typed (see ``schema.coerce_indicators``);
    object columns holding only bools and missing values are accepted.
    """
    masks: list[np.ndarray] = []
    for col, required in criteria.items():
        if col not in rows.columns:
            logging.warning("Eligibility indicator %s absent; every row is ineligible", col)
            masks.append(np.zeros(len(rows), dtype=bool))
            continue
        series = rows[col]
        if series.dtype == object and pd.api.types.infer_dtype(series, skipna=True) in ("boolean", "empty"):
            # bool values with None/NaN holes
            series = series.astype("boolean")
        if not pd.api.types.is_bool_dtype(series):
            raise SchemaMismatchError(f"Eligibility indicator {col} must be boolean, got {series.dtype}")
        masks.append(series.astype("boolean").eq(required).fillna(False).to_numpy(dtype=bool))

    keep = np.logical_and.reduce(masks) if masks else np.ones(len(rows), dtype=bool)
    return rows.loc[keep].reset_index(drop=True)


def project_variables(rows: pd.DataFrame, variable_list: Sequence[str]) -> pd.DataFrame:
    variables = list(variable_list)
    missing = [v for v in variables if v not in rows.columns]
    if missing:
        raise ProjectionError(f"Analytic variables absent from cohort rows: {missing}", missing=missing)
    return rows.loc[:, variables].reset_index(drop=True)


def build_cohort_flow(year: int, stages: Sequence[tuple[str, pd.DataFrame]]) -> pd.DataFrame:
    records = []
    for i, (step, df) in enumerate(stages, start=1):
        n_persons = int(df[PERSON_ID].nunique()) if PERSON_ID in df.columns else 0
        records.append({"year": year, "step": f"{i:02d}_{step}", "n_rows": len(df), "n_persons": n_persons})
    return pd.DataFrame.from_records(records, columns=["year", "step", "n_rows", "n_persons"])
