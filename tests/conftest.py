"""
Pytest Configuration and Shared Fixtures.

Builders for MEPS-shaped medical condition and panel tables, an in-memory
dataset loader, and a pipeline configuration writing into ``tmp_path``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List

import pandas as pd
import pytest

from meps_diabetes_cohort.config import (
    DERIVED_COLUMNS,
    DIAGNOSIS_CODE,
    ELIGIBILITY_CRITERIA,
    PERSON_ID,
    VARIABLE_LIST,
    PipelineConfig,
    YearSpec,
)
from meps_diabetes_cohort.errors import DatasetNotFound

# MEPS coding for an eligible person-year: 1=Yes, 2=No.
ELIGIBLE_CODES = {col: (1 if required else 2) for col, required in ELIGIBILITY_CRITERIA.items()}


class InMemoryLoader:
    """Dataset loader backed by a dict of DataFrames; records every load."""

    def __init__(self, tables: Dict[str, pd.DataFrame]) -> None:
        self.tables = tables
        self.calls: List[str] = []

    def load(self, dataset_id: str) -> pd.DataFrame:
        self.calls.append(dataset_id)
        if dataset_id not in self.tables:
            raise DatasetNotFound(dataset_id)
        return self.tables[dataset_id].copy()


def _panel_row(person_id: str, **overrides: object) -> dict:
    row: dict = {}
    for i, col in enumerate(VARIABLE_LIST):
        if col == PERSON_ID or col in DERIVED_COLUMNS:
            continue
        row[col] = float(10 + i)
    row[PERSON_ID] = person_id
    row.update(ELIGIBLE_CODES)
    row["TOTEXPY1"] = 1234.5
    row.update(overrides)
    return row


@pytest.fixture
def panel_row() -> Callable[..., dict]:
    """Factory for one fully eligible panel row; keyword overrides replace values."""
    return _panel_row


@pytest.fixture
def make_panel() -> Callable[..., pd.DataFrame]:
    def _make(rows: List[dict]) -> pd.DataFrame:
        return pd.DataFrame(rows)

    return _make


@pytest.fixture
def make_medical() -> Callable[..., pd.DataFrame]:
    """Factory for a medical conditions table from (person_id, code) pairs."""

    def _make(pairs: List[tuple]) -> pd.DataFrame:
        return pd.DataFrame(pairs, columns=[PERSON_ID, DIAGNOSIS_CODE])

    return _make


@pytest.fixture
def year_spec() -> YearSpec:
    return YearSpec(year=2019, medical_dataset_id="h214", panel_dataset_id="h223")


@pytest.fixture
def pipeline_config(tmp_path: Path, year_spec: YearSpec) -> PipelineConfig:
    return PipelineConfig(
        years=(year_spec,),
        source_dir=tmp_path / "source",
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def in_memory_loader() -> Callable[[Dict[str, pd.DataFrame]], InMemoryLoader]:
    return InMemoryLoader


@pytest.fixture
def scenario_loader(make_medical, make_panel, panel_row) -> InMemoryLoader:
    """P1 has type 2 diabetes (E11), P2 has asthma (J45); both panel rows eligible."""
    return InMemoryLoader(
        {
            "h214": make_medical([("P1", "E1100"), ("P2", "J450")]),
            "h223": make_panel([panel_row("P1"), panel_row("P2")]),
        }
    )
