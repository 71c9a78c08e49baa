"""
Unit Tests for the schema boundary.

Test Aspects Covered:
    ✅ Business Logic: MEPS yes/no coding to booleans, identifier normalization
    ✅ Edge Cases: reserved negative codes, float identifiers, missing columns
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from meps_diabetes_cohort.config import INDICATOR_CODES, PERSON_ID
from meps_diabetes_cohort.errors import SchemaMismatchError
from meps_diabetes_cohort.schema import coerce_indicators, normalize_person_ids, require_columns


class TestRequireColumns:
    def test_passes_when_present(self) -> None:
        require_columns(pd.DataFrame({"A": [1], "B": [2]}), ["A", "B"], table="t")

    def test_reports_every_missing_column(self) -> None:
        with pytest.raises(SchemaMismatchError) as excinfo:
            require_columns(pd.DataFrame({"A": [1]}), ["A", "B", "C"], table="panel h223")

        assert excinfo.value.missing == ["B", "C"]
        assert "panel h223" in str(excinfo.value)


class TestNormalizePersonIds:
    def test_float_ids_lose_decimal(self) -> None:
        df = pd.DataFrame({PERSON_ID: [10001101.0, np.nan, 20002202.0]})

        out = normalize_person_ids(df)

        assert out[PERSON_ID].tolist()[0] == "10001101"
        assert pd.isna(out[PERSON_ID].iloc[1])
        assert out[PERSON_ID].iloc[2] == "20002202"

    def test_blank_strings_become_missing(self) -> None:
        df = pd.DataFrame({PERSON_ID: [" 2290001101 ", "  "]})

        out = normalize_person_ids(df)

        assert out[PERSON_ID].iloc[0] == "2290001101"
        assert pd.isna(out[PERSON_ID].iloc[1])

    def test_input_not_mutated(self) -> None:
        df = pd.DataFrame({PERSON_ID: [1, 2]})

        normalize_person_ids(df)

        assert df[PERSON_ID].tolist() == [1, 2]


class TestCoerceIndicators:
    def test_meps_coding(self) -> None:
        df = pd.DataFrame({"DIED": [1, 2, -1, -8, np.nan]})

        out = coerce_indicators(df, ["DIED"], INDICATOR_CODES)

        assert str(out["DIED"].dtype) == "boolean"
        assert out["DIED"].iloc[:2].tolist() == [True, False]
        assert out["DIED"].iloc[2:].isna().all()

    def test_string_codes(self) -> None:
        df = pd.DataFrame({"INST": ["1", "2", "x"]})

        out = coerce_indicators(df, ["INST"], INDICATOR_CODES)

        assert out["INST"].iloc[:2].tolist() == [True, False]
        assert pd.isna(out["INST"].iloc[2])

    def test_boolean_columns_kept(self) -> None:
        df = pd.DataFrame({"LEFTUS": [True, False]})

        out = coerce_indicators(df, ["LEFTUS"], INDICATOR_CODES)

        assert out["LEFTUS"].tolist() == [True, False]

    def test_absent_columns_skipped(self) -> None:
        df = pd.DataFrame({"A": [1]})

        out = coerce_indicators(df, ["DIED"], INDICATOR_CODES)

        assert list(out.columns) == ["A"]
