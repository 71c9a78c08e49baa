"""Configuration for the MEPS diabetes panel cohort extraction."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

PERSON_ID = "DUPERSID"
DIAGNOSIS_CODE = "ICD10CDX"
DIAGNOSIS_FLAG = "diabetes_flag"
PANEL_YEAR = "panel_year"

DIAGNOSIS_PREFIX_LENGTH = 3

# ICD-10-CM categories: E10 type 1, E11 type 2 diabetes mellitus.
DIABETES_ICD10_PREFIXES = ("E10", "E11")

# panel-year -> (medical conditions file, longitudinal panel file)
YEAR_DATASETS: dict[int, tuple[str, str]] = {
    2016: ("h190", "h202"),
    2017: ("h199", "h210"),
    2018: ("h207", "h217"),
    2019: ("h214", "h223"),
    2020: ("h222", "h235"),
}

# Indicator column -> value it must hold for the person-year to stay in the cohort.
ELIGIBILITY_CRITERIA: dict[str, bool] = {
    "YEARIND": True,
    "ALL5RDS": True,
    "DIED": False,
    "INST": False,
    "MILITARY": False,
    "ENTRSRVC": False,
    "LEFTUS": False,
}

# MEPS yes/no coding. Reserved negatives (-1 inapplicable, -7 refused, -8 DK) map to NA.
INDICATOR_CODES: dict[int, bool] = {1: True, 2: False}

VARIABLE_LIST: tuple[str, ...] = (
    PERSON_ID,
    PANEL_YEAR,
    DIAGNOSIS_FLAG,
    "PANEL",
    "AGEY1X",
    "AGEY2X",
    "SEX",
    "RACETHX",
    "HISPANX",
    "MARRYY1X",
    "EDUCYR",
    "REGIONY1",
    "REGIONY2",
    "POVCATY1",
    "POVCATY2",
    "FAMINCY1",
    "INSCOVY1",
    "INSCOVY2",
    "RTHLTH31",
    "MNHLTH31",
    "BMINDX53",
    "ADSMOK42",
    "EMPST31",
    "DSA1C53",
    "DSCHNV53",
    "DSEYPR53",
    "DSFTNV53",
    "TOTEXPY1",
    "TOTEXPY2",
    "TOTSLFY1",
    "TOTSLFY2",
    "OBTOTVY1",
    "OBTOTVY2",
    "OPTOTVY1",
    "OPTOTVY2",
    "ERTOTY1",
    "ERTOTY2",
    "IPDISY1",
    "IPDISY2",
    "RXTOTY1",
    "RXTOTY2",
    "LONGWT",
    "VARSTR",
    "VARPSU",
)

DERIVED_COLUMNS = (DIAGNOSIS_FLAG, PANEL_YEAR)

ASSUMPTIONS = [
    "Diabetes is identified from Medical Conditions rows whose ICD10CDX category is E10 or E11.",
    "Cohort granularity is one row per qualifying condition row; a person with several qualifying "
    "conditions appears several times. Deduplication is pending confirmation with the data owners.",
    "Eligibility requires full-year participation, response in all rounds, and no death, "
    "institutionalization, military service, mid-year entry or departure from the US.",
    "MEPS yes/no indicators are coded 1=Yes, 2=No; reserved negative codes are treated as missing "
    "and missing eligibility data excludes the person-year.",
    "The default year table maps panel-years to public-use file names; check it against the MEPS "
    "data catalog before adding new years.",
]

DEFAULT_OUTPUT_TEMPLATE = "diabetes_cohort_{year}.csv"
REPORT_FILE = "REPORT.md"

_PREFIX_PATTERN = re.compile(r"^\S{%d}$" % DIAGNOSIS_PREFIX_LENGTH)


@dataclass(frozen=True)
class YearSpec:
    year: int
    medical_dataset_id: str
    panel_dataset_id: str


@dataclass(frozen=True)
class PipelineConfig:
    years: tuple[YearSpec, ...]
    source_dir: Path
    output_dir: Path
    target_prefixes: frozenset[str] = frozenset(DIABETES_ICD10_PREFIXES)
    variable_list: tuple[str, ...] = VARIABLE_LIST
    eligibility_criteria: Mapping[str, bool] = field(default_factory=lambda: dict(ELIGIBILITY_CRITERIA))
    indicator_codes: Mapping[int, bool] = field(default_factory=lambda: dict(INDICATOR_CODES))
    output_template: str = DEFAULT_OUTPUT_TEMPLATE
    bq_dataset: str = ""
    bq_location: str = "US"

    def destination_for(self, year: int) -> Path:
        return self.output_dir / self.output_template.format(year=year)

    @property
    def panel_columns(self) -> list[str]:
        """Columns every panel table must carry before joining."""
        cols = [c for c in self.variable_list if c not in DERIVED_COLUMNS]
        cols.extend(c for c in self.eligibility_criteria if c not in cols)
        return cols


def year_specs(
    years: Iterable[int] | None = None,
    table: Mapping[int, tuple[str, str]] = YEAR_DATASETS,
) -> tuple[YearSpec, ...]:
    selected = sorted(table) if years is None else list(years)
    unknown = [y for y in selected if y not in table]
    if unknown:
        raise ValueError(f"No dataset ids configured for years: {unknown}. Known years: {sorted(table)}")
    return tuple(YearSpec(y, *table[y]) for y in selected)


def build_config(
    years: Iterable[int] | None = None,
    *,
    source_dir: str | Path | None = None,
    output_dir: str | Path | None = None,
    bq_dataset: str | None = None,
    env: Mapping[str, str] | None = None,
    **overrides,
) -> PipelineConfig:
    env = os.environ if env is None else env
    source = source_dir or env.get("MEPS_SOURCE_DIR", "").strip() or "meps_data"
    output = output_dir or env.get("MEPS_OUTPUT_DIR", "").strip() or "meps_outputs"
    dataset = bq_dataset if bq_dataset is not None else env.get("MEPS_BQ_DATASET", "").strip()

    config = PipelineConfig(
        years=year_specs(years),
        source_dir=Path(source),
        output_dir=Path(output),
        bq_dataset=dataset,
        bq_location=env.get("GOOGLE_CLOUD_REGION", "US"),
        **overrides,
    )
    validate_config(config)
    return config


def validate_config(config: PipelineConfig) -> None:
    if not config.years:
        raise ValueError("No panel-years configured.")

    seen_years = [spec.year for spec in config.years]
    if len(set(seen_years)) != len(seen_years):
        raise ValueError(f"Duplicate panel-years configured: {seen_years}")

    if not config.target_prefixes:
        raise ValueError("At least one diagnosis prefix is required.")
    bad_prefixes = sorted(p for p in config.target_prefixes if not _PREFIX_PATTERN.match(p))
    if bad_prefixes:
        raise ValueError(
            f"Diagnosis prefixes must be exactly {DIAGNOSIS_PREFIX_LENGTH} characters: {bad_prefixes}"
        )

    variables = list(config.variable_list)
    if not variables or variables[0] != PERSON_ID:
        raise ValueError(f"Variable list must start with {PERSON_ID}.")
    if PANEL_YEAR not in variables:
        raise ValueError(f"Variable list must include {PANEL_YEAR}.")
    duplicates = sorted({v for v in variables if variables.count(v) > 1})
    if duplicates:
        raise ValueError(f"Duplicate names in variable list: {duplicates}")

    if "{year}" not in config.output_template:
        raise ValueError("output_template must contain a {year} placeholder.")


def ensure_output_dir(config: PipelineConfig) -> Path:
    out_dir = config.output_dir.resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir
