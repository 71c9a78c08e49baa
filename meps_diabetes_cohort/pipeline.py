"""Per-year cohort pipeline and the batch runner across panel-years."""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pandas as pd

from .cohort import (
    build_cohort_flow,
    count_duplicate_persons,
    filter_diagnoses,
    filter_eligible,
    join_cohort,
    project_variables,
)
from .config import DIAGNOSIS_CODE, PERSON_ID, PipelineConfig, YearSpec
from .errors import JoinCardinalityWarning, YearRunError
from .export import write_csv
from .loaders import DatasetLoader
from .schema import coerce_indicators, normalize_person_ids, require_columns

Exporter = Callable[[pd.DataFrame, Path], Path]

STAGES = ("load", "diagnosis_filter", "join", "eligibility_filter", "projection", "export")


@dataclass
class ExportResult:
    year: int
    destination: Path
    row_count: int
    person_count: int
    columns: list[str]
    cohort_flow: pd.DataFrame
    notes: list[str] = field(default_factory=list)


@dataclass
class YearOutcome:
    year: int
    succeeded: bool
    result: ExportResult | None = None
    stage: str | None = None
    error_kind: str | None = None
    message: str = ""


@dataclass
class BatchResult:
    outcomes: list[YearOutcome]

    @property
    def succeeded(self) -> list[int]:
        return [o.year for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[int]:
        return [o.year for o in self.outcomes if not o.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def summary(self) -> pd.DataFrame:
        rows = [
            {
                "year": o.year,
                "status": "ok" if o.succeeded else "failed",
                "rows": o.result.row_count if o.result else None,
                "persons": o.result.person_count if o.result else None,
                "stage": o.stage or "",
                "error_kind": o.error_kind or "",
                "message": o.message,
            }
            for o in self.outcomes
        ]
        return pd.DataFrame(rows, columns=["year", "status", "rows", "persons", "stage", "error_kind", "message"])

    def cohort_flow(self) -> pd.DataFrame:
        flows = [o.result.cohort_flow for o in self.outcomes if o.result is not None]
        if not flows:
            return pd.DataFrame(columns=["year", "step", "n_rows", "n_persons"])
        return pd.concat(flows, ignore_index=True)


def _load_tables(spec: YearSpec, loader: DatasetLoader, config: PipelineConfig) -> tuple[pd.DataFrame, pd.DataFrame]:
    medical = loader.load(spec.medical_dataset_id)
    require_columns(medical, [PERSON_ID, DIAGNOSIS_CODE], table=f"medical conditions {spec.medical_dataset_id}")
    medical = normalize_person_ids(medical)

    panel = loader.load(spec.panel_dataset_id)
    require_columns(panel, config.panel_columns, table=f"panel {spec.panel_dataset_id}")
    panel = normalize_person_ids(panel)
    panel = coerce_indicators(panel, config.eligibility_criteria, config.indicator_codes)
    return medical, panel


def run_year(
    spec: YearSpec,
    *,
    loader: DatasetLoader,
    config: PipelineConfig,
    exporter: Exporter = write_csv,
) -> ExportResult:
    """Build and export the cohort extract for one panel-year.

    Every exception is re-raised as ``YearRunError`` tagged with the failing
    stage. Nothing is written unless all earlier stages succeed.
    """
    year = spec.year
    notes: list[str] = []
    stage = STAGES[0]
    try:
        medical, panel = _load_tables(spec, loader, config)

        stage = "diagnosis_filter"
        flags = filter_diagnoses(medical, year, config.target_prefixes)

        stage = "join"
        n_dupes = count_duplicate_persons(panel)
        if n_dupes:
            message = (
                f"Panel {spec.panel_dataset_id} has {n_dupes} duplicated {PERSON_ID} values; "
                "joined rows for those persons are multiplied."
            )
            logging.warning("Year %s: %s", year, message)
            warnings.warn(message, JoinCardinalityWarning, stacklevel=2)
            notes.append(message)
        merged = join_cohort(flags, panel)

        stage = "eligibility_filter"
        cleaned = filter_eligible(merged, config.eligibility_criteria)

        stage = "projection"
        final = project_variables(cleaned, config.variable_list)

        cohort_flow = build_cohort_flow(
            year,
            [
                ("medical_condition_rows", medical),
                ("diabetes_condition_rows", flags),
                ("joined_with_panel", merged),
                ("eligible", cleaned),
            ],
        )

        stage = "export"
        destination = exporter(final, config.destination_for(year))
    except Exception as exc:
        logging.exception("Year %s failed at stage %s", year, stage)
        raise YearRunError(year, stage, exc) from exc

    logging.info(
        "Year %s complete: %s rows, %s persons -> %s",
        year,
        len(final),
        final[PERSON_ID].nunique(),
        destination,
    )
    return ExportResult(
        year=year,
        destination=Path(destination),
        row_count=len(final),
        person_count=int(final[PERSON_ID].nunique()),
        columns=list(final.columns),
        cohort_flow=cohort_flow,
        notes=notes,
    )


def _run_one(spec: YearSpec, loader: DatasetLoader, config: PipelineConfig, exporter: Exporter) -> YearOutcome:
    try:
        result = run_year(spec, loader=loader, config=config, exporter=exporter)
    except YearRunError as err:
        return YearOutcome(
            year=spec.year,
            succeeded=False,
            stage=err.stage,
            error_kind=err.kind,
            message=str(err.cause),
        )
    return YearOutcome(year=spec.year, succeeded=True, result=result)


def run_batch(
    config: PipelineConfig,
    *,
    loader: DatasetLoader,
    exporter: Exporter = write_csv,
    max_workers: int = 1,
) -> BatchResult:
    """Run every configured panel-year; a failing year does not stop the others."""
    logging.info("Starting cohort extraction for years %s", [s.year for s in config.years])
    if max_workers > 1 and len(config.years) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(lambda s: _run_one(s, loader, config, exporter), config.years))
    else:
        outcomes = [_run_one(spec, loader, config, exporter) for spec in config.years]

    outcomes.sort(key=lambda o: o.year)
    for outcome in outcomes:
        if outcome.succeeded:
            logging.info("Year %s: ok (%s rows)", outcome.year, outcome.result.row_count)
        else:
            logging.error(
                "Year %s: failed at %s (%s) %s",
                outcome.year,
                outcome.stage,
                outcome.error_kind,
                outcome.message,
            )
    return BatchResult(outcomes=outcomes)
