"""Report generation for cohort extraction runs."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from .config import REPORT_FILE
from .pipeline import BatchResult


def _fmt_count(x: object) -> str:
    if x is None or pd.isna(x):
        return "NA"
    return f"{int(x):,}"


def write_report(
    *,
    output_dir: Path,
    batch: BatchResult,
    assumptions: list[str],
    generated_files: list[str],
    notes: list[str],
) -> Path:
    report_path = output_dir / REPORT_FILE

    lines: list[str] = []
    lines.append("# MEPS Diabetes Panel Cohort: Extraction Report")
    lines.append("")

    lines.append("## Run Summary")
    for outcome in batch.outcomes:
        if outcome.succeeded:
            result = outcome.result
            lines.append(
                f"- {outcome.year}: ok, {_fmt_count(result.row_count)} rows "
                f"({_fmt_count(result.person_count)} persons) -> `{result.destination.name}`"
            )
        else:
            lines.append(f"- {outcome.year}: FAILED at `{outcome.stage}` ({outcome.error_kind}): {outcome.message}")
    lines.append("")

    lines.append("## Cohort Flow")
    flow = batch.cohort_flow()
    if flow.empty:
        lines.append("- Cohort flow unavailable.")
    else:
        for year, steps in flow.groupby("year", sort=True):
            lines.append(f"### {year}")
            for _, row in steps.iterrows():
                lines.append(f"- {row['step']}: {_fmt_count(row['n_rows'])} rows, {_fmt_count(row['n_persons'])} persons")
            lines.append("")
    lines.append("")

    lines.append("## Assumptions")
    for entry in assumptions:
        lines.append(f"- {entry}")
    lines.append("")

    lines.append("## Generated Artifacts")
    for fp in sorted(generated_files):
        lines.append(f"- `{fp}`")
    lines.append("")

    lines.append("## Notes")
    if not notes:
        lines.append("- None.")
    else:
        for note in notes:
            lines.append(f"- {note}")
    lines.append("")

    report_path.write_text("\n".join(lines), encoding="utf-8")
    return report_path
