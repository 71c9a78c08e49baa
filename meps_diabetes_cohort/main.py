"""Batch entrypoint for the MEPS diabetes panel cohort extraction."""

from __future__ import annotations

import argparse
import logging
import sys

import pandas as pd

from .bq_utils import create_bq_client
from .config import ASSUMPTIONS, YEAR_DATASETS, PipelineConfig, build_config, ensure_output_dir
from .loaders import BigQueryDatasetLoader, DatasetLoader, FileDatasetLoader
from .pipeline import BatchResult, run_batch
from .reporting import write_report


def _configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _print_df(label: str, df: pd.DataFrame, max_rows: int = 30) -> None:
    print(f"\n===== {label} =====")
    if df.empty:
        print("[empty]")
        return
    if len(df) > max_rows:
        print(df.head(max_rows).to_string(index=False))
        print(f"... ({len(df)} rows total)")
    else:
        print(df.to_string(index=False))


def _verify_outputs(batch: BatchResult, notes: list[str]) -> None:
    for outcome in batch.outcomes:
        if outcome.succeeded and not outcome.result.destination.exists():
            notes.append(f"Missing expected output artifact for {outcome.year}: {outcome.result.destination.name}")


def build_loader(config: PipelineConfig) -> DatasetLoader:
    if config.bq_dataset:
        client = create_bq_client(location=config.bq_location)
        return BigQueryDatasetLoader(client, config.bq_dataset)
    return FileDatasetLoader(config.source_dir)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build per-year MEPS diabetes panel cohort extracts.")
    parser.add_argument("--years", nargs="+", type=int, default=None,
                        help=f"Panel-years to process (default: all of {sorted(YEAR_DATASETS)})")
    parser.add_argument("--source-dir", default=None, help="Directory holding MEPS .csv/.ssp/.xpt files")
    parser.add_argument("--output-dir", default=None, help="Directory for the per-year CSV extracts")
    parser.add_argument("--bq-dataset", default=None, help="Read source tables from this BigQuery dataset instead")
    parser.add_argument("--workers", type=int, default=1, help="Number of years processed concurrently")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--print-tables", action="store_true", help="Print the summary and cohort flow tables")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None, loader: DatasetLoader | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.log_level)

    config = build_config(
        args.years,
        source_dir=args.source_dir,
        output_dir=args.output_dir,
        bq_dataset=args.bq_dataset,
    )
    output_dir = ensure_output_dir(config)
    loader = loader or build_loader(config)

    logging.info("Starting MEPS diabetes cohort extraction. years=%s", [s.year for s in config.years])
    logging.info("Source: %s", config.bq_dataset or config.source_dir)
    logging.info("Output directory: %s", output_dir)

    batch = run_batch(config, loader=loader, max_workers=args.workers)

    notes: list[str] = []
    for outcome in batch.outcomes:
        if outcome.result is not None:
            notes.extend(f"{outcome.year}: {note}" for note in outcome.result.notes)
    _verify_outputs(batch, notes)

    generated_files = [o.result.destination.name for o in batch.outcomes if o.succeeded]
    report_path = write_report(
        output_dir=output_dir,
        batch=batch,
        assumptions=ASSUMPTIONS,
        generated_files=generated_files,
        notes=notes,
    )
    generated_files.append(report_path.name)

    if args.print_tables:
        _print_df("run_summary", batch.summary())
        _print_df("cohort_flow", batch.cohort_flow())

    if batch.all_succeeded:
        logging.info("Pipeline complete. Generated files:")
    else:
        logging.warning("Pipeline finished with failures for years %s. Generated files:", batch.failed)
    for fp in sorted(generated_files):
        logging.info("- %s", fp)

    return 0 if batch.all_succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
