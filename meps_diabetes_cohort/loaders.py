"""Dataset loaders supplying typed MEPS tables to the pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import pandas as pd
from google.cloud import bigquery

from .bq_utils import read_table, validate_dataset_id
from .config import DIAGNOSIS_CODE, PERSON_ID
from .errors import DatasetNotFound

CSV_SUFFIXES = (".csv",)
TRANSPORT_SUFFIXES = (".ssp", ".xpt")


class DatasetLoader(Protocol):
    def load(self, dataset_id: str) -> pd.DataFrame:
        ...


def _decode_object_cols(df: pd.DataFrame) -> pd.DataFrame:
    for col in df.columns:
        if df[col].dtype == "object" and df[col].map(lambda v: isinstance(v, bytes)).any():
            df[col] = df[col].map(lambda v: v.decode("latin1") if isinstance(v, bytes) else v)
    return df


def read_transport_file(path: Path) -> pd.DataFrame:
    """Read a SAS transport (XPORT) file, falling back to latin-1 for older files."""
    last_err = None
    for enc in ("utf-8", "latin1"):
        try:
            raw = pd.read_sas(path, format="xport", encoding=enc)
            if enc != "utf-8":
                logging.info("%s: using fallback encoding %s", path.name, enc)
            break
        except UnicodeDecodeError as exc:
            last_err = exc
    else:
        raise last_err
    return _decode_object_cols(raw)


class FileDatasetLoader:
    """Resolve dataset ids to files under ``source_dir`` (``h207.csv``, ``h207.ssp``, ...)."""

    def __init__(self, source_dir: str | Path) -> None:
        self.source_dir = Path(source_dir)

    def resolve(self, dataset_id: str) -> Path:
        validate_dataset_id(dataset_id)
        for suffix in (*CSV_SUFFIXES, *TRANSPORT_SUFFIXES):
            for name in (f"{dataset_id}{suffix}", f"{dataset_id}{suffix.upper()}"):
                candidate = self.source_dir / name
                if candidate.is_file():
                    return candidate
        raise DatasetNotFound(dataset_id, f"no .csv/.ssp/.xpt file under {self.source_dir}")

    def load(self, dataset_id: str) -> pd.DataFrame:
        path = self.resolve(dataset_id)
        if path.suffix.lower() in CSV_SUFFIXES:
            header = pd.read_csv(path, nrows=0).columns
            text_cols = {c: str for c in header if str(c).upper() in (PERSON_ID, DIAGNOSIS_CODE)}
            df = pd.read_csv(path, dtype=text_cols, low_memory=False)
        else:
            df = read_transport_file(path)
        df.columns = [str(c).upper() for c in df.columns]
        logging.info("Loaded %s from %s | rows=%s cols=%s", dataset_id, path.name, len(df), len(df.columns))
        return df


class BigQueryDatasetLoader:
    """Load MEPS tables staged as ``<dataset>.<dataset_id>`` in BigQuery."""

    def __init__(self, client: bigquery.Client, dataset: str) -> None:
        self.client = client
        self.dataset = validate_dataset_id(dataset)

    def load(self, dataset_id: str) -> pd.DataFrame:
        df = read_table(self.client, self.dataset, dataset_id)
        df.columns = [str(c).upper() for c in df.columns]
        return df
