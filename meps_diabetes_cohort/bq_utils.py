"""BigQuery helper functions for reading staged MEPS tables."""

from __future__ import annotations

import logging
import re

import pandas as pd
from google.api_core.exceptions import BadRequest, Forbidden, GoogleAPICallError, NotFound
from google.cloud import bigquery

from .errors import DatasetNotFound

DATASET_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_dataset_id(dataset: str) -> str:
    if not dataset:
        raise ValueError("Dataset id is empty.")
    if not DATASET_PATTERN.match(dataset):
        raise ValueError(
            f"Invalid dataset id {dataset!r}. Allowed characters: letters, numbers, underscore, dot, hyphen."
        )
    return dataset


def create_bq_client(location: str = "US") -> bigquery.Client:
    return bigquery.Client(location=location)


def run_query(client: bigquery.Client, sql: str, *, job_name: str) -> pd.DataFrame:
    logging.info("Running query: %s", job_name)
    try:
        job = client.query(sql)
        result = job.result()
        df = result.to_dataframe(create_bqstorage_client=True)
        logging.info("Finished query: %s | rows=%s", job_name, len(df))
        return df
    except NotFound as exc:
        logging.error("BigQuery table not found: %s", job_name)
        raise DatasetNotFound(job_name, str(exc)) from exc
    except (BadRequest, Forbidden, GoogleAPICallError) as exc:
        logging.exception("BigQuery query failed: %s", job_name)
        raise RuntimeError(f"BigQuery query failed ({job_name}): {exc}") from exc


def read_table(client: bigquery.Client, dataset: str, table_id: str) -> pd.DataFrame:
    dataset = validate_dataset_id(dataset)
    table_id = validate_dataset_id(table_id)
    return run_query(client, f"SELECT * FROM `{dataset}.{table_id}`", job_name=table_id)
