"""MEPS diabetes panel cohort extraction."""

from .cohort import filter_diagnoses, filter_eligible, join_cohort, project_variables
from .config import PipelineConfig, YearSpec, build_config
from .errors import (
    CohortPipelineError,
    DatasetNotFound,
    ExportIOError,
    JoinCardinalityWarning,
    ProjectionError,
    SchemaMismatchError,
    YearRunError,
)
from .pipeline import BatchResult, ExportResult, run_batch, run_year

__version__ = "0.1.0"
