"""Error taxonomy for the cohort extraction pipeline."""

from __future__ import annotations


class CohortPipelineError(Exception):
    """Base class for pipeline failures."""


class DatasetNotFound(CohortPipelineError):
    def __init__(self, dataset_id: str, detail: str = "") -> None:
        self.dataset_id = dataset_id
        message = f"Dataset not found: {dataset_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SchemaMismatchError(CohortPipelineError):
    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)


class ProjectionError(SchemaMismatchError):
    """A projected variable is absent from the cleaned rows."""


class ExportIOError(CohortPipelineError):
    pass


class JoinCardinalityWarning(UserWarning):
    """Duplicate person identifiers in one panel table; the join will fan out."""


class YearRunError(CohortPipelineError):
    """Failure of one panel-year run, tagged with the stage that failed."""

    def __init__(self, year: int, stage: str, cause: BaseException) -> None:
        self.year = year
        self.stage = stage
        self.cause = cause
        super().__init__(f"Year {year} failed at stage '{stage}': {type(cause).__name__}: {cause}")

    @property
    def kind(self) -> str:
        return type(self.cause).__name__
