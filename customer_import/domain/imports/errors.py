"""
Error taxonomy for CSV imports.

Job-level errors abort a whole run and end up as the job's single
``error_message``. Row-level errors are recovered per row: they are counted,
appended to the job's error log under their ``code`` and never stop the batch.
"""
from __future__ import annotations

from enum import Enum


class RowErrorCode(str, Enum):
    """Machine-readable reason codes written to the job error log."""
    missing_required_field = "missing_required_field"
    invalid_format = "invalid_format"
    duplicate_key = "duplicate_key"
    store_insert_error = "store_insert_error"


class CsvImportError(Exception):
    """Base exception for the import pipeline."""


class JobLevelError(CsvImportError):
    """Raised when a whole import job cannot proceed."""


class InvalidDescriptorError(JobLevelError):
    """Raised when a job descriptor lacks a file reference, mapping or job id."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"missing_parameters: {', '.join(missing)}")


class JobNotFoundError(JobLevelError):
    """Raised when the job id in a descriptor has no Job Record."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Import job {job_id} not found")


class SourceFileUnreadableError(JobLevelError):
    """Raised when the source file cannot be fetched or decoded."""


class EmptySourceFileError(JobLevelError):
    """Raised when the source file holds no data rows after parsing."""


class RowLevelError(CsvImportError):
    """Base class for failures that only reject a single row."""
    code: RowErrorCode = RowErrorCode.store_insert_error


class MissingRequiredFieldError(RowLevelError):
    code = RowErrorCode.missing_required_field

    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"missing required fields: {', '.join(fields)}")


class InvalidFormatError(RowLevelError):
    code = RowErrorCode.invalid_format

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field}: invalid format {value!r}")


class DuplicateKeyError(RowLevelError):
    code = RowErrorCode.duplicate_key

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {value!r} already exists")


class StoreInsertError(RowLevelError):
    """Catch-all for store-layer rejections not classified elsewhere."""
    code = RowErrorCode.store_insert_error


class JobStateError(JobLevelError):
    """Raised when a Job Record update would move its status backward."""

    def __init__(self, job_id: int, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Import job {job_id} cannot move from '{current}' to '{target}'")


class JobAlreadyRunningError(JobLevelError):
    """Raised when a trigger arrives for a job that is already queued or running."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Import job {job_id} is already queued or running")
