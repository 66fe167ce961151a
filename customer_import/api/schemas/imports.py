"""
Request and response models for the import endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CreateImportJobRequest(BaseModel):
    """Create a pending Job Record before the file is processed."""
    filename: str = Field(..., min_length=1)
    source_path: Optional[str] = None
    mapping: Optional[Dict[str, str]] = None


class ProcessCsvRequest(BaseModel):
    """
    Job descriptor sent by the upload flow.

    Every field is optional at the schema level so that a structurally
    incomplete descriptor can be answered with a ``missing_parameters``
    rejection instead of a generic validation error.
    """
    import_id: Optional[int] = None
    storage_path: Optional[str] = None  # e.g., imports/1691432334-customers.csv
    mapping: Optional[Dict[str, str]] = None  # csv header -> customer field

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.import_id:
            missing.append("import_id")
        if not self.storage_path or not self.storage_path.strip():
            missing.append("storage_path")
        if self.mapping is None:
            missing.append("mapping")
        return missing


class ProcessCsvAcknowledgement(BaseModel):
    """Accept/reject answer to a trigger; never carries row outcomes."""
    accepted: bool
    started: bool = False
    import_id: Optional[int] = None
    error: Optional[str] = None
    missing: List[str] = []
    warnings: List[str] = []


class ErrorLogEntryInfo(BaseModel):
    row_number: int
    code: str
    message: str


class ImportJobInfo(BaseModel):
    """What pollers see of an import job."""
    id: int
    filename: str
    source_path: Optional[str] = None
    column_mapping: Dict[str, str] = {}
    status: str
    succeeded: int = 0
    failed: int = 0
    total_records: int = 0
    progress: int = 0
    error_log: List[ErrorLogEntryInfo] = []
    error_summary: Dict[str, int] = {}
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportJobResponse(BaseModel):
    """Response wrapper for a single import job."""
    success: bool
    job: ImportJobInfo


class ImportJobListResponse(BaseModel):
    """Response wrapper for a list of import jobs."""
    success: bool
    jobs: List[ImportJobInfo]
    total_count: int
    limit: int
    offset: int
