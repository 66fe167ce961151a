"""
Persistent tracking for CSV import jobs.

A job record is what callers poll: status, counters, the per-row error log
and timing. Only the run that owns a job writes to it.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine

from customer_import.db.tables import csv_imports, ensure_tables
from customer_import.domain.imports.errors import JobNotFoundError, JobStateError, RowLevelError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


# Statuses a job may be in before each transition. Checkpoints only land on a
# job that is already processing; completed and failed jobs are re-entered
# solely through ``start_run``.
_ALLOWED_FROM = {
    JobStatus.processing: {JobStatus.processing},
    JobStatus.completed: {JobStatus.processing},
    JobStatus.failed: {JobStatus.pending, JobStatus.processing},
}
# A processing job found by ``start_run`` was left behind by an interrupted run.
_RUN_STARTABLE_FROM = {JobStatus.pending, JobStatus.processing, JobStatus.completed, JobStatus.failed}


@dataclass(frozen=True)
class ErrorLogEntry:
    row_number: int
    code: str
    message: str

    @classmethod
    def from_error(cls, row_number: int, error: RowLevelError) -> "ErrorLogEntry":
        return cls(row_number=row_number, code=error.code.value, message=str(error))

    def to_dict(self) -> Dict[str, Any]:
        return {"row_number": self.row_number, "code": self.code, "message": self.message}


@dataclass
class ImportProgress:
    """Counters and error log accumulated by a single run."""
    succeeded: int = 0
    failed: int = 0
    errors: List[ErrorLogEntry] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, row_number: int, error: RowLevelError) -> None:
        self.failed += 1
        self.errors.append(ErrorLogEntry.from_error(row_number, error))

    def error_log(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.errors]


def summarize_errors(error_log: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, int]:
    """Count error log entries per reason code."""
    return dict(Counter(entry.get("code", "unknown") for entry in (error_log or [])))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_job(row: Any) -> Dict[str, Any]:
    total = row["total_records"] or 0
    processed = (row["succeeded"] or 0) + (row["failed"] or 0)
    error_log = row["error_log"] or []
    return {
        "id": row["id"],
        "filename": row["filename"],
        "source_path": row["source_path"],
        "column_mapping": row["column_mapping"] or {},
        "status": row["status"],
        "succeeded": row["succeeded"] or 0,
        "failed": row["failed"] or 0,
        "total_records": total,
        "progress": min(100, round(processed * 100 / total)) if total else 0,
        "error_log": error_log,
        "error_summary": summarize_errors(error_log),
        "error_message": row["error_message"],
        "started_at": row["started_at"],
        "completed_at": row["completed_at"],
        "processing_time_ms": row["processing_time_ms"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


class ImportJobRepository:
    """Reads and writes ``csv_imports`` rows through an explicit engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        ensure_tables(engine)

    def create_import_job(
        self,
        *,
        filename: str,
        source_path: Optional[str] = None,
        column_mapping: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create and persist a new pending import job."""
        now = _now()
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(csv_imports).values(
                    filename=filename,
                    source_path=source_path,
                    column_mapping=column_mapping or {},
                    status=JobStatus.pending.value,
                    succeeded=0,
                    failed=0,
                    total_records=0,
                    error_log=[],
                    created_at=now,
                    updated_at=now,
                )
            )
            job_id = result.inserted_primary_key[0]
            row = conn.execute(select(csv_imports).where(csv_imports.c.id == job_id)).mappings().first()
        if not row:
            raise RuntimeError("Failed to create import job")
        logger.info("Created import job %s for %s", job_id, filename)
        return _row_to_job(row)

    def get_import_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        """Fetch a single job by ID."""
        with self.engine.connect() as conn:
            row = conn.execute(select(csv_imports).where(csv_imports.c.id == job_id)).mappings().first()
        return _row_to_job(row) if row else None

    def list_import_jobs(
        self,
        *,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List jobs, newest first, optionally filtered by status."""
        query = select(csv_imports)
        count_query = select(func.count()).select_from(csv_imports)
        if status:
            query = query.where(csv_imports.c.status == status)
            count_query = count_query.where(csv_imports.c.status == status)
        query = query.order_by(csv_imports.c.id.desc()).limit(limit).offset(offset)

        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_job(row) for row in rows], total

    def _transition(
        self,
        job_id: int,
        target: JobStatus,
        values: Dict[str, Any],
        allowed_from: Optional[Iterable[JobStatus]] = None,
    ) -> Dict[str, Any]:
        """Apply ``values`` and move the job to ``target`` if the move is allowed."""
        allowed = [status.value for status in (allowed_from or _ALLOWED_FROM[target])]
        values = {**values, "status": target.value, "updated_at": _now()}

        with self.engine.begin() as conn:
            result = conn.execute(
                update(csv_imports)
                .where(csv_imports.c.id == job_id)
                .where(csv_imports.c.status.in_(allowed))
                .values(**values)
            )
            row = conn.execute(select(csv_imports).where(csv_imports.c.id == job_id)).mappings().first()

        if row is None:
            raise JobNotFoundError(job_id)
        if result.rowcount == 0:
            raise JobStateError(job_id, row["status"], target.value)
        return _row_to_job(row)

    def attach_descriptor(self, job_id: int, *, source_path: str, column_mapping: Dict[str, str]) -> Dict[str, Any]:
        """Store a trigger's file reference and mapping. Only the run holding the job's lock calls this."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(csv_imports)
                .where(csv_imports.c.id == job_id)
                .values(source_path=source_path, column_mapping=column_mapping, updated_at=_now())
            )
        if result.rowcount == 0:
            raise JobNotFoundError(job_id)
        return self.get_import_job(job_id)

    def start_run(self, job_id: int, started_at: Optional[datetime] = None) -> Dict[str, Any]:
        """Begin a (re)run: reset counters and move to ``processing``."""
        return self._transition(
            job_id,
            JobStatus.processing,
            {
                "succeeded": 0,
                "failed": 0,
                "total_records": 0,
                "error_log": [],
                "error_message": None,
                "started_at": started_at or _now(),
                "completed_at": None,
                "processing_time_ms": 0,
            },
            allowed_from=_RUN_STARTABLE_FROM,
        )

    def set_total_records(self, job_id: int, total_records: int) -> Dict[str, Any]:
        return self._transition(job_id, JobStatus.processing, {"total_records": total_records})

    def record_progress(self, job_id: int, progress: ImportProgress, processing_time_ms: int) -> Dict[str, Any]:
        """Checkpoint counters and errors after a batch."""
        return self._transition(
            job_id,
            JobStatus.processing,
            {
                "succeeded": progress.succeeded,
                "failed": progress.failed,
                "error_log": progress.error_log(),
                "processing_time_ms": processing_time_ms,
            },
        )

    def complete_import_job(self, job_id: int, progress: ImportProgress, processing_time_ms: int) -> Dict[str, Any]:
        """Persist final counters and mark the job completed."""
        job = self._transition(
            job_id,
            JobStatus.completed,
            {
                "succeeded": progress.succeeded,
                "failed": progress.failed,
                "error_log": progress.error_log(),
                "processing_time_ms": processing_time_ms,
                "completed_at": _now(),
            },
        )
        logger.info(
            "Import job %s completed: %d succeeded, %d failed in %d ms",
            job_id,
            progress.succeeded,
            progress.failed,
            processing_time_ms,
        )
        return job

    def fail_import_job(self, job_id: int, error_message: str, processing_time_ms: Optional[int] = None) -> Dict[str, Any]:
        """Mark the job failed with a single job-level message."""
        values: Dict[str, Any] = {"error_message": error_message, "completed_at": _now()}
        if processing_time_ms is not None:
            values["processing_time_ms"] = processing_time_ms
        job = self._transition(job_id, JobStatus.failed, values)
        logger.error("Import job %s failed: %s", job_id, error_message)
        return job
