"""
Batch executor: runs one CSV import job end to end.

For every data row the executor runs the mapper, validator, deduplication
gate and store insert in sequence. Row failures are counted and logged on the
job; they never stop the run. Progress is checkpointed to the Job Record after
every batch so pollers see counters grow while the job runs.

Rows are processed strictly one after another: the deduplication gate must see
the outcome of the previous insert before it checks the next row.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from customer_import.domain.imports.csv_parser import DelimitedText
from customer_import.domain.imports.dedup import DeduplicationGate
from customer_import.domain.imports.errors import (
    EmptySourceFileError,
    InvalidDescriptorError,
    JobLevelError,
    JobNotFoundError,
    RowLevelError,
    SourceFileUnreadableError,
)
from customer_import.domain.imports.jobs import ImportJobRepository, ImportProgress
from customer_import.domain.imports.mapper import (
    CUSTOMER_SCHEMA,
    TargetSchema,
    map_row,
    resolve_mapped_columns,
)
from customer_import.domain.imports.validators import validate_candidate
from customer_import.integrations.storage import StorageError
from customer_import.utils.locks import JobLockManager

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
# Data row index 0 is file line 2: the header occupies line 1.
ROW_NUMBER_OFFSET = 2

FetchSource = Callable[[str], bytes]


@dataclass
class SourceFile:
    headers: List[str]
    rows: List[List[str]]


def iter_batches(rows: Sequence[List[str]], batch_size: int) -> Iterator[Tuple[int, Sequence[List[str]]]]:
    """Yield ``(start_index, batch)`` slices of ``rows``."""
    for start in range(0, len(rows), batch_size):
        yield start, rows[start:start + batch_size]


def decode_source(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise SourceFileUnreadableError(f"Source file is not valid UTF-8 text: {e}") from e


class BatchExecutor:
    """
    Runs import jobs against an explicit customer store.

    Args:
        jobs: Job Record persistence.
        store: Customer lookup/insert capability (``exists`` and ``insert``).
        fetch_source: Callable returning the raw bytes for a storage path.
        batch_size: Rows processed between progress checkpoints.
    """

    def __init__(
        self,
        jobs: ImportJobRepository,
        store: Any,
        fetch_source: FetchSource,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        schema: TargetSchema = CUSTOMER_SCHEMA,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.jobs = jobs
        self.store = store
        self.fetch_source = fetch_source
        self.batch_size = batch_size
        self.schema = schema
        self.gate = DeduplicationGate(store, schema)

    def load_source(self, storage_path: Optional[str]) -> SourceFile:
        """
        Fetch and parse the source file.

        Raises:
            InvalidDescriptorError: If there is no storage path.
            SourceFileUnreadableError: If the file cannot be fetched or decoded.
            EmptySourceFileError: If the file has no header or no data rows.
        """
        if not storage_path:
            raise InvalidDescriptorError(["storage_path"])
        try:
            content = self.fetch_source(storage_path)
        except StorageError as e:
            raise SourceFileUnreadableError(str(e)) from e
        except OSError as e:
            raise SourceFileUnreadableError(f"Could not read {storage_path}: {e}") from e

        rows = list(DelimitedText(decode_source(content)))
        if not rows:
            raise EmptySourceFileError("empty_csv: source file has no rows")
        if len(rows) == 1:
            raise EmptySourceFileError("empty_csv: source file has a header but no data rows")
        return SourceFile(headers=rows[0], rows=rows[1:])

    def process_row(self, headers: Sequence[str], mapping: Dict[str, str], raw_row: Sequence[str], columns: List[Tuple[int, str]]) -> int:
        """Map, validate, dedupe and insert one row. Returns the new customer id."""
        record = map_row(headers, mapping, raw_row, self.schema, columns=columns)
        validate_candidate(record, self.schema)
        self.gate.check(record)
        return self.store.insert(record)

    def run(
        self,
        job_id: int,
        *,
        source_path: Optional[str] = None,
        column_mapping: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Run (or re-run) an import job to completion.

        A ``source_path`` or ``column_mapping`` passed here replaces the one on
        the Job Record before the run starts, while the job's lock is held.

        Returns the final Job Record. Row-level failures are recorded on the
        job; a job-level fault leaves the job ``failed`` with an error message.

        Raises:
            JobNotFoundError: If there is no Job Record with this id.
        """
        with JobLockManager.acquire(job_id):
            job = self.jobs.get_import_job(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if source_path is not None or column_mapping is not None:
                job = self.jobs.attach_descriptor(
                    job_id,
                    source_path=source_path if source_path is not None else job["source_path"],
                    column_mapping=column_mapping if column_mapping is not None else job["column_mapping"],
                )

            started = time.monotonic()

            def elapsed_ms() -> int:
                return int((time.monotonic() - started) * 1000)

            self.jobs.start_run(job_id)
            logger.info("Starting import job %s from %s", job_id, job["source_path"])

            try:
                return self._run_started(job, elapsed_ms)
            except JobLevelError as e:
                return self.jobs.fail_import_job(job_id, str(e), elapsed_ms())
            except Exception as e:
                logger.exception("Import job %s aborted unexpectedly", job_id)
                return self.jobs.fail_import_job(job_id, f"Processing failed: {e}", elapsed_ms())

    def _run_started(self, job: Dict[str, Any], elapsed_ms: Callable[[], int]) -> Dict[str, Any]:
        job_id = job["id"]
        mapping = job["column_mapping"]

        source = self.load_source(job["source_path"])
        columns = resolve_mapped_columns(source.headers, mapping)
        self.jobs.set_total_records(job_id, len(source.rows))
        logger.info(
            "Import job %s: %d data rows, %d mapped columns, batch size %d",
            job_id,
            len(source.rows),
            len(columns),
            self.batch_size,
        )

        progress = ImportProgress()
        for start, batch in iter_batches(source.rows, self.batch_size):
            for offset, raw_row in enumerate(batch):
                row_number = start + offset + ROW_NUMBER_OFFSET
                try:
                    self.process_row(source.headers, mapping, raw_row, columns)
                except RowLevelError as e:
                    progress.record_failure(row_number, e)
                    logger.debug("Import job %s row %d rejected: %s", job_id, row_number, e)
                else:
                    progress.record_success()

            self.jobs.record_progress(job_id, progress, elapsed_ms())
            logger.info(
                "Import job %s: %d/%d rows processed (%d succeeded, %d failed)",
                job_id,
                progress.processed,
                len(source.rows),
                progress.succeeded,
                progress.failed,
            )

        return self.jobs.complete_import_job(job_id, progress, elapsed_ms())
