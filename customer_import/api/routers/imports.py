"""
Endpoints for triggering CSV imports and tracking their progress.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from customer_import.api.dependencies import get_import_worker, get_job_repository
from customer_import.api.schemas.imports import (
    CreateImportJobRequest,
    ImportJobListResponse,
    ImportJobResponse,
    ProcessCsvAcknowledgement,
    ProcessCsvRequest,
)
from customer_import.domain.imports.errors import JobAlreadyRunningError
from customer_import.domain.imports.jobs import ImportJobRepository, JobStatus
from customer_import.domain.imports.mapper import mapping_warnings
from customer_import.domain.imports.worker import ImportWorker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])


def _acknowledge(status_code: int, ack: ProcessCsvAcknowledgement) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ack.model_dump())


@router.post("/import-jobs", response_model=ImportJobResponse, status_code=201)
async def create_import_job_endpoint(
    request: CreateImportJobRequest,
    jobs: ImportJobRepository = Depends(get_job_repository),
):
    """Create a pending import job for a file that is about to be processed."""
    job = jobs.create_import_job(
        filename=request.filename,
        source_path=request.source_path,
        column_mapping=request.mapping,
    )
    return ImportJobResponse(success=True, job=job)


@router.post("/process-csv-import", response_model=ProcessCsvAcknowledgement, status_code=202)
async def process_csv_import_endpoint(
    request: ProcessCsvRequest,
    jobs: ImportJobRepository = Depends(get_job_repository),
    worker: ImportWorker = Depends(get_import_worker),
):
    """
    Start processing an uploaded CSV file in the background.

    The response only says whether the job was accepted. Poll
    ``/import-jobs/{import_id}`` for counters and row errors.

    Parameters:
    - import_id: Existing import job to run
    - storage_path: ``<bucket>/<key>`` of the uploaded file
    - mapping: CSV header -> customer field
    """
    missing = request.missing_fields()
    if missing:
        logger.warning("Rejected import trigger for job %s: missing %s", request.import_id, missing)
        return _acknowledge(
            400,
            ProcessCsvAcknowledgement(
                accepted=False,
                import_id=request.import_id,
                error="missing_parameters",
                missing=missing,
            ),
        )

    if jobs.get_import_job(request.import_id) is None:
        return _acknowledge(
            404,
            ProcessCsvAcknowledgement(accepted=False, import_id=request.import_id, error="job_not_found"),
        )

    warnings = mapping_warnings(request.mapping)
    for warning in warnings:
        logger.warning("Import job %s mapping: %s", request.import_id, warning)

    try:
        worker.submit(
            request.import_id,
            source_path=request.storage_path.strip(),
            column_mapping=request.mapping,
        )
    except JobAlreadyRunningError:
        logger.warning("Rejected import trigger for job %s: already queued or running", request.import_id)
        return _acknowledge(
            409,
            ProcessCsvAcknowledgement(accepted=False, import_id=request.import_id, error="job_running"),
        )

    return _acknowledge(
        202,
        ProcessCsvAcknowledgement(
            accepted=True,
            started=True,
            import_id=request.import_id,
            warnings=warnings,
        ),
    )


@router.get("/import-jobs/{job_id}", response_model=ImportJobResponse)
async def get_import_job_endpoint(
    job_id: int,
    jobs: ImportJobRepository = Depends(get_job_repository),
):
    job = jobs.get_import_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return ImportJobResponse(success=True, job=job)


@router.get("/import-jobs", response_model=ImportJobListResponse)
async def list_import_jobs_endpoint(
    status: Optional[JobStatus] = None,
    limit: int = 50,
    offset: int = 0,
    jobs: ImportJobRepository = Depends(get_job_repository),
):
    items, total = jobs.list_import_jobs(
        status=status.value if status else None,
        limit=limit,
        offset=offset,
    )
    return ImportJobListResponse(
        success=True,
        jobs=items,
        total_count=total,
        limit=limit,
        offset=offset,
    )
