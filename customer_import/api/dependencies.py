"""
Shared dependencies for the API.

The executor, store and job repository are built from the process-wide
engine here so routers and the background worker receive them explicitly.
"""
from fastapi import HTTPException, Request

from customer_import.core.config import settings
from customer_import.db.customers import CustomerStore
from customer_import.db.session import get_engine
from customer_import.domain.imports.executor import BatchExecutor
from customer_import.domain.imports.jobs import ImportJobRepository
from customer_import.domain.imports.worker import ImportWorker
from customer_import.integrations import storage


def get_job_repository() -> ImportJobRepository:
    return ImportJobRepository(get_engine())


def build_executor() -> BatchExecutor:
    """Wire a batch executor to the configured database and storage."""
    engine = get_engine()
    return BatchExecutor(
        ImportJobRepository(engine),
        CustomerStore(engine),
        # Looked up at call time so storage can be swapped in tests.
        lambda path: storage.download_file(path),
        batch_size=settings.import_batch_size,
    )


def get_import_worker(request: Request) -> ImportWorker:
    worker = getattr(request.app.state, "import_worker", None)
    if worker is None:
        raise HTTPException(status_code=503, detail="Import worker is not running")
    return worker
