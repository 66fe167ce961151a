"""
Background execution of import jobs.

The HTTP trigger submits a job id and returns straight away; a pool of worker
threads picks jobs up and owns each Job Record for the length of its run.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Any, Callable, Dict, Optional

from customer_import.domain.imports.errors import JobAlreadyRunningError, JobNotFoundError
from customer_import.domain.imports.executor import BatchExecutor

logger = logging.getLogger(__name__)


class ImportWorker:
    """Queue of import runs consumed by a bounded thread pool."""

    def __init__(self, executor_factory: Callable[[], BatchExecutor], max_workers: int = 4):
        self.executor_factory = executor_factory
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="csv-import")
        self._futures: Dict[int, Future] = {}
        self._lock = threading.Lock()

    def _run(self, job_id: int, descriptor: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.executor_factory().run(job_id, **descriptor)
        except JobNotFoundError:
            logger.error("Import job %s disappeared before it could run", job_id)
            return None
        except Exception:
            logger.exception("Import job %s crashed in the worker", job_id)
            raise
        finally:
            # Cleared before the future resolves so join() never sees a stale entry.
            with self._lock:
                self._futures.pop(job_id, None)

    def submit(self, job_id: int, **descriptor: Any) -> Future:
        """
        Queue a run of ``job_id`` and return its future.

        ``descriptor`` (``source_path``, ``column_mapping``) is stored on the
        Job Record by the run itself, once it holds the job's lock.

        Raises:
            JobAlreadyRunningError: If a run of this job is queued or in progress.
        """
        with self._lock:
            if job_id in self._futures:
                raise JobAlreadyRunningError(job_id)
            future = self._pool.submit(self._run, job_id, descriptor)
            self._futures[job_id] = future
        logger.info("Queued import job %s", job_id)
        return future

    def is_active(self, job_id: int) -> bool:
        with self._lock:
            return job_id in self._futures

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the runs queued so far. Returns False on timeout."""
        with self._lock:
            pending = list(self._futures.values())
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
