import threading
from typing import Dict, Hashable
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)


class JobLockManager:
    """
    Manages one lock per import job id so two runs of the same job never
    write its Job Record at the same time. Distinct jobs do not contend.
    """
    _locks: Dict[Hashable, threading.Lock] = {}
    _global_lock = threading.Lock()

    @classmethod
    def get_lock(cls, job_id: Hashable) -> threading.Lock:
        """Get or create the lock for a specific job."""
        with cls._global_lock:
            if job_id not in cls._locks:
                cls._locks[job_id] = threading.Lock()
            return cls._locks[job_id]

    @classmethod
    @contextmanager
    def acquire(cls, job_id: Hashable):
        """Context manager to acquire and release a job's run lock."""
        lock = cls.get_lock(job_id)
        if lock.locked():
            logger.info(f"Import job {job_id} is already running; waiting for it to finish")
        lock.acquire()
        logger.debug(f"Acquired run lock for import job {job_id}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released run lock for import job {job_id}")
