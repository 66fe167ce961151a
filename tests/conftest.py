"""
Pytest configuration and fixtures for the customer import tests.

Tests run against an in-memory SQLite database instead of Postgres. The
environment is set before any application module is imported so the shared
engine and settings pick it up.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_PROVIDER", "local")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from customer_import.db.customers import CustomerStore
from customer_import.db.session import get_engine
from customer_import.db.tables import ensure_tables, metadata, reset_tables_flag
from customer_import.domain.imports.executor import BatchExecutor
from customer_import.domain.imports.jobs import ImportJobRepository
from customer_import.integrations.storage import StorageDownloadError


@pytest.fixture
def engine():
    """Fresh customers/csv_imports tables for every test."""
    engine = get_engine()
    metadata.drop_all(engine)
    reset_tables_flag()
    ensure_tables(engine)
    yield engine
    metadata.drop_all(engine)
    reset_tables_flag()


@pytest.fixture
def store(engine):
    return CustomerStore(engine)


@pytest.fixture
def jobs(engine):
    return ImportJobRepository(engine)


@pytest.fixture
def source_files():
    """In-memory stand-in for object storage: storage path -> bytes."""
    return {}


@pytest.fixture
def fetch_source(source_files):
    def fetch(path: str) -> bytes:
        if path not in source_files:
            raise StorageDownloadError(f"File not found: {path}")
        return source_files[path]
    return fetch


@pytest.fixture
def make_executor(jobs, store, fetch_source):
    def make(batch_size: int = 50, **kwargs) -> BatchExecutor:
        return BatchExecutor(jobs, kwargs.pop("store", store), fetch_source, batch_size=batch_size, **kwargs)
    return make


@pytest.fixture
def create_job(jobs, source_files):
    """Upload ``content`` under a storage path and create a pending job for it."""
    def create(content, mapping, filename: str = "customers.csv"):
        path = f"imports/{len(source_files) + 1}-{filename}"
        source_files[path] = content.encode("utf-8") if isinstance(content, str) else content
        return jobs.create_import_job(filename=filename, source_path=path, column_mapping=mapping)
    return create


STANDARD_MAPPING = {
    "First Name": "first_name",
    "Last Name": "last_name",
    "Email": "client_email",
    "Phone": "phone_number",
    "Birthday": "birthday",
    "Email Opt In": "marketing_email_opt_in",
}


@pytest.fixture
def standard_mapping():
    return dict(STANDARD_MAPPING)
