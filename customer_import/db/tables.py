"""
Table definitions for the customer store and the import job records.

Tables are declared with SQLAlchemy Core so the same definitions work against
Postgres in production and SQLite in tests.
"""
from __future__ import annotations

import threading

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("client_name", String(512), nullable=False),
    Column("client_email", String(320), nullable=False),
    Column("phone_number", String(64)),
    Column("birthday", Date),
    Column("address", Text),
    Column("tags", Text),
    Column("marketing_email_opt_in", Boolean),
    Column("marketing_text_opt_in", Boolean),
    Column("transactional_text_opt_in", Boolean),
    Column("agree_to_liability_waiver", Boolean),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    # The store-level guarantee that concurrent jobs cannot both insert an email.
    UniqueConstraint("client_email", name="uq_customers_client_email"),
)

csv_imports = Table(
    "csv_imports",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("filename", String(512), nullable=False),
    Column("source_path", Text),
    Column("column_mapping", JSON),
    Column("status", String(32), nullable=False, default="pending"),
    Column("succeeded", Integer, nullable=False, default=0),
    Column("failed", Integer, nullable=False, default=0),
    Column("total_records", Integer, nullable=False, default=0),
    Column("error_log", JSON),
    Column("error_message", Text),
    Column("started_at", DateTime(timezone=True)),
    Column("completed_at", DateTime(timezone=True)),
    Column("processing_time_ms", Integer),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)

_tables_initialized = False
_table_init_lock = threading.Lock()


def ensure_tables(engine: Engine) -> None:
    """Create the customers and csv_imports tables on-demand."""
    global _tables_initialized
    if _tables_initialized:
        return

    with _table_init_lock:
        if _tables_initialized:
            return
        metadata.create_all(engine, tables=[customers, csv_imports])
        _tables_initialized = True


def reset_tables_flag() -> None:
    global _tables_initialized
    with _table_init_lock:
        _tables_initialized = False
