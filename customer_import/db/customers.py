"""
Customer store: the lookup and insert capability used by imports.

The store is handed to the batch executor explicitly; nothing here reads a
module-level engine.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from customer_import.db.tables import customers
from customer_import.domain.imports.errors import DuplicateKeyError, StoreInsertError
from customer_import.domain.imports.mapper import CandidateRecord

logger = logging.getLogger(__name__)

IDENTITY_COLUMN = "client_email"


def derive_client_name(row: Dict[str, Any]) -> str:
    """Convenience display name: ``"first last"``."""
    first = row.get("first_name") or ""
    last = row.get("last_name") or ""
    return f"{first} {last}".strip()


class CustomerStore:
    """Customer table access bound to an engine."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def find_id_by_email(self, email: str) -> Optional[int]:
        """
        Return the id of the customer with exactly this email, if any.

        Raises:
            StoreInsertError: If the lookup itself fails.
        """
        query = select(customers.c.id).where(customers.c.client_email == email).limit(1)
        try:
            with self.engine.connect() as conn:
                return conn.execute(query).scalar()
        except SQLAlchemyError as e:
            logger.error("Customer lookup failed for %r: %s", email, e)
            raise StoreInsertError(f"lookup failed: {e.__class__.__name__}") from e

    def exists(self, email: str) -> bool:
        return self.find_id_by_email(email) is not None

    def insert(self, record: CandidateRecord) -> int:
        """
        Insert a validated candidate and return the new customer id.

        A unique-constraint rejection on the email (a concurrent writer got
        there first) is reported as ``DuplicateKeyError``; every other store
        rejection as ``StoreInsertError``.
        """
        row = record.to_row()
        row["client_name"] = derive_client_name(row)

        try:
            with self.engine.begin() as conn:
                result = conn.execute(insert(customers).values(**row))
                return result.inserted_primary_key[0]
        except IntegrityError as e:
            email = row.get(IDENTITY_COLUMN)
            if email and self.exists(email):
                raise DuplicateKeyError(IDENTITY_COLUMN, email) from e
            logger.warning("Customer insert rejected: %s", e.orig)
            raise StoreInsertError(f"insert rejected: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.warning("Customer insert failed: %s", e)
            raise StoreInsertError(f"insert failed: {e.__class__.__name__}: {e}") from e

    def delete_by_email(self, email: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(customers).where(customers.c.client_email == email))
            return result.rowcount

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(customers)).scalar() or 0
