"""
Deduplication gate: rejects candidates whose email is already in the store.
"""
from typing import Protocol

from customer_import.domain.imports.errors import DuplicateKeyError
from customer_import.domain.imports.mapper import CUSTOMER_SCHEMA, CandidateRecord, TargetSchema


class CustomerLookup(Protocol):
    def exists(self, email: str) -> bool: ...


class DeduplicationGate:
    """
    Per-row uniqueness check against the store's current state.

    The check runs immediately before each insert. It narrows, but cannot
    close, the window in which a concurrent writer inserts the same email;
    the store's unique constraint catches the rest.
    """

    def __init__(self, lookup: CustomerLookup, schema: TargetSchema = CUSTOMER_SCHEMA):
        self.lookup = lookup
        self.schema = schema

    def check(self, record: CandidateRecord) -> None:
        key = record.text(self.schema.identity_field)
        if key and self.lookup.exists(key):
            raise DuplicateKeyError(self.schema.identity_field, key)
