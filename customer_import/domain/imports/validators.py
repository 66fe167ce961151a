"""
Row validation for candidate customer records.

Only two things are checked here: that the required fields are present and
that the identity (email) field looks like an email address. Everything else
is left to the store.
"""

import re
from typing import Optional

from customer_import.domain.imports.errors import InvalidFormatError, MissingRequiredFieldError
from customer_import.domain.imports.mapper import CUSTOMER_SCHEMA, CandidateRecord, TargetSchema

# Non-empty local part, "@", and a domain part containing a dot.
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value) is not None


def validate_candidate(record: CandidateRecord, schema: TargetSchema = CUSTOMER_SCHEMA) -> None:
    """
    Validate a candidate record.

    Raises:
        MissingRequiredFieldError: If any required field is absent.
        InvalidFormatError: If the identity field is not a valid email.
    """
    missing = [name for name in schema.required_fields if not record.is_present(name)]
    if missing:
        raise MissingRequiredFieldError(missing)

    identity = record.text(schema.identity_field)
    if not is_valid_email(identity):
        raise InvalidFormatError(schema.identity_field, identity or "")
