import pytest

from customer_import.domain.imports.errors import (
    InvalidFormatError,
    MissingRequiredFieldError,
    RowErrorCode,
)
from customer_import.domain.imports.mapper import Absent, BoolValue, CandidateRecord, StringValue
from customer_import.domain.imports.validators import is_valid_email, validate_candidate


def _record(**values):
    return CandidateRecord({
        name: (StringValue(value) if isinstance(value, str) else value)
        for name, value in values.items()
    })


def test_complete_record_passes():
    validate_candidate(_record(first_name="Jane", last_name="Doe", client_email="jane@example.com"))


@pytest.mark.parametrize("missing", ["first_name", "last_name", "client_email"])
def test_missing_required_field_fails(missing):
    values = {"first_name": "Jane", "last_name": "Doe", "client_email": "jane@example.com"}
    values[missing] = Absent
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        validate_candidate(_record(**values))
    assert exc_info.value.code == RowErrorCode.missing_required_field
    assert exc_info.value.fields == [missing]


def test_unmapped_required_field_counts_as_missing():
    with pytest.raises(MissingRequiredFieldError):
        validate_candidate(_record(first_name="Jane", client_email="jane@example.com"))


def test_missing_fields_are_checked_before_email_format():
    with pytest.raises(MissingRequiredFieldError):
        validate_candidate(_record(first_name="Jane", client_email="not-an-email"))


@pytest.mark.parametrize("email", ["jane.example.com", "jane@example", "@example.com", "jane@.com", "ja ne@example.com"])
def test_malformed_email_fails(email):
    with pytest.raises(InvalidFormatError) as exc_info:
        validate_candidate(_record(first_name="Jane", last_name="Doe", client_email=email))
    assert exc_info.value.code == RowErrorCode.invalid_format


def test_booleans_do_not_affect_validation():
    validate_candidate(_record(
        first_name="Jane",
        last_name="Doe",
        client_email="jane@example.com",
        marketing_email_opt_in=BoolValue(False),
    ))


@pytest.mark.parametrize("email,expected", [
    ("a@b.co", True),
    ("first.last+tag@sub.example.org", True),
    ("a@b", False),
    ("", False),
    (None, False),
])
def test_is_valid_email(email, expected):
    assert is_valid_email(email) is expected
