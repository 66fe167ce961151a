"""
Field mapping: turns a parsed CSV row into a typed candidate customer record.

The type of every target field is decided here, once. Downstream stages only
see the tagged values below and never re-interpret raw strings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from customer_import.utils.date import parse_calendar_date

logger = logging.getLogger(__name__)

TRUTHY_TOKENS = frozenset({"true", "yes", "1", "y"})


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class DateValue:
    value: date


class _AbsentType:
    """Marker for a mapped field with no usable value."""
    _instance: Optional["_AbsentType"] = None

    def __new__(cls) -> "_AbsentType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Absent"

    def __bool__(self) -> bool:
        return False


Absent = _AbsentType()

FieldValue = Union[StringValue, BoolValue, DateValue, _AbsentType]


@dataclass(frozen=True)
class TargetSchema:
    """Type rules and constraints for the fields an import may target."""
    boolean_fields: frozenset
    date_fields: frozenset
    required_fields: Tuple[str, ...]
    identity_field: str
    known_fields: frozenset

    def is_known(self, name: str) -> bool:
        return name in self.known_fields


CUSTOMER_SCHEMA = TargetSchema(
    boolean_fields=frozenset({
        "marketing_email_opt_in",
        "marketing_text_opt_in",
        "transactional_text_opt_in",
        "agree_to_liability_waiver",
    }),
    date_fields=frozenset({"birthday"}),
    required_fields=("first_name", "last_name", "client_email"),
    identity_field="client_email",
    known_fields=frozenset({
        "first_name",
        "last_name",
        "client_email",
        "phone_number",
        "birthday",
        "address",
        "tags",
        "marketing_email_opt_in",
        "marketing_text_opt_in",
        "transactional_text_opt_in",
        "agree_to_liability_waiver",
    }),
)


@dataclass
class CandidateRecord:
    """A row after type coercion, before validation."""
    fields: Dict[str, FieldValue] = field(default_factory=dict)

    def get(self, name: str) -> FieldValue:
        return self.fields.get(name, Absent)

    def is_present(self, name: str) -> bool:
        return self.get(name) is not Absent

    def text(self, name: str) -> Optional[str]:
        value = self.get(name)
        if value is Absent:
            return None
        return str(value.value)

    def to_row(self) -> Dict[str, Any]:
        """Plain column values for an insert; absent fields become NULL."""
        return {
            name: (None if value is Absent else value.value)
            for name, value in self.fields.items()
        }


def resolve_mapped_columns(
    headers: Sequence[str],
    mapping: Mapping[str, str],
) -> List[Tuple[int, str]]:
    """
    Work out which header positions feed which target field.

    Headers without a (non-empty) target are ignored. When two headers map to
    the same target the later column wins, so only that position is kept.
    """
    by_target: Dict[str, int] = {}
    for idx, header in enumerate(headers):
        target = mapping.get(header)
        if not target:
            continue
        if target in by_target:
            logger.warning(
                "Columns %r and %r both map to '%s'; using %r",
                headers[by_target[target]],
                header,
                target,
                header,
            )
        by_target[target] = idx
    return sorted(((idx, target) for target, idx in by_target.items()), key=lambda item: item[0])


def mapping_warnings(
    mapping: Mapping[str, str],
    schema: TargetSchema = CUSTOMER_SCHEMA,
) -> List[str]:
    """
    Describe questionable aspects of a column mapping without rejecting it.

    Reports required targets nobody maps to, targets that several headers map
    to (the later column will win) and targets the schema does not know.
    """
    warnings: List[str] = []
    targets = [target for target in mapping.values() if target]

    for required in schema.required_fields:
        if required not in targets:
            warnings.append(f'Required field "{required}" is not mapped')

    seen = set()
    duplicates = []
    for target in targets:
        if target in seen and target not in duplicates:
            duplicates.append(target)
        seen.add(target)
    if duplicates:
        warnings.append(f"Duplicate field mappings: {', '.join(duplicates)}")

    unknown = sorted({target for target in targets if not schema.is_known(target)})
    if unknown:
        warnings.append(f"Unknown target fields: {', '.join(unknown)}")

    return warnings


def coerce_value(target: str, raw: str, schema: TargetSchema = CUSTOMER_SCHEMA) -> FieldValue:
    """Apply the type rule for ``target`` to an already-trimmed raw value."""
    if target in schema.boolean_fields:
        return BoolValue(raw.lower() in TRUTHY_TOKENS)
    if target in schema.date_fields:
        if not raw:
            return Absent
        parsed = parse_calendar_date(raw, log_context=target)
        return DateValue(parsed) if parsed is not None else Absent
    return StringValue(raw) if raw else Absent


def map_row(
    headers: Sequence[str],
    mapping: Mapping[str, str],
    raw_row: Sequence[str],
    schema: TargetSchema = CUSTOMER_SCHEMA,
    *,
    columns: Optional[List[Tuple[int, str]]] = None,
) -> CandidateRecord:
    """
    Build a ``CandidateRecord`` from one raw row.

    ``columns`` may carry the result of ``resolve_mapped_columns`` so a job
    resolves its mapping once instead of once per row.
    """
    if columns is None:
        columns = resolve_mapped_columns(headers, mapping)

    record = CandidateRecord()
    for idx, target in columns:
        raw = raw_row[idx].strip() if idx < len(raw_row) else ""
        record.fields[target] = coerce_value(target, raw, schema)
    return record
