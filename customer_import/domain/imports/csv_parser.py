"""
Line-oriented CSV parsing for customer import files.

The parser is deliberately small and forgiving: it never raises on malformed
input and always produces a best-effort row for every non-blank line.

Behaviour worth knowing about:
- Lines end at ``\\n`` with an optional preceding ``\\r``. A quoted field cannot
  span lines.
- A ``"`` toggles quoting and is never copied into the field, so ``""`` inside
  a quoted field does not produce a literal quote character.
- Blank lines are skipped and do not produce empty rows.
- Every field is whitespace-trimmed, then one leading and one trailing ``"``
  are stripped.
"""
from __future__ import annotations

from typing import Iterator, List

DELIMITER = ","
QUOTE = '"'


def _clean_field(value: str) -> str:
    field = value.strip()
    if field.startswith(QUOTE):
        field = field[1:]
    if field.endswith(QUOTE):
        field = field[:-1]
    return field


def split_line(line: str) -> List[str]:
    """Split a single line into fields, honouring double-quoted sections."""
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False

    for ch in line:
        if ch == QUOTE:
            in_quotes = not in_quotes
        elif ch == DELIMITER and not in_quotes:
            fields.append(_clean_field("".join(current)))
            current = []
        else:
            current.append(ch)

    # Unterminated quotes just run to the end of the line.
    fields.append(_clean_field("".join(current)))
    return fields


def iter_lines(text: str) -> Iterator[str]:
    """Yield non-blank lines, treating ``\\r\\n`` and ``\\n`` as line endings."""
    start = 0
    length = len(text)
    while start <= length:
        end = text.find("\n", start)
        if end == -1:
            end = length
        line = text[start:end]
        if line.endswith("\r"):
            line = line[:-1]
        if line.strip():
            yield line
        start = end + 1


class DelimitedText:
    """
    Lazy, restartable view of ``text`` as rows of string fields.

    Each iteration re-scans the text, so the same instance can be walked more
    than once (e.g. once to count rows and once to process them).
    """

    def __init__(self, text: str):
        self.text = text

    def __iter__(self) -> Iterator[List[str]]:
        for line in iter_lines(self.text):
            yield split_line(line)


def parse_csv(text: str) -> List[List[str]]:
    """Parse ``text`` into a list of rows."""
    return list(DelimitedText(text))
