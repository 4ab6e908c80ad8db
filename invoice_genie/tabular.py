"""
Split pasted spreadsheet text into a raw table.

A raw table is a list of rows, each a list of trimmed string cells. Rows may
be ragged; read cells through ``cell()`` so a short row yields "".
"""

from __future__ import annotations

import csv
import io

RawTable = list[list[str]]


def detect_delimiter(text: str) -> str:
    """Tab when the first line has one (a Sheets/Excel copy), comma otherwise."""
    first_line = text.lstrip("\r\n").split("\n", 1)[0]
    return "\t" if "\t" in first_line else ","


def split_rows(text: str, delimiter: str | None = None) -> RawTable:
    text = (text or "").strip()
    if not text:
        return []
    delimiter = delimiter or detect_delimiter(text)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter, skipinitialspace=True)
    try:
        rows = list(reader)
    except csv.Error:
        # An unbalanced quote can swallow the rest of the paste past the
        # csv field size limit; fall back to a plain split without quoting.
        rows = [line.split(delimiter) for line in text.splitlines()]
    return [
        [value.strip() for value in row]
        for row in rows
        if any(value.strip() for value in row)
    ]


def cell(row: list[str], index: int) -> str:
    if 0 <= index < len(row):
        return row[index]
    return ""


def width(rows: RawTable) -> int:
    return max((len(row) for row in rows), default=0)
