"""
Manual column mapping for pastes the parser could not read.

The user is shown the first pasted row and picks a column for each field.
``apply_column_mapping`` then rebuilds the paste as CSV with a header row
made of field labels, which ``CustomerDataParser`` reads through its header
path.

Column indices are 0-based here; the prompt and CLI show 1-based numbers.
"""

from __future__ import annotations

import sys
from typing import Callable, Iterable, Mapping, Optional, TextIO, Union

import pandas as pd

from invoice_genie.column_detector import FieldMapping
from invoice_genie.errors import EmptyInputError, MappingError, NoFieldsMappedError
from invoice_genie.fields import DEFAULT_CONFIG, ParserConfig, normalize_header
from invoice_genie.tabular import RawTable, cell, split_rows

SKIP = "skip"
PREVIEW_WIDTH = 20

ColumnChoice = Union[int, str, None]


def sample_columns(text: str) -> list[str]:
    """Return the first row of the paste, read without headers."""
    rows = split_rows(text)
    if not rows:
        raise EmptyInputError()
    return rows[0]


def preview_label(index: int, value: str) -> str:
    shown = value[:PREVIEW_WIDTH] + ("..." if len(value) > PREVIEW_WIDTH else "")
    return f"Col {index + 1}: {shown}"


def _coerce_index(key: str, choice: ColumnChoice) -> Optional[int]:
    if choice is None or isinstance(choice, bool):
        return None
    if isinstance(choice, str):
        choice = choice.strip()
        if not choice or choice.lower() == SKIP:
            return None
        try:
            choice = int(choice)
        except ValueError:
            raise MappingError(f"Column for '{key}' must be a number, got {choice!r}") from None
    if choice < 0:
        raise MappingError(f"Column for '{key}' must not be negative, got {choice}")
    return choice


def normalize_mapping(
    mapping: Mapping[str, ColumnChoice],
    config: ParserConfig = DEFAULT_CONFIG,
    column_count: Optional[int] = None,
) -> FieldMapping:
    """
    Validate a user mapping and return it in the order it was given.

    Skipped fields (``SKIP``, None or blank) are dropped. Raises MappingError
    for unknown fields, bad indices, or one column claimed by two fields.
    """
    for key in mapping:
        if not config.has_field(key):
            raise MappingError(f"Unknown field '{key}'. Known fields: {', '.join(config.keys)}")

    resolved: FieldMapping = {}
    claimed: dict[int, str] = {}
    for key, choice in mapping.items():
        index = _coerce_index(key, choice)
        if index is None:
            continue
        if column_count is not None and index >= column_count:
            raise MappingError(
                f"Column {index + 1} for '{key}' is out of range; the sample row has {column_count} columns"
            )
        if index in claimed:
            raise MappingError(f"Column {index + 1} is mapped to both '{claimed[index]}' and '{key}'")
        claimed[index] = key
        resolved[key] = index
    return resolved


def rebuild_rows(rows: RawTable, mapping: FieldMapping) -> RawTable:
    return [[cell(row, index) for index in mapping.values()] for row in rows]


def apply_column_mapping(
    text: str,
    mapping: Mapping[str, ColumnChoice],
    config: ParserConfig = DEFAULT_CONFIG,
) -> str:
    """
    Rebuild ``text`` as headered CSV using the chosen columns.

    Every pasted row is kept, including the first: the paste is assumed to
    carry no header of its own. Raises NoFieldsMappedError when nothing is
    mapped, before the paste is read.
    """
    resolved = normalize_mapping(mapping, config)
    if not resolved:
        raise NoFieldsMappedError()

    rows = split_rows(text)
    if not rows:
        raise EmptyInputError()

    headers = [config.label(key) for key in resolved]
    frame = pd.DataFrame(rebuild_rows(rows, resolved), columns=headers, dtype=str)
    return frame.to_csv(index=False, lineterminator="\n")


def parse_mapping_args(
    pairs: Iterable[str],
    config: ParserConfig = DEFAULT_CONFIG,
) -> dict[str, int]:
    """
    Parse ``field=column`` pairs from the command line.

    The field may be its key (``email``) or its label (``"Email ID"``);
    columns are 1-based.
    """
    by_name = {}
    for spec in config.fields:
        by_name[spec.key.lower()] = spec.key
        by_name[normalize_header(spec.label)] = spec.key

    mapping: dict[str, int] = {}
    for pair in pairs:
        name, sep, column = pair.partition("=")
        if not sep:
            raise MappingError(f"Expected FIELD=COLUMN, got {pair!r}")
        key = by_name.get(name.strip().lower()) or by_name.get(normalize_header(name))
        if key is None:
            raise MappingError(f"Unknown field '{name.strip()}'. Known fields: {', '.join(config.keys)}")
        try:
            number = int(column.strip())
        except ValueError:
            raise MappingError(f"Column for '{key}' must be a number, got {column.strip()!r}") from None
        if number < 1:
            raise MappingError(f"Column numbers start at 1, got {number} for '{key}'")
        mapping[key] = number - 1
    return mapping


def prompt_column_mapping(
    columns: list[str],
    config: ParserConfig = DEFAULT_CONFIG,
    input_fn: Callable[[str], str] = input,
    out: TextIO = sys.stderr,
) -> dict[str, int]:
    """
    Ask for a column number per field on the terminal.

    Blank answers skip the field. End of input stops asking and keeps what
    was answered so far. Caller must ensure stdin is interactive.
    """
    print("\nPasted row sample:", file=out)
    for index, value in enumerate(columns):
        print(f"  {preview_label(index, value)}", file=out)

    mapping: dict[str, int] = {}
    taken: set[int] = set()
    for spec in config.fields:
        while True:
            try:
                raw = input_fn(f"{spec.label} [1-{len(columns)}, blank to skip]: ").strip()
            except (EOFError, KeyboardInterrupt):
                print("", file=out)
                return mapping

            if not raw or raw.lower() == SKIP:
                break
            try:
                index = int(raw) - 1
            except ValueError:
                index = -1
            if 0 <= index < len(columns) and index not in taken:
                mapping[spec.key] = index
                taken.add(index)
                break
            print("Invalid choice, try again.", file=out)
    return mapping
