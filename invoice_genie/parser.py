"""
Turn pasted customer rows into a customer record.

Two strategies are tried in order:

  1. Header mapping: when the first line mentions a known keyword, header
     cells are normalised and matched against each field's synonyms.
  2. Column detection: ``column_detector.detect`` guesses the columns from
     the first row's contents.

A result of None means neither strategy was confident; the caller should
offer the column-mapping assistant (see ``mapping.py``). Only blank input
raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from invoice_genie.column_detector import FieldMapping, detect, map_first_row
from invoice_genie.errors import EmptyInputError
from invoice_genie.fields import DEFAULT_CONFIG, PINCODE, ParserConfig, clean_pincode, normalize_header
from invoice_genie.tabular import RawTable, cell, split_rows

STRATEGY_HEADER = "header"


@dataclass(frozen=True)
class ParseOutcome:
    record: Optional[dict[str, str]]
    strategy: Optional[str]
    rows: RawTable = field(default_factory=list)
    mapping: FieldMapping = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.record is not None


class CustomerDataParser:
    def __init__(self, config: ParserConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def looks_headered(self, text: str) -> bool:
        first_line = text.split("\n", 1)[0].lower()
        return any(keyword in first_line for keyword in self.config.header_keywords)

    def header_mapping(self, header_row: list[str], data_row: list[str]) -> FieldMapping:
        """
        Match each field's synonyms against the normalised headers.

        A synonym only counts when its column is non-empty in ``data_row``,
        so a blank "Phone" column lets "Mobile" win further along.
        """
        lookup: dict[str, int] = {}
        for index, header in enumerate(header_row):
            lookup.setdefault(normalize_header(header), index)

        mapping: FieldMapping = {}
        for spec in self.config.fields:
            for synonym in spec.synonyms:
                index = lookup.get(normalize_header(synonym))
                if index is not None and cell(data_row, index):
                    mapping[spec.key] = index
                    break
        return mapping

    def _parse_headered(self, text: str) -> Optional[ParseOutcome]:
        rows = split_rows(text)
        if len(rows) < 2:
            return None
        mapping = self.header_mapping(rows[0], rows[1])
        record = {key: cell(rows[1], index) for key, index in mapping.items()}
        if PINCODE in record:
            record[PINCODE] = clean_pincode(record[PINCODE])
            if not record[PINCODE]:
                del record[PINCODE]
        if not any(record.get(key) for key in self.config.required_fields):
            return None
        return ParseOutcome(record, STRATEGY_HEADER, rows, mapping)

    def parse_mapped(self, text: str) -> ParseOutcome:
        """
        Read text rebuilt by ``mapping.apply_column_mapping``.

        The first row is always a header here, so only the header path runs;
        a mapping without first name, email or phone yields no record.
        """
        trimmed = (text or "").strip()
        if not trimmed:
            raise EmptyInputError()
        outcome = self._parse_headered(trimmed)
        if outcome is None:
            return ParseOutcome(None, None, split_rows(trimmed))
        return outcome

    def parse_detailed(self, text: str) -> ParseOutcome:
        trimmed = (text or "").strip()
        if not trimmed:
            raise EmptyInputError()

        if self.looks_headered(trimmed):
            outcome = self._parse_headered(trimmed)
            if outcome is not None:
                return outcome

        rows = split_rows(trimmed)
        detection = detect(rows, self.config)
        if detection is None:
            return ParseOutcome(None, None, rows)
        return ParseOutcome(
            map_first_row(rows, detection.mapping),
            detection.strategy,
            rows,
            detection.mapping,
        )

    def parse(self, text: str) -> Optional[dict[str, str]]:
        return self.parse_detailed(text).record


def parse_customer_data(text: str, config: ParserConfig = DEFAULT_CONFIG) -> Optional[dict[str, str]]:
    return CustomerDataParser(config).parse(text)
