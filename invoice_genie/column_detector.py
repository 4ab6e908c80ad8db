"""
Guess which canonical field each column of a headerless
paste holds.

Only the first row is inspected. Anchor columns (email, phone, pincode,
date) are claimed first because their values have a recognisable shape; the
leftover free-text columns are then assigned by position and length.

Public API:
    mapping   = detect_columns(rows)            # {field: column index} or None
    detection = detect(rows)                    # Detection(strategy, mapping) or None
    record    = map_first_row(rows, mapping)    # {field: value}
"""

from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import pandas as pd

from invoice_genie.fields import (
    CITY,
    DEFAULT_CONFIG,
    EMAIL,
    FIRST_NAME,
    LAST_NAME,
    PHONE,
    PINCODE,
    STATE,
    STREET_ADDRESS,
    TIMESTAMP,
    ParserConfig,
    clean_pincode,
)
from invoice_genie.tabular import RawTable, cell

FieldMapping = dict[str, int]

STRATEGY_FIXED = "fixed-layout"
STRATEGY_HEURISTIC = "heuristic"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_DELIMITER_RE = re.compile(r"[/:]")
PHONE_SEPARATOR_RE = re.compile(r"[\s\-+()]")
PINCODE_RE = re.compile(r"^\d{6}$")
DIGITS_RE = re.compile(r"^\d+$")
HAS_DIGIT_RE = re.compile(r"\d")

DATE_FORMATS = [
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%d-%m-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
]


# ══════════════════════════════════════════════════════════════════════════════
# CONTENT PREDICATES
# ══════════════════════════════════════════════════════════════════════════════

def is_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip()))


def is_phone(value: str) -> bool:
    # "12/26/2024" and "10:30:00" carry enough digits to pass otherwise
    if DATE_DELIMITER_RE.search(value):
        return False
    digits = re.sub(r"\D", "", value)
    return 10 <= len(digits) <= 15


def is_pincode(value: str) -> bool:
    return bool(PINCODE_RE.match(value.strip()))


def _parses_as_date(text: str) -> bool:
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return False
    return not pd.isna(parsed)


def is_date(value: str) -> bool:
    text = value.strip()
    if len(text) <= 5 or not HAS_DIGIT_RE.search(text):
        return False
    return _parses_as_date(text)


def looks_like_email(value: str) -> bool:
    return is_email(value) or "@" in value


def looks_like_phone(value: str) -> bool:
    return is_phone(value) or bool(DIGITS_RE.match(PHONE_SEPARATOR_RE.sub("", value)))


ANCHOR_PREDICATES: list[tuple[str, Callable[[str], bool]]] = [
    (EMAIL, is_email),
    (PHONE, is_phone),
    (PINCODE, is_pincode),
    (TIMESTAMP, is_date),
]


# ══════════════════════════════════════════════════════════════════════════════
# REDUCER STEPS
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Detection:
    strategy: str
    mapping: FieldMapping


@dataclass(frozen=True)
class _State:
    mapping: tuple[tuple[str, int], ...]
    unused: tuple[int, ...]

    def assign(self, key: str, index: int) -> "_State":
        return _State(
            mapping=self.mapping + ((key, index),),
            unused=tuple(i for i in self.unused if i != index),
        )


def _claim_first_match(state: _State, sample: list[str], key: str, predicate: Callable[[str], bool]) -> _State:
    for index in state.unused:
        if predicate(sample[index]):
            return state.assign(key, index)
    return state


def _claim_next_unused(state: _State, key: str) -> _State:
    if not state.unused:
        return state
    return state.assign(key, state.unused[0])


def _claim_longest(state: _State, sample: list[str], key: str) -> _State:
    if not state.unused:
        return state
    longest = state.unused[0]
    for index in state.unused[1:]:
        if len(sample[index]) > len(sample[longest]):
            longest = index
    return state.assign(key, longest)


def _fixed_layout(sample: list[str], config: ParserConfig) -> Optional[FieldMapping]:
    layout = config.fixed_layout
    if len(sample) < len(layout):
        return None
    if not (looks_like_email(sample[3]) and looks_like_phone(sample[4])):
        return None
    return {key: index for index, key in enumerate(layout)}


def _heuristic_layout(sample: list[str], config: ParserConfig) -> Optional[FieldMapping]:
    state = _State(mapping=(), unused=tuple(range(len(sample))))

    for key, predicate in ANCHOR_PREDICATES:
        state = _claim_first_match(state, sample, key, predicate)

    state = _claim_next_unused(state, FIRST_NAME)
    state = _claim_next_unused(state, LAST_NAME)
    state = _claim_longest(state, sample, STREET_ADDRESS)
    state = _claim_next_unused(state, CITY)
    state = _claim_next_unused(state, STATE)

    mapping = dict(state.mapping)
    has_anchor = any(key in mapping for key in config.anchor_fields)
    if not has_anchor and len(mapping) < config.min_heuristic_fields:
        return None
    return mapping


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def detect(rows: RawTable, config: ParserConfig = DEFAULT_CONFIG) -> Optional[Detection]:
    """
    Infer a column mapping from the first row of a headerless table.

    The fixed Google Form layout is tried first, but only when columns 4 and 5
    hold an email and a phone; that check is specific to that export and
    is not a general rule. Otherwise the content heuristics run. Returns None
    when the result has no anchor field and fewer than
    ``config.min_heuristic_fields`` fields.
    """
    if not rows:
        return None
    sample = [value.strip() for value in rows[0]]

    fixed = _fixed_layout(sample, config)
    if fixed is not None:
        return Detection(STRATEGY_FIXED, fixed)

    mapping = _heuristic_layout(sample, config)
    if mapping is None:
        return None
    return Detection(STRATEGY_HEURISTIC, mapping)


def detect_columns(rows: RawTable, config: ParserConfig = DEFAULT_CONFIG) -> Optional[FieldMapping]:
    detection = detect(rows, config)
    return detection.mapping if detection else None


def map_first_row(rows: RawTable, mapping: FieldMapping) -> dict[str, str]:
    """Read the mapped cells of the first row; empty cells are left out."""
    if not rows:
        return {}
    first = rows[0]
    record: dict[str, str] = {}
    for key, index in mapping.items():
        value = cell(first, index).strip()
        if key == PINCODE:
            value = clean_pincode(value)
        if value:
            record[key] = value
    return record
