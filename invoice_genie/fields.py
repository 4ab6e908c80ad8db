"""Canonical customer fields, their labels and header synonyms."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

TIMESTAMP = "timestamp"
FIRST_NAME = "firstName"
LAST_NAME = "lastName"
EMAIL = "email"
PHONE = "phone"
BUILDING = "building"
STREET_ADDRESS = "streetAddress"
LOCALITY = "locality"
CITY = "city"
STATE = "state"
PINCODE = "pincode"
DELIVERY_NOTES = "deliveryNotes"

HEADER_SEPARATOR_RE = re.compile(r"[\s/]+")
NON_DIGIT_RE = re.compile(r"\D")


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    synonyms: tuple[str, ...]


FIELD_SPECS = (
    FieldSpec(TIMESTAMP, "Timestamp", ("timestamp", "date", "time")),
    FieldSpec(FIRST_NAME, "First Name", ("first_name", "firstname", "first")),
    FieldSpec(LAST_NAME, "Last Name", ("last_name", "lastname", "last")),
    FieldSpec(EMAIL, "Email ID", ("email_id", "email", "emailid", "e-mail")),
    FieldSpec(PHONE, "Phone Number", ("phone_number", "phone", "mobile", "contact", "phonenumber")),
    FieldSpec(
        BUILDING,
        "Building/House/Apartment Name",
        ("building_house_apartment_name", "building", "house", "apartment", "flat"),
    ),
    FieldSpec(STREET_ADDRESS, "Street Address", ("street_address", "streetaddress", "street", "address")),
    FieldSpec(LOCALITY, "Locality", ("locality", "area", "neighborhood")),
    FieldSpec(CITY, "City", ("city", "town")),
    FieldSpec(STATE, "State", ("state", "province")),
    FieldSpec(PINCODE, "Pincode", ("pincode", "zip", "zipcode", "postal_code", "postalcode")),
    FieldSpec(
        DELIVERY_NOTES,
        "Delivery Notes",
        ("any_delivery_instructions_notes", "delivery_instructions", "notes", "instructions", "delivery_notes"),
    ),
)

FIELD_KEYS = tuple(spec.key for spec in FIELD_SPECS)

HEADER_KEYWORDS = ("name", "email", "phone", "address", "city", "state", "zip", "pin")

# Fields a header-mapped record must contain at least one of.
HEADER_REQUIRED_FIELDS = (EMAIL, PHONE, FIRST_NAME)

# Fields with a strong content signature.
ANCHOR_FIELDS = (EMAIL, PHONE, PINCODE, TIMESTAMP)

# Column order of the Google Form customer export.
FIXED_LAYOUT = (
    TIMESTAMP,
    FIRST_NAME,
    LAST_NAME,
    EMAIL,
    PHONE,
    BUILDING,
    STREET_ADDRESS,
    LOCALITY,
    CITY,
    STATE,
    PINCODE,
)


def normalize_header(value: str) -> str:
    return HEADER_SEPARATOR_RE.sub("_", (value or "").strip().lower())


def clean_pincode(value: str) -> str:
    return NON_DIGIT_RE.sub("", value or "")[:6]


@dataclass(frozen=True)
class ParserConfig:
    """
    Immutable rules used by the parser, detector and mapping assistant.

    Build a variant with ``with_synonyms`` instead of mutating an instance;
    the default instance is shared module-wide.
    """

    fields: tuple[FieldSpec, ...] = FIELD_SPECS
    header_keywords: tuple[str, ...] = HEADER_KEYWORDS
    required_fields: tuple[str, ...] = HEADER_REQUIRED_FIELDS
    anchor_fields: tuple[str, ...] = ANCHOR_FIELDS
    fixed_layout: tuple[str, ...] = FIXED_LAYOUT
    min_heuristic_fields: int = 3
    _by_key: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_key", {spec.key: spec for spec in self.fields})

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(spec.key for spec in self.fields)

    def spec(self, key: str) -> FieldSpec:
        try:
            return self._by_key[key]
        except KeyError:
            raise KeyError(f"Unknown field '{key}'. Known fields: {', '.join(self.keys)}") from None

    def label(self, key: str) -> str:
        return self.spec(key).label

    def has_field(self, key: str) -> bool:
        return key in self._by_key

    def with_synonyms(self, extra: dict[str, list[str] | tuple[str, ...]]) -> "ParserConfig":
        """Return a copy whose fields also accept the given header synonyms."""
        for key in extra:
            self.spec(key)
        specs = []
        for spec in self.fields:
            added = tuple(
                normalize_header(name)
                for name in extra.get(spec.key, ())
                if normalize_header(name) not in spec.synonyms
            )
            specs.append(replace(spec, synonyms=spec.synonyms + tuple(dict.fromkeys(added))))
        return replace(self, fields=tuple(specs))


DEFAULT_CONFIG = ParserConfig()
