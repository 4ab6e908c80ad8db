"""
App settings file and environment overrides.

The settings file is JSON:

    {
      "company": {"companyName": "...", "currency": "INR", ...},
      "extra_synonyms": {"phone": ["whatsapp"], "pincode": ["pin"]}
    }

Missing keys fall back to ``DEFAULT_COMPANY_INFO``; ``extra_synonyms`` are
added to the parser's header synonyms.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from invoice_genie.fields import DEFAULT_CONFIG, ParserConfig

DB_PATH_ENV = "INVOICE_GENIE_DB"
CONFIG_PATH_ENV = "INVOICE_GENIE_CONFIG"
OUTPUT_STAMP_ENV = "INVOICE_GENIE_OUTPUT_STAMP"
DEFAULT_DB_NAME = "invoice-genie.db"
DEFAULT_CONFIG_NAME = "invoice-genie.json"

DEFAULT_COMPANY_INFO: dict[str, Any] = {
    "companyName": "Your Company Name",
    "companyAddress": "123 Business Street, Commercial Area",
    "companyPhone": "+91 98765 43210",
    "companyEmail": "contact@yourcompany.com",
    "companyLogo": None,
    "signature": None,
    "currency": "INR",
    "currencySymbol": "₹",
    "taxName": "GST",
    "defaultTaxRate": 18,
    "defaultTemplate": "modern",
}


@dataclass(frozen=True)
class AppConfig:
    company: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_COMPANY_INFO))
    extra_synonyms: dict[str, list[str]] = field(default_factory=dict)

    @property
    def parser_config(self) -> ParserConfig:
        if not self.extra_synonyms:
            return DEFAULT_CONFIG
        return DEFAULT_CONFIG.with_synonyms(self.extra_synonyms)


def default_db_path() -> Path:
    override = os.environ.get(DB_PATH_ENV)
    if override:
        return Path(override)
    return Path.cwd() / DEFAULT_DB_NAME


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override)
    return Path.cwd() / DEFAULT_CONFIG_NAME


def load_app_config(path: "str | Path | None" = None) -> AppConfig:
    """
    Read the settings file; a missing default file yields the defaults.

    Raises:
        FileNotFoundError  if an explicit path does not exist.
        ValueError         if the file is not valid JSON or has the wrong shape.
    """
    explicit = path is not None
    config_path = Path(path) if explicit else default_config_path()
    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Config not found: {config_path}")
        return AppConfig()

    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid config JSON in {config_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Config root must be an object, got {type(payload).__name__}")

    company = dict(DEFAULT_COMPANY_INFO)
    company.update(payload.get("company") or {})

    extra = payload.get("extra_synonyms") or {}
    if not isinstance(extra, dict) or not all(isinstance(v, list) for v in extra.values()):
        raise ValueError("'extra_synonyms' must map field names to lists of header names")
    config = AppConfig(company=company, extra_synonyms={k: [str(v) for v in vs] for k, vs in extra.items()})
    try:
        config.parser_config
    except KeyError as exc:
        raise ValueError(f"Invalid 'extra_synonyms': {exc.args[0]}") from None
    return config


def starter_config() -> str:
    payload = {
        "company": DEFAULT_COMPANY_INFO,
        "extra_synonyms": {"phone": ["whatsapp"], "deliveryNotes": ["remarks"]},
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
