"""Shared versioned contracts for invoice-genie JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "invoice_genie.parse": "1.0.0",
    "invoice_genie.columns": "1.0.0",
    "invoice_genie.products_import": "1.0.0",
}

BACKUP_VERSION = 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_parse_payload(
    *,
    record: dict[str, str] | None,
    strategy: str | None,
    mapping: dict[str, int],
    source: str,
) -> dict[str, Any]:
    contract = build_contract("invoice_genie.parse")
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "generated_at": utc_now_iso(),
        "source": source,
        "status": "ok" if record is not None else "needs_mapping",
        "strategy": strategy,
        "mapping": {key: index + 1 for key, index in mapping.items()},
        "record": record,
    }


def build_run_summary(
    *,
    tool: str,
    command: str,
    status: str = "ok",
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": tool,
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
