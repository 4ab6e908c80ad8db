from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any

from invoice_genie import __version__ as TOOL_VERSION
from invoice_genie.config import (
    OUTPUT_STAMP_ENV,
    AppConfig,
    default_db_path,
    load_app_config,
    starter_config,
)
from invoice_genie.contracts import build_contract, build_parse_payload, build_run_summary
from invoice_genie.errors import BackupFormatError, EmptyInputError, MappingError
from invoice_genie.loader import fetch_remote_text, read_text_file
from invoice_genie.mapping import (
    apply_column_mapping,
    normalize_mapping,
    parse_mapping_args,
    preview_label,
    prompt_column_mapping,
    sample_columns,
)
from invoice_genie.parser import CustomerDataParser, ParseOutcome
from invoice_genie.store import EXPORTABLE_TABLES, LocalStore

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_EMPTY_INPUT = 3
EXIT_MAPPING_REJECTED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class InvoiceGenieArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return date.today().isoformat()


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def safe_output_path(explicit: Path | None, default_path: Path) -> Path:
    path = explicit or default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, EmptyInputError):
        return EXIT_EMPTY_INPUT
    if isinstance(exc, MappingError):
        return EXIT_MAPPING_REJECTED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (BackupFormatError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def app_config(args: argparse.Namespace) -> AppConfig:
    return load_app_config(getattr(args, "config", None))


def open_store(args: argparse.Namespace) -> LocalStore:
    return LocalStore(Path(args.db) if getattr(args, "db", None) else default_db_path())


def read_input_text(args: argparse.Namespace) -> tuple[str, str]:
    """Return (text, source label) from --text, --url, a file, or stdin."""
    if getattr(args, "text", None) is not None:
        return args.text, "<text>"
    if getattr(args, "url", None):
        return fetch_remote_text(args.url), args.url
    if args.input in (None, "-"):
        if sys.stdin.isatty():
            raise CliError("No input: pass a file, '-' with piped data, --text or --url.", EXIT_COMMAND_ERROR)
        return sys.stdin.read(), "<stdin>"
    return read_text_file(args.input), args.input


def render_record_text(outcome: ParseOutcome, parser: CustomerDataParser) -> str:
    lines = [f"Strategy: {outcome.strategy}"]
    for spec in parser.config.fields:
        if spec.key in (outcome.record or {}):
            lines.append(f"{spec.label}: {outcome.record[spec.key]}")
    return "\n".join(lines)


def render_columns_text(columns: list[str]) -> str:
    lines = ["Pasted row sample:"]
    lines.extend(f"  {preview_label(index, value)}" for index, value in enumerate(columns))
    return "\n".join(lines)


def add_input_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("input", nargs="?", default=None, help="Input file (.csv/.tsv/.txt/.xlsx) or '-' for stdin")
    command.add_argument("--text", help="Pasted data given inline")
    command.add_argument("--url", help="Public Google Sheets/CSV link to fetch")
    command.add_argument("--config", help="Settings file (JSON)")


def add_common_arguments(command: argparse.ArgumentParser, *, json_flag: bool = True) -> None:
    command.add_argument("--db", help="Database path (default: $INVOICE_GENIE_DB or ./invoice-genie.db)")
    if json_flag:
        command.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    command.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = InvoiceGenieArgumentParser(prog="invoice-genie", description="Local-first invoicing from pasted customer sheets.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Extract a customer record from pasted rows.")
    add_input_arguments(parse)
    add_common_arguments(parse)
    parse.add_argument("--save-customer", action="store_true", help="Save the parsed customer to the database")

    columns = subparsers.add_parser("columns", help="Show the first pasted row as numbered columns.")
    add_input_arguments(columns)
    columns.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    columns.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    map_cmd = subparsers.add_parser("map", help="Assign pasted columns to fields and re-parse.")
    add_input_arguments(map_cmd)
    add_common_arguments(map_cmd)
    map_cmd.add_argument("--set", dest="assignments", action="append", default=[], metavar="FIELD=COLUMN", help="Map a field to a 1-based column (repeatable)")
    map_cmd.add_argument("--profile", help="Use a saved mapping profile")
    map_cmd.add_argument("--save-profile", help="Save the mapping under this profile name")
    map_cmd.add_argument("--output", help="Write the rebuilt headered CSV here")

    profile = subparsers.add_parser("profile", help="Manage saved column-mapping profiles.")
    profile_subparsers = profile.add_subparsers(dest="profile_command", required=True)
    profile_list = profile_subparsers.add_parser("list", help="List saved profiles.")
    add_common_arguments(profile_list)

    backup = subparsers.add_parser("backup", help="Export or restore a JSON backup.")
    backup_subparsers = backup.add_subparsers(dest="backup_command", required=True)
    backup_export = backup_subparsers.add_parser("export", help="Write a backup file.")
    backup_export.add_argument("--output", help="Backup path (default: invoice-genie-backup-<date>.json)")
    add_common_arguments(backup_export, json_flag=False)
    backup_import = backup_subparsers.add_parser("import", help="Restore from a backup file.")
    backup_import.add_argument("path", help="Backup JSON file")
    backup_import.add_argument("--mode", choices=["merge", "overwrite"], default="merge", help="Merge into or replace current data")
    add_common_arguments(backup_import)

    reset = subparsers.add_parser("reset", help="Delete all orders, customers, products and settings.")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")
    add_common_arguments(reset, json_flag=False)

    products = subparsers.add_parser("products", help="Product catalogue tools.")
    products_subparsers = products.add_subparsers(dest="products_command", required=True)
    products_import = products_subparsers.add_parser("import", help="Import products from CSV.")
    products_import.add_argument("path", help="CSV with name, price, sku, inventory, minStock, category, costPrice")
    add_common_arguments(products_import)

    export = subparsers.add_parser("export", help="Export a table to CSV or XLSX.")
    export.add_argument("table", choices=list(EXPORTABLE_TABLES), help="Table to export")
    export.add_argument("--output", required=True, help="Output path (.csv or .xlsx)")
    add_common_arguments(export, json_flag=False)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter settings file.")
    config_init.add_argument("--path", default="invoice-genie.json", help="Settings output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_parse(args: argparse.Namespace) -> int:
    try:
        config = app_config(args)
        text, source = read_input_text(args)
        parser = CustomerDataParser(config.parser_config)
        outcome = parser.parse_detailed(text)
        payload = build_parse_payload(
            record=outcome.record,
            strategy=outcome.strategy,
            mapping=outcome.mapping,
            source=source,
        )
        if outcome.ok and args.save_customer:
            payload["customer_id"] = open_store(args).upsert_customer_from_record(outcome.record)

        if args.json:
            maybe_emit_json_stdout(payload, True)
        elif outcome.ok:
            emit_human(render_record_text(outcome, parser), quiet=args.quiet)
            if "customer_id" in payload:
                emit_human(f"Customer saved: #{payload['customer_id']}", quiet=args.quiet)

        if not outcome.ok:
            emit_human(
                "Could not detect the customer columns. Run 'invoice-genie columns' and "
                "'invoice-genie map --set FIELD=COLUMN' to assign them.",
                quiet=args.quiet,
            )
            return EXIT_PARSE_FAILED
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_columns(args: argparse.Namespace) -> int:
    try:
        text, source = read_input_text(args)
        columns = sample_columns(text)
        if args.json:
            contract = build_contract("invoice_genie.columns")
            maybe_emit_json_stdout(
                {
                    "contract": contract,
                    "schema_version": contract["version"],
                    "source": source,
                    "columns": [{"column": index + 1, "value": value} for index, value in enumerate(columns)],
                },
                True,
            )
        else:
            emit_human(render_columns_text(columns), quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def resolve_mapping(args: argparse.Namespace, columns: list[str], store: LocalStore | None, config: AppConfig) -> dict[str, int]:
    parser_config = config.parser_config
    mapping: dict[str, int] = {}
    if args.profile:
        if store is None:
            raise CliError("--profile needs a database", EXIT_COMMAND_ERROR)
        saved = store.load_mapping_profile(args.profile)
        if saved is None:
            raise CliError(f"Unknown mapping profile: {args.profile}", EXIT_COMMAND_ERROR)
        mapping.update(saved)
    mapping.update(parse_mapping_args(args.assignments, parser_config))

    if not mapping:
        if args.input == "-" or not sys.stdin.isatty():
            raise CliError("No mapping given: pass --set FIELD=COLUMN or --profile NAME.", EXIT_COMMAND_ERROR)
        mapping = prompt_column_mapping(columns, parser_config)
    return normalize_mapping(mapping, parser_config, column_count=len(columns))


def run_map(args: argparse.Namespace) -> int:
    try:
        config = app_config(args)
        text, source = read_input_text(args)
        columns = sample_columns(text)
        store = open_store(args) if (args.profile or args.save_profile) else None
        mapping = resolve_mapping(args, columns, store, config)

        rebuilt = apply_column_mapping(text, mapping, config.parser_config)
        if args.save_profile:
            store.save_mapping_profile(args.save_profile, mapping)
            emit_human(f"Mapping profile saved: {args.save_profile}", quiet=args.quiet or args.json)
        if args.output:
            output_path = safe_output_path(Path(args.output), Path(args.output))
            write_text(output_path, rebuilt)
            emit_human(f"Mapped data written: {output_path}", quiet=args.quiet or args.json)

        parser = CustomerDataParser(config.parser_config)
        outcome = parser.parse_mapped(rebuilt)
        payload = build_parse_payload(record=outcome.record, strategy=outcome.strategy, mapping=mapping, source=source)
        payload["mapped_text"] = rebuilt
        if args.json:
            maybe_emit_json_stdout(payload, True)
        elif outcome.ok:
            emit_human(render_record_text(outcome, parser), quiet=args.quiet)

        if not outcome.ok:
            emit_human(
                "Mapped data still has no first name, email or phone; map one of those fields.",
                quiet=args.quiet,
            )
            return EXIT_PARSE_FAILED
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_profile_list(args: argparse.Namespace) -> int:
    try:
        store = open_store(args)
        names = store.list_mapping_profiles()
        if args.json:
            maybe_emit_json_stdout(
                {name: {key: index + 1 for key, index in store.load_mapping_profile(name).items()} for name in names},
                True,
            )
        else:
            emit_human("\n".join(names) if names else "No mapping profiles saved.", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_backup_export(args: argparse.Namespace) -> int:
    try:
        default_path = Path.cwd() / f"invoice-genie-backup-{timestamp_token()}.json"
        output_path = safe_output_path(Path(args.output) if args.output else None, default_path)
        backup = open_store(args).export_backup()
        write_text(output_path, json.dumps(backup, indent=2, ensure_ascii=False))
        emit_human(f"Backup written: {output_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_backup_import(args: argparse.Namespace) -> int:
    backup_path = Path(args.path)
    if not backup_path.exists():
        eprint(f"File not found: {backup_path}")
        return EXIT_COMMAND_ERROR
    try:
        try:
            backup = json.loads(backup_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise BackupFormatError(f"Invalid backup JSON: {exc}") from exc
        counts = open_store(args).import_backup(backup, mode=args.mode)
        summary = build_run_summary(tool="invoice-genie", command="backup import", metrics={"mode": args.mode, **counts})
        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            restored = ", ".join(f"{table}={count}" for table, count in counts.items())
            emit_human(f"Backup restored ({args.mode}): {restored}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_reset(args: argparse.Namespace) -> int:
    if not args.yes:
        eprint("Refusing to reset without --yes. This deletes all orders, customers, products and settings.")
        return EXIT_COMMAND_ERROR
    try:
        open_store(args).factory_reset()
        emit_human("All data cleared.", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_products_import(args: argparse.Namespace) -> int:
    csv_path = Path(args.path)
    if not csv_path.exists():
        eprint(f"File not found: {csv_path}")
        return EXIT_COMMAND_ERROR
    try:
        imported, errors = open_store(args).import_products_csv(csv_path)
        summary = build_run_summary(
            tool="invoice-genie",
            command="products import",
            status="ok" if imported else "failed",
            metrics={"imported": imported, "skipped": len(errors)},
            warnings=errors,
        )
        contract = build_contract("invoice_genie.products_import")
        payload = {"contract": contract, "schema_version": contract["version"], "run_summary": summary}
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(f"Imported {imported} products", quiet=args.quiet)
            if errors:
                emit_human(f"Skipped {len(errors)} invalid rows:", quiet=args.quiet)
                for error in errors:
                    emit_human(f"  {error}", quiet=args.quiet)
        if not imported:
            eprint("No valid products found in file")
            return EXIT_PARSE_FAILED
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_export(args: argparse.Namespace) -> int:
    try:
        output_path = safe_output_path(Path(args.output), Path(args.output))
        if output_path.suffix.lower() not in (".csv", ".xlsx"):
            raise CliError("Export path must end in .csv or .xlsx", EXIT_COMMAND_ERROR)
        count = open_store(args).export_table(args.table, output_path)
        emit_human(f"Exported {count} {args.table}: {output_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    try:
        write_text(config_path, starter_config())
        emit_human(f"Config written: {config_path}")
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "columns":
            return run_columns(args)
        if args.command == "map":
            return run_map(args)
        if args.command == "profile":
            if args.profile_command == "list":
                return run_profile_list(args)
        if args.command == "backup":
            if args.backup_command == "export":
                return run_backup_export(args)
            if args.backup_command == "import":
                return run_backup_import(args)
        if args.command == "reset":
            return run_reset(args)
        if args.command == "products":
            if args.products_command == "import":
                return run_products_import(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
