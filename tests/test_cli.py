from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "invoice_genie.cli"]
FIXED_STAMP = "20260301T010203Z"
RAW_ROW = "Rahul\tSharma\tMumbai\trahul@example.com"


def run_cli(*args: str, env: dict[str, str] | None = None, stdin_text: str | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["INVOICE_GENIE_OUTPUT_STAMP"] = FIXED_STAMP
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
        input=stdin_text,
        stdin=subprocess.DEVNULL if stdin_text is None else None,
    )


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmpdir.name)
        self.env = {
            "INVOICE_GENIE_DB": str(self.tmpdir / "invoice-genie.db"),
            "INVOICE_GENIE_CONFIG": str(self.tmpdir / "invoice-genie.json"),
        }

    def tearDown(self):
        self._tmpdir.cleanup()

    def cli(self, *args: str, stdin_text: str | None = None) -> subprocess.CompletedProcess[str]:
        return run_cli(*args, env=self.env, stdin_text=stdin_text)


class ParseCommandTests(CliTestCase):
    def test_parse_sample_file(self):
        proc = self.cli("parse", "sample-data/customers.tsv")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Strategy: header", proc.stderr)
        self.assertIn("First Name: Rahul", proc.stderr)
        self.assertIn("Pincode: 400053", proc.stderr)

    def test_parse_json_contract(self):
        proc = self.cli("parse", "sample-data/customers_headerless.tsv", "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"], {"name": "invoice_genie.parse", "version": "1.0.0"})
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["strategy"], "fixed-layout")
        self.assertEqual(payload["mapping"]["email"], 4)
        self.assertEqual(payload["record"]["pincode"], "500001")

    def test_parse_stdin(self):
        proc = self.cli("parse", "-", "--json", stdin_text="Rahul, Sharma, rahul@example.com\n")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["source"], "<stdin>")

    def test_unparseable_text_returns_exit_2(self):
        proc = self.cli("parse", "--text", "just some random text without email or phone", "--json")

        self.assertEqual(proc.returncode, 2)
        self.assertEqual(json.loads(proc.stdout)["status"], "needs_mapping")
        self.assertIn("invoice-genie map", proc.stderr)

    def test_empty_input_returns_exit_3(self):
        proc = self.cli("parse", "--text", "   ")

        self.assertEqual(proc.returncode, 3)
        self.assertIn("Please paste some data first", proc.stderr)

    def test_missing_file_returns_exit_1(self):
        proc = self.cli("parse", "sample-data/missing.tsv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_save_customer(self):
        proc = self.cli("parse", "sample-data/customers.tsv", "--save-customer", "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["customer_id"], 1)

        export_path = self.tmpdir / "customers.csv"
        proc = self.cli("export", "customers", "--output", str(export_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("rahul.sharma@email.com", export_path.read_text(encoding="utf-8"))

    def test_config_synonyms_are_used(self):
        (self.tmpdir / "invoice-genie.json").write_text(
            json.dumps({"extra_synonyms": {"phone": ["whatsapp"]}}), encoding="utf-8"
        )
        proc = self.cli("parse", "--text", "Name,WhatsApp\nAsha,9876543210", "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["record"], {"phone": "9876543210"})


class MapCommandTests(CliTestCase):
    def test_columns_json(self):
        proc = self.cli("columns", "--text", RAW_ROW, "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["columns"][3], {"column": 4, "value": "rahul@example.com"})

    def test_columns_human(self):
        proc = self.cli("columns", "--text", RAW_ROW)
        self.assertIn("Col 3: Mumbai", proc.stderr)

    def test_map_with_assignments(self):
        proc = self.cli("map", "--text", RAW_ROW, "--set", "firstName=1", "--set", "Email ID=4", "--set", "city=3", "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["strategy"], "header")
        self.assertEqual(payload["mapping"], {"firstName": 1, "email": 4, "city": 3})
        self.assertEqual(payload["record"], {"firstName": "Rahul", "email": "rahul@example.com", "city": "Mumbai"})
        self.assertTrue(payload["mapped_text"].startswith("First Name,Email ID,City\n"))

    def test_map_writes_output_and_refuses_overwrite(self):
        output = self.tmpdir / "mapped.csv"
        args = ("map", "--text", RAW_ROW, "--set", "email=4", "--output", str(output))

        proc = self.cli(*args)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(output.read_text(encoding="utf-8"), "Email ID\nrahul@example.com\n")

        proc = self.cli(*args)
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)

    def test_map_without_assignments_when_not_interactive(self):
        proc = self.cli("map", "--text", RAW_ROW)
        self.assertEqual(proc.returncode, 1)
        self.assertIn("No mapping given", proc.stderr)

    def test_rejected_mappings_return_exit_4(self):
        for assignment in ("email=9", "fax=1"):
            with self.subTest(assignment=assignment):
                proc = self.cli("map", "--text", RAW_ROW, "--set", assignment)
                self.assertEqual(proc.returncode, 4, proc.stderr)

    def test_mapping_without_required_field_returns_exit_2(self):
        proc = self.cli("map", "--text", RAW_ROW, "--set", "city=3")
        self.assertEqual(proc.returncode, 2)
        self.assertIn("map one of those fields", proc.stderr)

    def test_mapping_without_identity_field_is_not_guessed(self):
        row = "12/26/2024\tMumbai\tMaharashtra\t400053"
        proc = self.cli(
            "map", "--text", row, "--set", "timestamp=1", "--set", "city=2", "--set", "state=3", "--set", "pincode=4", "--json"
        )

        self.assertEqual(proc.returncode, 2)
        self.assertEqual(json.loads(proc.stdout)["status"], "needs_mapping")
        self.assertIn("map one of those fields", proc.stderr)

    def test_saved_profile_is_reused(self):
        proc = self.cli("map", "--text", RAW_ROW, "--set", "firstName=1", "--set", "email=4", "--save-profile", "shop")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Mapping profile saved: shop", proc.stderr)

        proc = self.cli("map", "--text", "Priya\tNair\tPune\tpriya@example.com", "--profile", "shop", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["record"], {"firstName": "Priya", "email": "priya@example.com"})

        proc = self.cli("profile", "list", "--json")
        self.assertEqual(json.loads(proc.stdout), {"shop": {"firstName": 1, "email": 4}})

    def test_unknown_profile(self):
        proc = self.cli("map", "--text", RAW_ROW, "--profile", "nope")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown mapping profile: nope", proc.stderr)


class DataCommandTests(CliTestCase):
    def test_products_import(self):
        proc = self.cli("products", "import", "sample-data/products.csv", "--json")

        self.assertEqual(proc.returncode, 0, proc.stderr)
        summary = json.loads(proc.stdout)["run_summary"]
        self.assertEqual(summary["metrics"], {"imported": 2, "skipped": 1})
        self.assertEqual(summary["warnings"], ["Row 3: Missing name or price"])

    def test_backup_round_trip(self):
        self.cli("products", "import", "sample-data/products.csv")
        backup_path = self.tmpdir / "backup.json"

        proc = self.cli("backup", "export", "--output", str(backup_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(backup_path.read_text(encoding="utf-8"))["version"], 1)

        proc = self.cli("reset", "--yes")
        self.assertEqual(proc.returncode, 0, proc.stderr)

        proc = self.cli("backup", "import", str(backup_path), "--mode", "overwrite", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["metrics"]["products"], 2)

    def test_backup_export_default_name_uses_stamp(self):
        proc = run_cli("backup", "export", "-q", env={**self.env, "INVOICE_GENIE_OUTPUT_STAMP": "stamp"})
        default_path = ROOT / "invoice-genie-backup-stamp.json"
        try:
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue(default_path.exists())
        finally:
            default_path.unlink(missing_ok=True)

    def test_invalid_backup_returns_exit_2(self):
        bad = self.tmpdir / "bad.json"
        bad.write_text('{"data": {}}', encoding="utf-8")
        proc = self.cli("backup", "import", str(bad))

        self.assertEqual(proc.returncode, 2)
        self.assertIn("Invalid backup file format", proc.stderr)

    def test_backup_setting_without_key_returns_exit_2(self):
        bad = self.tmpdir / "bad-settings.json"
        bad.write_text(json.dumps({"version": 1, "data": {"settings": [{"value": 3}]}}), encoding="utf-8")
        proc = self.cli("backup", "import", str(bad))

        self.assertEqual(proc.returncode, 2)
        self.assertIn("needs a 'key'", proc.stderr)
        self.assertNotIn("Traceback", proc.stderr)

    def test_unusable_database_path_returns_exit_1(self):
        (self.tmpdir / "blocker").write_text("", encoding="utf-8")
        env = {**self.env, "INVOICE_GENIE_DB": str(self.tmpdir / "blocker" / "invoice-genie.db")}
        for args in (("profile", "list"), ("reset", "--yes")):
            with self.subTest(args=args):
                proc = run_cli(*args, env=env)
                self.assertEqual(proc.returncode, 1)
                self.assertNotIn("Traceback", proc.stderr)

    def test_reset_needs_confirmation(self):
        proc = self.cli("reset")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("--yes", proc.stderr)

    def test_export_xlsx(self):
        self.cli("products", "import", "sample-data/products.csv")
        output = self.tmpdir / "products.xlsx"

        proc = self.cli("export", "products", "--output", str(output))

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Exported 2 products", proc.stderr)
        self.assertTrue(output.exists())

    def test_export_rejects_other_suffixes(self):
        proc = self.cli("export", "orders", "--output", str(self.tmpdir / "orders.json"))
        self.assertEqual(proc.returncode, 1)


class MiscCommandTests(CliTestCase):
    def test_version(self):
        proc = self.cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), "0.1.0")

    def test_config_init_refuses_overwrite(self):
        path = self.tmpdir / "settings.json"

        proc = self.cli("config", "init", "--path", str(path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("extra_synonyms", json.loads(path.read_text(encoding="utf-8")))

        proc = self.cli("config", "init", "--path", str(path))
        self.assertEqual(proc.returncode, 1)

    def test_config_init_unwritable_path_returns_exit_1(self):
        (self.tmpdir / "blocker").write_text("", encoding="utf-8")
        proc = self.cli("config", "init", "--path", str(self.tmpdir / "blocker" / "settings.json"))

        self.assertEqual(proc.returncode, 1)
        self.assertNotIn("Traceback", proc.stderr)

    def test_bad_arguments_return_exit_1(self):
        proc = self.cli("frobnicate")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("invalid choice", proc.stderr)


if __name__ == "__main__":
    unittest.main()
