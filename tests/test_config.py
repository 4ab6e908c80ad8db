from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from invoice_genie.config import (
    CONFIG_PATH_ENV,
    DB_PATH_ENV,
    DEFAULT_COMPANY_INFO,
    default_db_path,
    load_app_config,
    starter_config,
)
from invoice_genie.fields import DEFAULT_CONFIG
from invoice_genie.parser import CustomerDataParser


class LoadAppConfigTests(unittest.TestCase):
    def write_config(self, tmpdir: str, payload) -> Path:
        path = Path(tmpdir) / "settings.json"
        path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
        return path

    def test_missing_default_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with mock.patch.dict(os.environ, {CONFIG_PATH_ENV: str(Path(tmpdir) / "none.json")}):
                config = load_app_config()

        self.assertEqual(config.company, DEFAULT_COMPANY_INFO)
        self.assertIs(config.parser_config, DEFAULT_CONFIG)

    def test_missing_explicit_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            load_app_config("/nonexistent/invoice-genie.json")

    def test_company_values_merge_over_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, {"company": {"companyName": "Kurta House", "defaultTaxRate": 12}})
            config = load_app_config(path)

        self.assertEqual(config.company["companyName"], "Kurta House")
        self.assertEqual(config.company["defaultTaxRate"], 12)
        self.assertEqual(config.company["currency"], "INR")

    def test_extra_synonyms_reach_the_parser(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, {"extra_synonyms": {"phone": ["WhatsApp"]}})
            config = load_app_config(path)

        record = CustomerDataParser(config.parser_config).parse("Name,WhatsApp\nAsha,9876543210")
        self.assertEqual(record, {"phone": "9876543210"})

    def test_invalid_files(self):
        cases = {
            "bad json": "{not json",
            "list root": "[]",
            "synonyms not lists": {"extra_synonyms": {"phone": "whatsapp"}},
            "unknown field": {"extra_synonyms": {"fax": ["fax"]}},
        }
        for name, payload in cases.items():
            with self.subTest(case=name):
                with tempfile.TemporaryDirectory() as tmpdir:
                    path = self.write_config(tmpdir, payload)
                    with self.assertRaises(ValueError):
                        load_app_config(path)

    def test_starter_config_loads(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write_config(tmpdir, starter_config())
            config = load_app_config(path)

        self.assertIn("whatsapp", config.parser_config.spec("phone").synonyms)
        self.assertIn("remarks", config.parser_config.spec("deliveryNotes").synonyms)


class DbPathTests(unittest.TestCase):
    def test_env_override(self):
        with mock.patch.dict(os.environ, {DB_PATH_ENV: "/tmp/custom.db"}):
            self.assertEqual(default_db_path(), Path("/tmp/custom.db"))

    def test_default_is_in_working_directory(self):
        env = {key: value for key, value in os.environ.items() if key != DB_PATH_ENV}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(default_db_path(), Path.cwd() / "invoice-genie.db")


if __name__ == "__main__":
    unittest.main()
