from __future__ import annotations

import re
import unittest

from invoice_genie.contracts import (
    CONTRACT_VERSIONS,
    build_contract,
    build_parse_payload,
    build_run_summary,
    utc_now_iso,
)


class ContractTests(unittest.TestCase):
    def test_parse_payload_reports_one_based_mapping(self):
        payload = build_parse_payload(
            record={"email": "x@y.com"},
            strategy="heuristic",
            mapping={"email": 0},
            source="<text>",
        )

        self.assertEqual(payload["contract"]["name"], "invoice_genie.parse")
        self.assertEqual(payload["schema_version"], payload["contract"]["version"])
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["mapping"], {"email": 1})

    def test_parse_payload_without_record_needs_mapping(self):
        payload = build_parse_payload(record=None, strategy=None, mapping={}, source="<stdin>")
        self.assertEqual(payload["status"], "needs_mapping")
        self.assertIsNone(payload["record"])

    def test_every_contract_is_versioned(self):
        for name in CONTRACT_VERSIONS:
            with self.subTest(name=name):
                self.assertRegex(build_contract(name)["version"], r"^\d+\.\d+\.\d+$")
        with self.assertRaises(KeyError):
            build_contract("invoice_genie.unknown")

    def test_run_summary_counts_warnings(self):
        summary = build_run_summary(tool="invoice-genie", command="products import", warnings=["Row 2: Missing name or price"])

        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["warnings_count"], 1)
        self.assertEqual(summary["metrics"], {})

    def test_timestamps_are_utc_seconds(self):
        self.assertTrue(re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$", utc_now_iso()))


if __name__ == "__main__":
    unittest.main()
