"""Unit tests for result truncation and CSV offload."""

from __future__ import annotations

import csv
import io
import tempfile
import unittest
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from app.errors import ExecutionFailure
from app.services.object_storage import LocalObjectStorage
from app.services.result_offload import ResultOffloader, normalize_value, rows_to_csv


class _RecordingStorage:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str]] = []

    def upload(self, content: str, artifact_name: str) -> str:
        self.uploads.append((content, artifact_name))
        return f"https://bucket.example.com/results/{artifact_name}"

    def exists(self, locator: str) -> bool:
        return True


class _FailingStorage:
    def upload(self, content: str, artifact_name: str) -> str:
        raise ExecutionFailure("Failed to upload result artifact: bucket unreachable")

    def exists(self, locator: str) -> bool:
        return False


class ResultOffloadTests(unittest.TestCase):
    def test_rows_at_cap_are_returned_untouched(self) -> None:
        storage = _RecordingStorage()
        rows = [{"id": idx} for idx in range(100)]

        result = ResultOffloader(storage).apply(rows, source="query")

        self.assertFalse(result.is_truncated)
        self.assertEqual(result.total_rows, 100)
        self.assertEqual(result.rows, rows)
        self.assertIsNone(result.result_file_path)
        self.assertEqual(storage.uploads, [])

    def test_rows_over_cap_are_truncated_and_uploaded(self) -> None:
        storage = _RecordingStorage()
        rows = [{"id": idx, "name": f"user-{idx}"} for idx in range(150)]

        result = ResultOffloader(storage).apply(rows, source="mongo")

        self.assertTrue(result.is_truncated)
        self.assertEqual(result.total_rows, 150)
        self.assertEqual(len(result.rows), 100)
        self.assertEqual(result.rows[0], {"id": 0, "name": "user-0"})
        self.assertEqual(len(storage.uploads), 1)
        content, artifact_name = storage.uploads[0]
        self.assertTrue(artifact_name.startswith("mongo_"))
        self.assertTrue(artifact_name.endswith(".csv"))
        self.assertEqual(result.result_file_path, f"https://bucket.example.com/results/{artifact_name}")

        parsed = list(csv.DictReader(io.StringIO(content)))
        self.assertEqual(len(parsed), 150)
        self.assertEqual(parsed[149], {"id": "149", "name": "user-149"})

    def test_upload_failure_propagates(self) -> None:
        rows = [{"id": idx} for idx in range(101)]

        with self.assertRaises(ExecutionFailure):
            ResultOffloader(_FailingStorage()).apply(rows, source="query")

    def test_csv_quotes_delimiters_quotes_and_newlines(self) -> None:
        rows = [{"note": 'say "hi", then\nleave', "empty": None, "nested": {"a": 1}}]

        content = rows_to_csv(rows)
        parsed = list(csv.DictReader(io.StringIO(content)))

        self.assertTrue(content.startswith("note,empty,nested\n"))
        self.assertIn('"say ""hi"", then\nleave"', content)
        self.assertEqual(parsed[0]["note"], 'say "hi", then\nleave')
        self.assertEqual(parsed[0]["empty"], "")
        self.assertEqual(parsed[0]["nested"], '{"a": 1}')

    def test_header_comes_from_first_record(self) -> None:
        content = rows_to_csv([{"a": 1, "b": 2}, {"a": 3, "c": 4}])

        self.assertEqual(content, "a,b\n1,2\n3,\n")

    def test_driver_values_are_normalized(self) -> None:
        value = normalize_value(
            {
                "at": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
                "amount": Decimal("10.50"),
                "raw": b"\x01\x02",
                "items": (1, 2),
            }
        )

        self.assertEqual(
            value,
            {"at": "2026-01-02T03:04:05+00:00", "amount": "10.50", "raw": "0102", "items": [1, 2]},
        )

    def test_local_storage_writes_under_folder(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            storage = LocalObjectStorage(root_dir=tmp, folder="results")
            rows = [{"id": idx} for idx in range(3)]

            result = ResultOffloader(storage, max_rows=2).apply(rows, source="query")

            self.assertTrue(result.is_truncated)
            path = Path(result.result_file_path)
            self.assertEqual(path.parent, Path(tmp) / "results")
            self.assertEqual(path.read_text(encoding="utf-8"), "id\n0\n1\n2\n")
            self.assertTrue(storage.exists(str(path)))


if __name__ == "__main__":
    unittest.main()
