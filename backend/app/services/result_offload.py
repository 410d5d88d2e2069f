"""In-band result capping with CSV offload for oversized result sets."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from time import perf_counter
from typing import Any
from uuid import UUID, uuid4

from app.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 100


@dataclass(slots=True)
class ResultSet:
    """Row payload after the truncation policy has been applied."""

    rows: list[Any] = field(default_factory=list)
    is_truncated: bool = False
    total_rows: int = 0
    result_file_path: str | None = None

    def as_payload(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "is_truncated": self.is_truncated,
            "total_rows": self.total_rows,
            "result_file_path": self.result_file_path,
        }


class ResultOffloader:
    """Caps rows returned in-band and uploads the full set when it is too large."""

    def __init__(self, storage: ObjectStorage, *, max_rows: int = DEFAULT_MAX_ROWS) -> None:
        self.storage = storage
        self.max_rows = max_rows

    def apply(self, rows: Sequence[Any], source: str) -> ResultSet:
        """Return the capped rows, uploading every row as CSV when over the cap.

        Upload errors propagate: a truncated result without its artifact is unusable.
        """

        materialized = [normalize_value(row) for row in rows]
        total = len(materialized)
        if total <= self.max_rows:
            return ResultSet(rows=materialized, is_truncated=False, total_rows=total)

        started = perf_counter()
        artifact_name = f"{source}_{uuid4().hex}.csv"
        locator = self.storage.upload(rows_to_csv(materialized), artifact_name)
        logger.info(
            "offload.uploaded source=%s total_rows=%d artifact=%s elapsed_ms=%.2f",
            source,
            total,
            artifact_name,
            (perf_counter() - started) * 1000.0,
        )
        return ResultSet(
            rows=materialized[: self.max_rows],
            is_truncated=True,
            total_rows=total,
            result_file_path=locator,
        )


def rows_to_csv(rows: Sequence[Any]) -> str:
    """Serialize records to CSV with a header taken from the first record."""

    if not rows:
        return ""
    first = rows[0]
    if isinstance(first, Mapping):
        headers = [str(key) for key in first.keys()]
    else:
        headers = ["value"]

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        if isinstance(row, Mapping):
            writer.writerow([_csv_cell(row.get(header)) for header in headers])
        else:
            writer.writerow([_csv_cell(row)])
    return buffer.getvalue()


def normalize_value(value: Any) -> Any:
    """Convert driver values (datetimes, decimals, ObjectIds, bytes) to JSON-safe data."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(key): normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [normalize_value(item) for item in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    return str(value)


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
