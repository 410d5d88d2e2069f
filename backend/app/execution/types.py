"""Typed executor outputs independent of persistence."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class DispatchOutcome:
    """Normalized result of one dispatch attempt."""

    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_truncated(self) -> bool:
        return bool((self.result or {}).get("is_truncated"))

    @property
    def total_rows(self) -> int | None:
        value = (self.result or {}).get("total_rows")
        return int(value) if isinstance(value, int) else None

    @property
    def result_file_path(self) -> str | None:
        if not self.is_truncated:
            return None
        return (self.result or {}).get("result_file_path")


@dataclass(slots=True)
class SandboxResult:
    """Value and console output captured from a sandboxed script."""

    value: Any = None
    logs: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
