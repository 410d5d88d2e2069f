"""Advisory screen that flags statements and scripts likely to mutate data.

The screen never blocks execution. Callers surface the warnings to the
requester and the approver and decide for themselves.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from app.models.query_request import DbType, SubmissionType

MAX_WARNINGS = 5

_RELATIONAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bDROP\s+(TABLE|DATABASE|SCHEMA|INDEX|VIEW|FUNCTION|TRIGGER)", re.IGNORECASE),
    re.compile(r"\bTRUNCATE\s+", re.IGNORECASE),
    re.compile(r"\bDELETE\s+FROM\s+", re.IGNORECASE),
    re.compile(r"\bALTER\s+(TABLE|DATABASE)", re.IGNORECASE),
    re.compile(r"\bUPDATE\s+.*\bSET\s+", re.IGNORECASE),
    re.compile(r"\bINSERT\s+INTO\s+", re.IGNORECASE),
    re.compile(r"\bCREATE\s+OR\s+REPLACE\s+", re.IGNORECASE),
)

_DOCUMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.drop\s*\(", re.IGNORECASE),
    re.compile(r"\.deleteOne\s*\(", re.IGNORECASE),
    re.compile(r"\.deleteMany\s*\(", re.IGNORECASE),
    re.compile(r"\.remove\s*\(", re.IGNORECASE),
    re.compile(r"\.updateOne\s*\(", re.IGNORECASE),
    re.compile(r"\.updateMany\s*\(", re.IGNORECASE),
    re.compile(r"\.replaceOne\s*\(", re.IGNORECASE),
    re.compile(r"\.insertOne\s*\(", re.IGNORECASE),
    re.compile(r"\.insertMany\s*\(", re.IGNORECASE),
    re.compile(r"\.findOneAndDelete\s*\(", re.IGNORECASE),
    re.compile(r"\.findOneAndUpdate\s*\(", re.IGNORECASE),
    re.compile(r"\.findOneAndReplace\s*\(", re.IGNORECASE),
    re.compile(r"\$set\b", re.IGNORECASE),
    re.compile(r"\$unset\b", re.IGNORECASE),
    re.compile(r"\$push\b", re.IGNORECASE),
    re.compile(r"\$pull\b", re.IGNORECASE),
)

# Scripts are free-form code, so these look for driver calls and embedded SQL alike.
_SCRIPT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.drop\w*\s*\(", re.IGNORECASE),
    re.compile(r"\.delete\w*", re.IGNORECASE),
    re.compile(r"\.remove\s*\(", re.IGNORECASE),
    re.compile(r"\.update\w*", re.IGNORECASE),
    re.compile(r"\.insert\w*", re.IGNORECASE),
    re.compile(r"\bDROP\s+", re.IGNORECASE),
    re.compile(r"\bDELETE\s+", re.IGNORECASE),
    re.compile(r"\bTRUNCATE\s+", re.IGNORECASE),
    re.compile(r"\bUPDATE\s+.*\bSET\b", re.IGNORECASE),
)


@dataclass(slots=True)
class ScreenResult:
    """Outcome of the destructive-operation screen."""

    is_destructive: bool = False
    warnings: list[str] = field(default_factory=list)


def detect_destructive_operations(
    content: str | None,
    db_type: str | None,
    submission_type: str | None,
) -> ScreenResult:
    """Classify content as potentially destructive and explain why."""

    if content is None or not content.strip():
        return ScreenResult()

    if submission_type == SubmissionType.SCRIPT:
        warnings = _collect(
            content,
            _SCRIPT_PATTERNS,
            lambda hit: f"Script contains potentially destructive operation: {_compact(hit)}",
        )
    elif db_type == DbType.POSTGRESQL:
        warnings = _collect(content, _RELATIONAL_PATTERNS, lambda hit: f"Query contains: {_compact(hit).upper()}")
    elif db_type == DbType.MONGODB:
        warnings = _collect(content, _DOCUMENT_PATTERNS, lambda hit: f"Query contains: {_compact(hit)}")
    else:
        warnings = []

    unique = list(dict.fromkeys(warnings))[:MAX_WARNINGS]
    return ScreenResult(is_destructive=bool(unique), warnings=unique)


def _collect(content: str, patterns, render) -> list[str]:
    warnings: list[str] = []
    for pattern in patterns:
        match = pattern.search(content)
        if match is not None:
            warnings.append(render(match.group(0)))
    return warnings


def _compact(fragment: str, limit: int = 60) -> str:
    collapsed = " ".join(fragment.split())
    if len(collapsed) > limit:
        return f"{collapsed[:limit]}..."
    return collapsed
