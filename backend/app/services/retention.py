"""Retention window and download decisions for offloaded result artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.errors import ArtifactExpired, ArtifactUnavailable, InvalidArgument, NotFound
from app.models.query_execution import QueryExecution
from app.services.object_storage import ObjectStorage, is_url

RETENTION_DAYS = 30


@dataclass(slots=True)
class ArtifactStatus:
    """Availability flags surfaced on the execution-details read path."""

    expires_at: datetime | None
    csv_available: bool
    csv_expired: bool
    csv_url: str | None


@dataclass(slots=True)
class DownloadTarget:
    """Where a caller should fetch the full result from."""

    locator: str
    is_remote: bool


def expiry_for(created_at: datetime, retention_days: int = RETENTION_DAYS) -> datetime:
    return as_utc(created_at) + timedelta(days=retention_days)


def is_expired(created_at: datetime, now: datetime | None = None, retention_days: int = RETENTION_DAYS) -> bool:
    current = as_utc(now or datetime.now(timezone.utc))
    return current > expiry_for(created_at, retention_days)


def describe_artifact(
    execution: QueryExecution,
    *,
    now: datetime | None = None,
    retention_days: int = RETENTION_DAYS,
) -> ArtifactStatus:
    """Compute availability flags without probing object storage."""

    expires_at = expiry_for(execution.created_at, retention_days) if execution.is_truncated else None
    expired = expires_at is not None and is_expired(execution.created_at, now, retention_days)
    available = bool(execution.result_file_path) and execution.is_truncated and not expired
    return ArtifactStatus(
        expires_at=expires_at,
        csv_available=available,
        csv_expired=expired,
        csv_url=execution.result_file_path if is_url(execution.result_file_path) else None,
    )


def resolve_download(
    execution: QueryExecution | None,
    storage: ObjectStorage,
    *,
    now: datetime | None = None,
    retention_days: int = RETENTION_DAYS,
) -> DownloadTarget:
    """Apply the retention policy and liveness probe before handing out an artifact."""

    if execution is None:
        raise NotFound("Execution not found for this request")
    if not execution.is_truncated:
        raise InvalidArgument("Result was not truncated. Full data is available in the response.")
    if not execution.result_file_path:
        raise NotFound("Full results file not available. File was never created or has been removed.")
    if is_expired(execution.created_at, now, retention_days):
        expired_at = expiry_for(execution.created_at, retention_days)
        raise ArtifactExpired(
            f"Results no longer available. Files are automatically deleted after {retention_days} days "
            f"(expired at {expired_at.isoformat()})."
        )
    if not storage.exists(execution.result_file_path):
        raise ArtifactUnavailable("Results file no longer available. File has been cleared from storage.")
    return DownloadTarget(locator=execution.result_file_path, is_remote=is_url(execution.result_file_path))


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
