"""Execution record read path and offloaded artifact downloads."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import NotFound
from app.models.query_execution import QueryExecution
from app.schemas.actor import Actor
from app.schemas.execution import ExecutionRead
from app.services.object_storage import ObjectStorage
from app.services.requests import get_request
from app.services.retention import RETENTION_DAYS, DownloadTarget, describe_artifact, resolve_download

logger = logging.getLogger(__name__)


def get_execution(db: Session, request_id: int) -> QueryExecution | None:
    stmt = select(QueryExecution).where(QueryExecution.request_id == request_id)
    return db.scalars(stmt).first()


def describe_execution(
    db: Session,
    request_id: int,
    viewer: Actor,
    *,
    retention_days: int = RETENTION_DAYS,
) -> ExecutionRead:
    """Return the execution record with artifact availability flags."""

    get_request(db, request_id, viewer)
    execution = get_execution(db, request_id)
    if execution is None:
        raise NotFound("Execution not found")
    status = describe_artifact(execution, retention_days=retention_days)
    return ExecutionRead.model_validate(execution).model_copy(
        update={
            "expires_at": status.expires_at,
            "csv_available": status.csv_available,
            "csv_expired": status.csv_expired,
            "csv_url": status.csv_url,
        }
    )


def prepare_download(
    db: Session,
    request_id: int,
    viewer: Actor,
    storage: ObjectStorage,
    *,
    retention_days: int = RETENTION_DAYS,
) -> DownloadTarget:
    """Resolve where the full result set for a request can be fetched."""

    get_request(db, request_id, viewer)
    target = resolve_download(get_execution(db, request_id), storage, retention_days=retention_days)
    logger.info("executions.download_resolved request_id=%s remote=%s", request_id, target.is_remote)
    return target
