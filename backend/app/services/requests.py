"""Request lifecycle: submission, review, approval with execution, and listing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from time import perf_counter

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.errors import Forbidden, InvalidArgument, InvalidState, NotFound
from app.execution.dispatcher import ExecutionDispatcher
from app.models.query_execution import ExecutionStatus, QueryExecution
from app.models.query_request import QueryRequest, RequestStatus, SubmissionType
from app.schemas.actor import Actor, Role
from app.schemas.request import QueryRequestCreate, RequestFilters
from app.services.destructive_screen import detect_destructive_operations

logger = logging.getLogger(__name__)

_REVIEW_STATUSES = {RequestStatus.APPROVED, RequestStatus.REJECTED}


def submit_request(
    db: Session,
    requester: Actor,
    payload: QueryRequestCreate,
    *,
    script_path: str | None = None,
    script_content: str | None = None,
) -> QueryRequest:
    """Validate and persist a new PENDING request with its advisory screen result."""

    query_content = (payload.query_content or "").strip() or None
    if payload.submission_type == SubmissionType.QUERY:
        if query_content is None:
            raise InvalidArgument("Query content is required for QUERY submission")
        script_path = None
        screened = query_content
    else:
        if not script_path:
            raise InvalidArgument("Script file is required for SCRIPT submission")
        query_content = None
        screened = script_content

    screen = detect_destructive_operations(screened, payload.db_type, payload.submission_type)
    request = QueryRequest(
        requester_id=requester.id,
        requester_name=requester.name,
        requester_email=requester.email,
        db_type=payload.db_type.value,
        instance_name=payload.instance_name.strip(),
        database_name=payload.database_name.strip(),
        submission_type=payload.submission_type.value,
        query_content=query_content,
        script_path=script_path,
        comments=payload.comments,
        pod_name=payload.pod_name.strip(),
        status=RequestStatus.PENDING.value,
        destructive_warnings_json=screen.warnings,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "requests.submitted request_id=%s requester_id=%s pod=%s submission_type=%s destructive=%s",
        request.id,
        requester.id,
        request.pod_name,
        request.submission_type,
        screen.is_destructive,
    )
    return request


def approve_request(
    db: Session,
    request_id: int,
    approver: Actor,
    dispatcher: ExecutionDispatcher,
) -> tuple[QueryRequest, QueryExecution]:
    """Claim a PENDING request, execute it, and record exactly one execution.

    The PENDING -> APPROVED write is a conditional update, so only one of two
    concurrent approvals dispatches.
    """

    request = _load_for_review(db, request_id, approver)
    approved_at = datetime.now(timezone.utc)
    claimed = db.execute(
        update(QueryRequest)
        .where(QueryRequest.id == request_id, QueryRequest.status == RequestStatus.PENDING.value)
        .values(
            status=RequestStatus.APPROVED.value,
            approver_id=approver.id,
            approver_name=approver.name,
            approver_email=approver.email,
            approved_at=approved_at,
            updated_at=approved_at,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise InvalidState("Request is not in PENDING status")
    db.commit()
    db.refresh(request)

    started = perf_counter()
    outcome = dispatcher.dispatch(request)
    execution = QueryExecution(
        request_id=request.id,
        status=(ExecutionStatus.SUCCESS if outcome.success else ExecutionStatus.FAILURE).value,
        result_data=outcome.result if outcome.success else None,
        error_message=None if outcome.success else outcome.error,
        is_truncated=outcome.is_truncated,
        total_rows=outcome.total_rows,
        result_file_path=outcome.result_file_path,
        executed_at=datetime.now(timezone.utc),
    )
    request.status = (RequestStatus.EXECUTED if outcome.success else RequestStatus.FAILED).value
    db.add(execution)
    db.commit()
    db.refresh(request)
    db.refresh(execution)

    logger.info(
        "requests.approved request_id=%s approver_id=%s final_status=%s truncated=%s elapsed_ms=%.2f",
        request.id,
        approver.id,
        request.status,
        execution.is_truncated,
        (perf_counter() - started) * 1000.0,
    )
    return request, execution


def reject_request(db: Session, request_id: int, approver: Actor, reason: str | None = None) -> QueryRequest:
    """Move a PENDING request to REJECTED without executing anything."""

    request = _load_for_review(db, request_id, approver)
    rejected_at = datetime.now(timezone.utc)
    claimed = db.execute(
        update(QueryRequest)
        .where(QueryRequest.id == request_id, QueryRequest.status == RequestStatus.PENDING.value)
        .values(
            status=RequestStatus.REJECTED.value,
            approver_id=approver.id,
            approver_name=approver.name,
            approver_email=approver.email,
            rejected_reason=reason,
            updated_at=rejected_at,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise InvalidState("Request is not in PENDING status")
    db.commit()
    db.refresh(request)
    logger.info("requests.rejected request_id=%s approver_id=%s", request.id, approver.id)
    return request


def update_request_status(
    db: Session,
    request_id: int,
    approver: Actor,
    status: str,
    dispatcher: ExecutionDispatcher,
    *,
    rejected_reason: str | None = None,
) -> tuple[QueryRequest, QueryExecution | None]:
    """Generic entry point that routes to approve or reject."""

    if status not in _REVIEW_STATUSES:
        raise InvalidArgument("Status must be APPROVED or REJECTED")
    if status == RequestStatus.APPROVED:
        return approve_request(db, request_id, approver, dispatcher)
    return reject_request(db, request_id, approver, rejected_reason), None


def get_request(db: Session, request_id: int, viewer: Actor) -> QueryRequest:
    """Return one request if the viewer's role and scope allow it."""

    request = db.get(QueryRequest, request_id)
    if request is None:
        raise NotFound("Request not found")
    if viewer.role == Role.ADMIN:
        return request
    if viewer.role == Role.MANAGER:
        if request.pod_name != viewer.pod_name:
            raise Forbidden("Access denied. Request belongs to a different POD.")
        return request
    if request.requester_id != viewer.id:
        raise Forbidden("Access denied. You can only view your own requests.")
    return request


def list_requests(
    db: Session,
    viewer: Actor,
    filters: RequestFilters,
    *,
    limit: int,
    offset: int,
) -> tuple[list[QueryRequest], int]:
    """Return the review queue. Managers are pinned to their own pod."""

    if viewer.role == Role.ADMIN:
        pod_name = filters.pod_name
    elif viewer.role == Role.MANAGER:
        pod_name = viewer.pod_name
    else:
        raise Forbidden("Only managers and admins can list requests")
    scoped = filters.model_copy(update={"pod_name": pod_name})
    return _paginate(db, _filtered(scoped), limit=limit, offset=offset)


def list_my_submissions(
    db: Session,
    requester: Actor,
    filters: RequestFilters,
    *,
    limit: int,
    offset: int,
) -> tuple[list[QueryRequest], int]:
    """Return the caller's own submissions, newest first."""

    stmt = _filtered(filters).where(QueryRequest.requester_id == requester.id)
    return _paginate(db, stmt, limit=limit, offset=offset)


def ensure_review_scope(request: QueryRequest, actor: Actor) -> None:
    """Raise Forbidden unless the actor may approve or reject the request."""

    if actor.role == Role.ADMIN:
        return
    if actor.role == Role.MANAGER:
        if request.pod_name != actor.pod_name:
            raise Forbidden("You can only update requests for your POD")
        return
    raise Forbidden("Only managers and admins can review requests")


def _load_for_review(db: Session, request_id: int, actor: Actor) -> QueryRequest:
    request = db.get(QueryRequest, request_id)
    if request is None:
        raise NotFound("Request not found")
    ensure_review_scope(request, actor)
    if request.status != RequestStatus.PENDING:
        raise InvalidState("Request is not in PENDING status")
    return request


def _filtered(filters: RequestFilters):
    stmt = select(QueryRequest)
    if filters.status is not None:
        stmt = stmt.where(QueryRequest.status == filters.status.value)
    if filters.pod_name:
        stmt = stmt.where(QueryRequest.pod_name == filters.pod_name)
    if filters.db_type is not None:
        stmt = stmt.where(QueryRequest.db_type == filters.db_type.value)
    if filters.submission_type is not None:
        stmt = stmt.where(QueryRequest.submission_type == filters.submission_type.value)
    if filters.database_name:
        stmt = stmt.where(QueryRequest.database_name == filters.database_name)
    if filters.search:
        pattern = f"%{filters.search.strip()}%"
        stmt = stmt.where(or_(QueryRequest.query_content.ilike(pattern), QueryRequest.comments.ilike(pattern)))
    return stmt


def _paginate(db: Session, stmt, *, limit: int, offset: int) -> tuple[list[QueryRequest], int]:
    total = int(db.scalar(select(func.count()).select_from(stmt.subquery())) or 0)
    rows = db.scalars(
        stmt.order_by(QueryRequest.created_at.desc(), QueryRequest.id.desc()).limit(limit).offset(offset)
    ).all()
    return list(rows), total
