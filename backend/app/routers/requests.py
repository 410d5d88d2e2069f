"""Query request submission and review routes."""

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Path, Query, UploadFile
from sqlalchemy.orm import Session

from app.db.dependencies import get_db
from app.dependencies import get_current_actor, get_dispatcher, get_notifier, get_pods, get_script_store
from app.errors import PortalError
from app.execution.dispatcher import ExecutionDispatcher
from app.models.query_request import DbType, RequestStatus, SubmissionType
from app.routers.http_errors import to_http_exception
from app.schemas.actor import Actor
from app.schemas.catalog import PodRead
from app.schemas.common import ApiResponse
from app.schemas.request import (
    ApprovalOutcome,
    QueryRequestCreate,
    QueryRequestListResponse,
    QueryRequestRead,
    RejectRequest,
    RequestFilters,
    ScreenRead,
    ScreenRequest,
    StatusUpdateRequest,
)
from app.services.catalog import manager_email_for
from app.services.destructive_screen import detect_destructive_operations
from app.services.notifications import WebhookNotifier
from app.services.requests import (
    approve_request,
    get_request,
    list_my_submissions,
    list_requests,
    reject_request,
    submit_request,
    update_request_status,
)
from app.services.script_store import ScriptStore

router = APIRouter(prefix="/requests")


@router.post("", response_model=ApiResponse[QueryRequestRead], status_code=201)
def submit(
    background_tasks: BackgroundTasks,
    db_type: DbType = Form(...),
    instance_name: str = Form(..., min_length=1),
    database_name: str = Form(..., min_length=1),
    pod_name: str = Form(..., min_length=1),
    submission_type: SubmissionType = Form(SubmissionType.QUERY),
    query_content: str | None = Form(None),
    comments: str | None = Form(None),
    script_file: UploadFile | None = File(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    script_store: ScriptStore = Depends(get_script_store),
    notifier: WebhookNotifier = Depends(get_notifier),
    pods: list[PodRead] = Depends(get_pods),
) -> ApiResponse[QueryRequestRead]:
    """Submit a statement or a script upload for approval."""

    payload = QueryRequestCreate(
        db_type=db_type,
        instance_name=instance_name,
        database_name=database_name,
        submission_type=submission_type,
        query_content=query_content,
        comments=comments,
        pod_name=pod_name,
    )
    script_path = None
    script_content = None
    try:
        if submission_type == SubmissionType.SCRIPT and script_file is not None:
            raw = script_file.file.read()
            script_path = script_store.save(script_file.filename or "", raw)
            script_content = raw.decode("utf-8")
        request = submit_request(db, actor, payload, script_path=script_path, script_content=script_content)
    except PortalError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(notifier.notify_submission, request, manager_email_for(pods, request.pod_name))
    return ApiResponse(data=QueryRequestRead.model_validate(request))


@router.post("/screen", response_model=ApiResponse[ScreenRead])
def screen(payload: ScreenRequest, _: Actor = Depends(get_current_actor)) -> ApiResponse[ScreenRead]:
    """Preview destructive-operation warnings without submitting."""

    result = detect_destructive_operations(payload.content, payload.db_type, payload.submission_type)
    return ApiResponse(data=ScreenRead(is_destructive=result.is_destructive, warnings=result.warnings))


def _filters(
    status: RequestStatus | None = Query(None),
    pod_name: str | None = Query(None),
    db_type: DbType | None = Query(None),
    submission_type: SubmissionType | None = Query(None),
    database_name: str | None = Query(None),
    search: str | None = Query(None),
) -> RequestFilters:
    return RequestFilters(
        status=status,
        pod_name=pod_name,
        db_type=db_type,
        submission_type=submission_type,
        database_name=database_name,
        search=search,
    )


@router.get("", response_model=ApiResponse[QueryRequestListResponse])
def list_all(
    filters: RequestFilters = Depends(_filters),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ApiResponse[QueryRequestListResponse]:
    """List requests visible to a manager or admin."""

    try:
        rows, total = list_requests(db, actor, filters, limit=limit, offset=offset)
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=_page(rows, total, limit, offset))


@router.get("/my-submissions", response_model=ApiResponse[QueryRequestListResponse])
def list_mine(
    filters: RequestFilters = Depends(_filters),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ApiResponse[QueryRequestListResponse]:
    """List the caller's own submissions."""

    rows, total = list_my_submissions(db, actor, filters, limit=limit, offset=offset)
    return ApiResponse(data=_page(rows, total, limit, offset))


@router.get("/{request_id}", response_model=ApiResponse[QueryRequestRead])
def get_one(
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ApiResponse[QueryRequestRead]:
    """Return one request subject to role and pod visibility."""

    try:
        request = get_request(db, request_id, actor)
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=QueryRequestRead.model_validate(request))


@router.put("/{request_id}", response_model=ApiResponse[ApprovalOutcome])
def update_status(
    payload: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: ExecutionDispatcher = Depends(get_dispatcher),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> ApiResponse[ApprovalOutcome]:
    """Approve or reject through a single status field."""

    try:
        request, execution = update_request_status(
            db,
            request_id,
            actor,
            payload.status,
            dispatcher,
            rejected_reason=payload.rejected_reason,
        )
    except PortalError as exc:
        raise to_http_exception(exc) from exc

    if execution is None:
        background_tasks.add_task(notifier.notify_rejection, request)
        return ApiResponse(data=ApprovalOutcome(request=QueryRequestRead.model_validate(request)))
    background_tasks.add_task(notifier.notify_approval_result, request, execution)
    return ApiResponse(data=_approval_outcome(request, execution))


@router.post("/{request_id}/approve", response_model=ApiResponse[ApprovalOutcome])
def approve(
    background_tasks: BackgroundTasks,
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    dispatcher: ExecutionDispatcher = Depends(get_dispatcher),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> ApiResponse[ApprovalOutcome]:
    """Approve a pending request and execute it synchronously."""

    try:
        request, execution = approve_request(db, request_id, actor, dispatcher)
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(notifier.notify_approval_result, request, execution)
    return ApiResponse(data=_approval_outcome(request, execution))


@router.post("/{request_id}/reject", response_model=ApiResponse[ApprovalOutcome])
def reject(
    background_tasks: BackgroundTasks,
    payload: RejectRequest | None = None,
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> ApiResponse[ApprovalOutcome]:
    """Reject a pending request with an optional reason."""

    try:
        request = reject_request(db, request_id, actor, payload.reason if payload else None)
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    background_tasks.add_task(notifier.notify_rejection, request)
    return ApiResponse(data=ApprovalOutcome(request=QueryRequestRead.model_validate(request)))


def _approval_outcome(request, execution) -> ApprovalOutcome:
    return ApprovalOutcome(
        request=QueryRequestRead.model_validate(request),
        execution_status=execution.status,
        error=execution.error_message,
    )


def _page(rows, total: int, limit: int, offset: int) -> QueryRequestListResponse:
    return QueryRequestListResponse(
        items=[QueryRequestRead.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )
