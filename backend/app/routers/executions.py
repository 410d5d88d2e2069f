"""Execution details and full-result download routes."""

from pathlib import Path as FilePath

from fastapi import APIRouter, Depends, Path
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db.dependencies import get_db
from app.dependencies import get_current_actor, get_object_storage
from app.errors import PortalError
from app.routers.http_errors import to_http_exception
from app.schemas.actor import Actor
from app.schemas.common import ApiResponse
from app.schemas.execution import ExecutionRead
from app.services.executions import describe_execution, prepare_download
from app.services.object_storage import ObjectStorage

router = APIRouter(prefix="/requests/{request_id}")


@router.get("/execution", response_model=ApiResponse[ExecutionRead])
def execution_details(
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ApiResponse[ExecutionRead]:
    """Return the execution record with CSV availability flags."""

    try:
        details = describe_execution(
            db,
            request_id,
            actor,
            retention_days=get_settings().result_retention_days,
        )
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    return ApiResponse(data=details)


@router.get("/csv", response_model=None)
def download_csv(
    request_id: int = Path(..., ge=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
) -> FileResponse | RedirectResponse:
    """Redirect to or stream the full CSV for a truncated result."""

    try:
        target = prepare_download(
            db,
            request_id,
            actor,
            storage,
            retention_days=get_settings().result_retention_days,
        )
    except PortalError as exc:
        raise to_http_exception(exc) from exc
    if target.is_remote:
        return RedirectResponse(target.locator, status_code=302)
    return FileResponse(target.locator, media_type="text/csv", filename=FilePath(target.locator).name)
