"""Schemas for query request submission, review and listing."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.query_request import DbType, RequestStatus, SubmissionType


class QueryRequestCreate(BaseModel):
    """Form fields accepted when submitting a request."""

    db_type: DbType
    instance_name: str = Field(..., min_length=1)
    database_name: str = Field(..., min_length=1)
    submission_type: SubmissionType = SubmissionType.QUERY
    query_content: str | None = None
    comments: str | None = None
    pod_name: str = Field(..., min_length=1)


class QueryRequestRead(BaseModel):
    """Serialized request returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: str
    requester_name: str | None
    requester_email: str | None
    db_type: DbType
    instance_name: str
    database_name: str
    submission_type: SubmissionType
    query_content: str | None
    script_path: str | None
    comments: str | None
    pod_name: str
    status: RequestStatus
    approver_id: str | None
    approver_name: str | None
    approver_email: str | None
    approved_at: datetime | None
    rejected_reason: str | None
    destructive_warnings: list[str] = Field(default_factory=list, validation_alias="destructive_warnings_json")
    created_at: datetime
    updated_at: datetime


class QueryRequestListResponse(BaseModel):
    """Paginated request list payload."""

    items: list[QueryRequestRead]
    total: int
    limit: int
    offset: int


class RequestFilters(BaseModel):
    """Optional list filters shared by the review queue and submission history."""

    status: RequestStatus | None = None
    pod_name: str | None = None
    db_type: DbType | None = None
    submission_type: SubmissionType | None = None
    database_name: str | None = None
    search: str | None = None


class StatusUpdateRequest(BaseModel):
    """Body for the generic status update entry point."""

    status: str
    rejected_reason: str | None = None


class RejectRequest(BaseModel):
    """Body for the reject action."""

    reason: str | None = None


class ScreenRequest(BaseModel):
    """Content to run through the destructive-operation screen."""

    content: str | None = None
    db_type: DbType
    submission_type: SubmissionType = SubmissionType.QUERY


class ScreenRead(BaseModel):
    """Advisory result of the destructive-operation screen."""

    is_destructive: bool
    warnings: list[str]


class ApprovalOutcome(BaseModel):
    """Request state after an approve or reject action."""

    request: QueryRequestRead
    execution_status: Literal["SUCCESS", "FAILURE"] | None = None
    error: str | None = None
