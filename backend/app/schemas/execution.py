"""Schemas for execution records and offloaded result artifacts."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from app.models.query_execution import ExecutionStatus


class ExecutionRead(BaseModel):
    """Execution record plus artifact availability flags."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    status: ExecutionStatus
    result_data: Any = None
    error_message: str | None
    is_truncated: bool
    total_rows: int | None
    result_file_path: str | None
    executed_at: datetime
    created_at: datetime
    expires_at: datetime | None = None
    csv_available: bool = False
    csv_expired: bool = False
    csv_url: str | None = None
