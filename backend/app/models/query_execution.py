"""Execution record ORM model."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IdMixin, TimestampMixin


class ExecutionStatus(StrEnum):
    """Outcome of one dispatch attempt."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class QueryExecution(Base, IdMixin, TimestampMixin):
    """Persisted outcome of dispatching an approved request."""

    __tablename__ = "query_executions"

    # One execution per request; the FK stays one-to-many shaped for a future retry path.
    request_id: Mapped[int] = mapped_column(
        ForeignKey("query_requests.id", ondelete="CASCADE"),
        unique=True,
        index=True,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    result_data: Mapped[Any] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_truncated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    total_rows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_file_path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    request: Mapped["QueryRequest"] = relationship(back_populates="executions")  # noqa: F821
