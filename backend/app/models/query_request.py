"""Query request ORM model."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IdMixin, TimestampMixin


class DbType(StrEnum):
    """Target database family."""

    POSTGRESQL = "POSTGRESQL"
    MONGODB = "MONGODB"


class SubmissionType(StrEnum):
    """Whether a request carries an inline statement or an uploaded script."""

    QUERY = "QUERY"
    SCRIPT = "SCRIPT"


class RequestStatus(StrEnum):
    """Lifecycle states of a query request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class QueryRequest(Base, IdMixin, TimestampMixin):
    """A statement or script awaiting or having undergone approval."""

    __tablename__ = "query_requests"
    __table_args__ = (
        CheckConstraint(
            "(submission_type = 'QUERY' AND query_content IS NOT NULL AND script_path IS NULL) OR "
            "(submission_type = 'SCRIPT' AND script_path IS NOT NULL AND query_content IS NULL)",
            name="ck_query_requests_single_payload",
        ),
        Index("ix_query_requests_pod_status_created", "pod_name", "status", "created_at"),
    )

    requester_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    requester_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requester_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    db_type: Mapped[str] = mapped_column(String(32), nullable=False)
    instance_name: Mapped[str] = mapped_column(String(255), nullable=False)
    database_name: Mapped[str] = mapped_column(String(255), nullable=False)
    submission_type: Mapped[str] = mapped_column(String(16), nullable=False)
    query_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    script_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    pod_name: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        default=RequestStatus.PENDING.value,
        index=True,
        nullable=False,
    )
    approver_id: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    approver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approver_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    destructive_warnings_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    executions: Mapped[list["QueryExecution"]] = relationship(  # noqa: F821
        back_populates="request",
        order_by="QueryExecution.id",
    )
