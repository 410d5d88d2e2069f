"""ORM models package exports."""

from app.models.query_execution import ExecutionStatus, QueryExecution
from app.models.query_request import DbType, QueryRequest, RequestStatus, SubmissionType

__all__ = [
    "DbType",
    "ExecutionStatus",
    "QueryExecution",
    "QueryRequest",
    "RequestStatus",
    "SubmissionType",
]
