"""SQLAlchemy metadata registry import for Alembic."""

from app.models import QueryExecution, QueryRequest
from app.models.base import Base

__all__ = ["Base", "QueryRequest", "QueryExecution"]
