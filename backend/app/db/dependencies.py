"""FastAPI dependency for request-scoped database sessions."""

from collections.abc import Iterator

from sqlalchemy.orm import Session

from app.db.session import SessionLocal


def get_db() -> Iterator[Session]:
    """Yield a session and always close it after the request."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
