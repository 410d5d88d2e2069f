"""Translation of domain errors into HTTP errors."""

from fastapi import HTTPException

from app.errors import (
    ArtifactExpired,
    ArtifactUnavailable,
    Forbidden,
    InstanceNotFound,
    InvalidArgument,
    InvalidState,
    NotFound,
    PortalError,
)

_STATUS_BY_ERROR: tuple[tuple[type[PortalError], int], ...] = (
    (NotFound, 404),
    (InstanceNotFound, 404),
    (Forbidden, 403),
    (InvalidState, 400),
    (InvalidArgument, 400),
    (ArtifactExpired, 410),
    (ArtifactUnavailable, 410),
)


def to_http_exception(exc: PortalError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
