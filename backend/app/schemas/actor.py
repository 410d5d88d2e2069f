"""Schemas for the authenticated caller supplied by the gateway."""

from enum import StrEnum

from pydantic import BaseModel


class Role(StrEnum):
    """Portal roles recognised by the scope rules."""

    DEVELOPER = "DEVELOPER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class Actor(BaseModel):
    """Caller identity and scope for one API request."""

    id: str
    name: str | None = None
    email: str | None = None
    role: Role = Role.DEVELOPER
    pod_name: str | None = None
