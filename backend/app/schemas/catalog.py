"""Schemas for instance and pod catalog endpoints."""

from pydantic import BaseModel


class InstanceRead(BaseModel):
    """Registry entry with credentials stripped."""

    name: str
    kind: str
    host: str
    port: int
    databases: list[str]


class PodRead(BaseModel):
    """Team that owns requests and their approval scope."""

    name: str
    display_name: str | None = None
    manager_email: str | None = None
