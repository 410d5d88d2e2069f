"""Executor interface for pluggable execution backends."""

from abc import ABC, abstractmethod
from typing import Any

from app.services.connection_registry import ConnectionDescriptor


class ExecutorInterface(ABC):
    """Abstract executor interface."""

    @abstractmethod
    def execute(self, descriptor: ConnectionDescriptor, database_name: str, content: str) -> dict[str, Any]:
        """Run content against the described instance and return a JSON-safe payload."""
