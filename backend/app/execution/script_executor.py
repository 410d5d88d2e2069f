"""Script executor: runs an uploaded script in the sandbox against one target."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from time import perf_counter
from typing import Any

from app.errors import ExecutionFailure
from app.execution.document_executor import build_mongo_uri
from app.execution.executor_interface import ExecutorInterface
from app.execution.sandbox import run_sandboxed
from app.execution.types import SandboxResult
from app.models.query_request import DbType
from app.services.connection_registry import ConnectionDescriptor
from app.services.credentials import CredentialCodec, Credentials
from app.services.result_offload import ResultOffloader
from app.services.script_store import ScriptStore

logger = logging.getLogger(__name__)


class ScriptExecutor(ExecutorInterface):
    """Builds the injected connection context and runs the stored script."""

    def __init__(
        self,
        codec: CredentialCodec,
        offloader: ResultOffloader,
        script_store: ScriptStore,
        *,
        timeout_seconds: float = 60,
        default_credentials: Credentials | None = None,
        runner: Callable[..., SandboxResult] = run_sandboxed,
    ) -> None:
        self.codec = codec
        self.offloader = offloader
        self.script_store = script_store
        self.timeout_seconds = timeout_seconds
        self.default_credentials = default_credentials
        self._runner = runner

    def execute(self, descriptor: ConnectionDescriptor, database_name: str, content: str) -> dict[str, Any]:
        source = self.script_store.read(content)
        context = self.build_context(descriptor, database_name)

        started = perf_counter()
        outcome = self._runner(
            source,
            context,
            self.timeout_seconds,
            filename=Path(content).name,
        )
        logger.info(
            "execution.script_finished instance=%s database=%s log_lines=%d elapsed_ms=%.2f",
            descriptor.name,
            database_name,
            len(outcome.logs),
            (perf_counter() - started) * 1000.0,
        )

        payload: dict[str, Any] = {
            "output": outcome.value,
            "logs": outcome.logs,
            "errors": outcome.errors,
        }
        if _is_record_list(outcome.value):
            result_set = self.offloader.apply(outcome.value, source="script")
            payload["output"] = result_set.rows
            payload.update(result_set.as_payload())
        return payload

    def build_context(self, descriptor: ConnectionDescriptor, database_name: str) -> dict[str, Any]:
        """Return the plain-data connection context handed to the script."""

        credentials = self._resolve_credentials(descriptor)
        if descriptor.kind == DbType.POSTGRESQL:
            return {
                "DB_CONFIG": {
                    "host": descriptor.host,
                    "port": descriptor.port,
                    "dbname": database_name,
                    "user": credentials.username,
                    "password": credentials.password,
                    "sslmode": descriptor.ssl_mode,
                }
            }
        if descriptor.kind == DbType.MONGODB:
            return {"MONGO_URI": build_mongo_uri(descriptor, database_name, credentials)}
        raise ExecutionFailure(f"Unsupported database type for scripts: {descriptor.kind}")

    def _resolve_credentials(self, descriptor: ConnectionDescriptor) -> Credentials:
        credentials = self.codec.decrypt(descriptor.credential_ref)
        if credentials.username or self.default_credentials is None:
            return credentials
        logger.warning("execution.default_credentials_used instance=%s", descriptor.name)
        return self.default_credentials


def _is_record_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, Mapping) for item in value)
