"""Relational (PostgreSQL) statement executor."""

from __future__ import annotations

import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any

import psycopg
from psycopg.rows import dict_row

from app.errors import ExecutionFailure
from app.execution.executor_interface import ExecutorInterface
from app.services.connection_registry import ConnectionDescriptor
from app.services.credentials import CredentialCodec, Credentials
from app.services.result_offload import ResultOffloader

logger = logging.getLogger(__name__)


class RelationalExecutor(ExecutorInterface):
    """Runs one statement on a short-lived connection with a server-side timeout."""

    def __init__(
        self,
        codec: CredentialCodec,
        offloader: ResultOffloader,
        *,
        statement_timeout_seconds: int = 30,
        connect_timeout_seconds: int = 10,
        default_credentials: Credentials | None = None,
        connect: Callable[..., Any] = psycopg.connect,
    ) -> None:
        self.codec = codec
        self.offloader = offloader
        self.statement_timeout_seconds = statement_timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.default_credentials = default_credentials
        self._connect = connect

    def execute(self, descriptor: ConnectionDescriptor, database_name: str, content: str) -> dict[str, Any]:
        credentials = self._resolve_credentials(descriptor)
        started = perf_counter()
        conn = self._connect(
            host=descriptor.host,
            port=descriptor.port,
            dbname=database_name,
            user=credentials.username,
            password=credentials.password,
            sslmode=descriptor.ssl_mode,
            connect_timeout=self.connect_timeout_seconds,
            row_factory=dict_row,
        )
        try:
            conn.execute(f"SET statement_timeout = {int(self.statement_timeout_seconds * 1000)}")
            cursor = conn.execute(content)
            rows = list(cursor.fetchall()) if cursor.description is not None else []
            conn.commit()
        finally:
            conn.close()

        logger.info(
            "execution.relational_finished instance=%s database=%s rows=%d elapsed_ms=%.2f",
            descriptor.name,
            database_name,
            len(rows),
            (perf_counter() - started) * 1000.0,
        )
        return self.offloader.apply(rows, source="query").as_payload()

    def _resolve_credentials(self, descriptor: ConnectionDescriptor) -> Credentials:
        credentials = self.codec.decrypt(descriptor.credential_ref)
        if credentials.username and credentials.password is not None:
            return credentials
        if self.default_credentials is not None:
            logger.warning("execution.default_credentials_used instance=%s", descriptor.name)
            return self.default_credentials
        raise ExecutionFailure(f"No credentials configured for database instance {descriptor.name}")
