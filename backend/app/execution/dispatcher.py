"""Routes an approved request to the executor for its kind and target."""

from __future__ import annotations

import logging
from time import perf_counter

from app.config import Settings
from app.execution.document_executor import DocumentExecutor
from app.execution.executor_interface import ExecutorInterface
from app.execution.relational_executor import RelationalExecutor
from app.execution.script_executor import ScriptExecutor
from app.execution.types import DispatchOutcome
from app.models.query_request import DbType, QueryRequest, SubmissionType
from app.services.connection_registry import ConnectionRegistry
from app.services.credentials import CredentialCodec, Credentials
from app.services.object_storage import ObjectStorage, build_object_storage
from app.services.result_offload import ResultOffloader
from app.services.script_store import ScriptStore

logger = logging.getLogger(__name__)


class ExecutionDispatcher:
    """Selects an executor and converts every failure into a failed outcome."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        relational: ExecutorInterface,
        document: ExecutorInterface,
        script: ExecutorInterface,
    ) -> None:
        self.registry = registry
        self.relational = relational
        self.document = document
        self.script = script

    def dispatch(self, request: QueryRequest) -> DispatchOutcome:
        """Run one request and return its outcome. Executor errors never escape."""

        started = perf_counter()
        try:
            descriptor = self.registry.resolve(request.instance_name, request.db_type)
            if request.submission_type == SubmissionType.SCRIPT:
                result = self.script.execute(descriptor, request.database_name, request.script_path or "")
            elif request.db_type == DbType.POSTGRESQL:
                result = self.relational.execute(descriptor, request.database_name, request.query_content or "")
            elif request.db_type == DbType.MONGODB:
                result = self.document.execute(descriptor, request.database_name, request.query_content or "")
            else:
                return DispatchOutcome(success=False, error="Unsupported database type")
        except Exception as exc:
            logger.exception(
                "execution.dispatch_failed request_id=%s db_type=%s submission_type=%s elapsed_ms=%.2f",
                request.id,
                request.db_type,
                request.submission_type,
                (perf_counter() - started) * 1000.0,
            )
            return DispatchOutcome(success=False, error=str(exc) or exc.__class__.__name__)

        logger.info(
            "execution.dispatch_succeeded request_id=%s db_type=%s submission_type=%s elapsed_ms=%.2f",
            request.id,
            request.db_type,
            request.submission_type,
            (perf_counter() - started) * 1000.0,
        )
        return DispatchOutcome(success=True, result=result)


def build_dispatcher(
    settings: Settings,
    registry: ConnectionRegistry,
    storage: ObjectStorage | None = None,
) -> ExecutionDispatcher:
    """Wire the three executors from configuration."""

    codec = CredentialCodec(settings.credential_key)
    offloader = ResultOffloader(storage or build_object_storage(settings), max_rows=settings.max_inline_rows)
    default_credentials = None
    if settings.allow_default_credentials and settings.default_db_username:
        default_credentials = Credentials(
            username=settings.default_db_username,
            password=settings.default_db_password,
        )
    return ExecutionDispatcher(
        registry,
        relational=RelationalExecutor(
            codec,
            offloader,
            statement_timeout_seconds=settings.statement_timeout_seconds,
            default_credentials=default_credentials,
        ),
        document=DocumentExecutor(
            codec,
            offloader,
            read_timeout_seconds=settings.document_read_timeout_seconds,
        ),
        script=ScriptExecutor(
            codec,
            offloader,
            ScriptStore(settings.script_storage_dir, max_bytes=settings.max_script_bytes),
            timeout_seconds=settings.script_timeout_seconds,
            default_credentials=default_credentials,
        ),
    )
