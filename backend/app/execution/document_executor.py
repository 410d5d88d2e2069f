"""Document-store (MongoDB) invocation executor."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from time import perf_counter
from typing import Any
from urllib.parse import quote_plus, urlsplit, urlunsplit

from pymongo import MongoClient, ReturnDocument
from pymongo.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from app.errors import InvalidArgument
from app.execution.document_query import parse_invocation
from app.execution.executor_interface import ExecutorInterface
from app.services.connection_registry import ConnectionDescriptor
from app.services.credentials import CredentialCodec, Credentials
from app.services.result_offload import ResultOffloader, normalize_value

logger = logging.getLogger(__name__)


class MethodKind(StrEnum):
    """How a collection method's result is shaped for the execution record."""

    CURSOR = "cursor"
    VALUE = "value"
    WRITE = "write"


@dataclass(frozen=True, slots=True)
class CollectionMethod:
    """One allow-listed collection method and the handler that runs it."""

    name: str
    kind: MethodKind
    handler: Callable[[Any, list[Any], int], Any]


def _arg(args: list[Any], index: int, default: Any = None) -> Any:
    return args[index] if len(args) > index else default


def _mapping_arg(args: list[Any], index: int, label: str, *, required: bool = False) -> dict[str, Any]:
    value = _arg(args, index)
    if value is None:
        if required:
            raise InvalidArgument(f"Missing {label} argument")
        return {}
    if not isinstance(value, dict):
        raise InvalidArgument(f"Expected {label} to be an object")
    return value


def _list_arg(args: list[Any], index: int, label: str) -> list[Any]:
    value = _arg(args, index)
    if not isinstance(value, list):
        raise InvalidArgument(f"Expected {label} to be an array")
    return value


def _find(collection: Any, args: list[Any], max_time_ms: int) -> list[Any]:
    filter_doc = _mapping_arg(args, 0, "filter")
    projection = _arg(args, 1)
    return list(collection.find(filter_doc, projection).max_time_ms(max_time_ms))


def _aggregate(collection: Any, args: list[Any], max_time_ms: int) -> list[Any]:
    pipeline = _list_arg(args, 0, "pipeline") if args else []
    return list(collection.aggregate(pipeline, maxTimeMS=max_time_ms))


def _find_one(collection: Any, args: list[Any], max_time_ms: int) -> Any:
    return collection.find_one(_mapping_arg(args, 0, "filter"), _arg(args, 1), max_time_ms=max_time_ms)


def _count_documents(collection: Any, args: list[Any], max_time_ms: int) -> int:
    return collection.count_documents(_mapping_arg(args, 0, "filter"), maxTimeMS=max_time_ms)


def _distinct(collection: Any, args: list[Any], max_time_ms: int) -> list[Any]:
    key = _arg(args, 0)
    if not isinstance(key, str):
        raise InvalidArgument("Expected distinct key to be a string")
    return collection.distinct(key, _mapping_arg(args, 1, "filter"), maxTimeMS=max_time_ms)


def _insert_one(collection: Any, args: list[Any], _: int) -> Any:
    return collection.insert_one(_mapping_arg(args, 0, "document", required=True))


def _insert_many(collection: Any, args: list[Any], _: int) -> Any:
    return collection.insert_many(_list_arg(args, 0, "documents"))


def _update_one(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 2, "options")
    return collection.update_one(
        _mapping_arg(args, 0, "filter", required=True),
        _update_arg(args),
        upsert=bool(options.get("upsert", False)),
    )


def _update_many(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 2, "options")
    return collection.update_many(
        _mapping_arg(args, 0, "filter", required=True),
        _update_arg(args),
        upsert=bool(options.get("upsert", False)),
    )


def _replace_one(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 2, "options")
    return collection.replace_one(
        _mapping_arg(args, 0, "filter", required=True),
        _mapping_arg(args, 1, "replacement", required=True),
        upsert=bool(options.get("upsert", False)),
    )


def _delete_one(collection: Any, args: list[Any], _: int) -> Any:
    return collection.delete_one(_mapping_arg(args, 0, "filter", required=True))


def _delete_many(collection: Any, args: list[Any], _: int) -> Any:
    return collection.delete_many(_mapping_arg(args, 0, "filter", required=True))


def _find_one_and_update(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 2, "options")
    return collection.find_one_and_update(
        _mapping_arg(args, 0, "filter", required=True),
        _update_arg(args),
        projection=options.get("projection"),
        upsert=bool(options.get("upsert", False)),
        return_document=_return_document(options),
    )


def _find_one_and_replace(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 2, "options")
    return collection.find_one_and_replace(
        _mapping_arg(args, 0, "filter", required=True),
        _mapping_arg(args, 1, "replacement", required=True),
        projection=options.get("projection"),
        upsert=bool(options.get("upsert", False)),
        return_document=_return_document(options),
    )


def _find_one_and_delete(collection: Any, args: list[Any], _: int) -> Any:
    options = _mapping_arg(args, 1, "options")
    return collection.find_one_and_delete(
        _mapping_arg(args, 0, "filter", required=True),
        projection=options.get("projection"),
    )


def _drop(collection: Any, args: list[Any], _: int) -> Any:
    collection.drop()
    return {"dropped": collection.name}


def _update_arg(args: list[Any]) -> dict[str, Any] | list[Any]:
    update = _arg(args, 1)
    if not isinstance(update, (dict, list)) or not update:
        raise InvalidArgument("Expected update to be a non-empty object or pipeline")
    return update


def _return_document(options: Mapping[str, Any]) -> ReturnDocument:
    wanted = str(options.get("returnDocument") or options.get("returnNewDocument") or "before").lower()
    return ReturnDocument.AFTER if wanted in {"after", "true"} else ReturnDocument.BEFORE


COLLECTION_METHODS: dict[str, CollectionMethod] = {
    method.name: method
    for method in (
        CollectionMethod("find", MethodKind.CURSOR, _find),
        CollectionMethod("aggregate", MethodKind.CURSOR, _aggregate),
        CollectionMethod("findOne", MethodKind.VALUE, _find_one),
        CollectionMethod("countDocuments", MethodKind.VALUE, _count_documents),
        CollectionMethod("distinct", MethodKind.VALUE, _distinct),
        CollectionMethod("insertOne", MethodKind.WRITE, _insert_one),
        CollectionMethod("insertMany", MethodKind.WRITE, _insert_many),
        CollectionMethod("updateOne", MethodKind.WRITE, _update_one),
        CollectionMethod("updateMany", MethodKind.WRITE, _update_many),
        CollectionMethod("replaceOne", MethodKind.WRITE, _replace_one),
        CollectionMethod("deleteOne", MethodKind.WRITE, _delete_one),
        CollectionMethod("deleteMany", MethodKind.WRITE, _delete_many),
        CollectionMethod("findOneAndUpdate", MethodKind.WRITE, _find_one_and_update),
        CollectionMethod("findOneAndReplace", MethodKind.WRITE, _find_one_and_replace),
        CollectionMethod("findOneAndDelete", MethodKind.WRITE, _find_one_and_delete),
        CollectionMethod("drop", MethodKind.WRITE, _drop),
    )
}


def build_mongo_uri(descriptor: ConnectionDescriptor, database_name: str, credentials: Credentials) -> str:
    """Return a connection URI scoped to ``database_name``."""

    if descriptor.connection_string:
        parts = urlsplit(descriptor.connection_string)
        return urlunsplit((parts.scheme, parts.netloc, f"/{database_name}", parts.query, parts.fragment))
    if credentials.username:
        auth = f"{quote_plus(credentials.username)}:{quote_plus(credentials.password or '')}@"
        return f"mongodb://{auth}{descriptor.host}:{descriptor.port}/{database_name}?authSource=admin"
    return f"mongodb://{descriptor.host}:{descriptor.port}/{database_name}"


def summarize_write(result: Any) -> dict[str, Any]:
    """Flatten a driver write result and derive the affected-document count."""

    if isinstance(result, InsertOneResult):
        details: dict[str, Any] = {
            "acknowledged": result.acknowledged,
            "inserted_id": result.inserted_id,
            "inserted_count": 1,
        }
    elif isinstance(result, InsertManyResult):
        details = {
            "acknowledged": result.acknowledged,
            "inserted_ids": list(result.inserted_ids),
            "inserted_count": len(result.inserted_ids),
        }
    elif isinstance(result, UpdateResult):
        details = {
            "acknowledged": result.acknowledged,
            "matched_count": result.matched_count,
            "modified_count": result.modified_count,
            "upserted_id": result.upserted_id,
        }
    elif isinstance(result, DeleteResult):
        details = {"acknowledged": result.acknowledged, "deleted_count": result.deleted_count}
    elif isinstance(result, Mapping) and "dropped" in result:
        details = dict(result)
    else:
        details = {"document": result}

    affected = 1
    for key in ("modified_count", "inserted_count", "deleted_count"):
        if key in details and details[key] is not None:
            affected = int(details[key])
            break
    return {"result": normalize_value(details), "affected_count": affected}


class DocumentExecutor(ExecutorInterface):
    """Executes one allow-listed collection method on a short-lived client."""

    def __init__(
        self,
        codec: CredentialCodec,
        offloader: ResultOffloader,
        *,
        read_timeout_seconds: int = 30,
        server_selection_timeout_ms: int = 5000,
        client_factory: Callable[..., Any] = MongoClient,
    ) -> None:
        self.codec = codec
        self.offloader = offloader
        self.read_timeout_seconds = read_timeout_seconds
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client_factory = client_factory

    def execute(self, descriptor: ConnectionDescriptor, database_name: str, content: str) -> dict[str, Any]:
        invocation = parse_invocation(content, COLLECTION_METHODS.keys())
        method = COLLECTION_METHODS[invocation.method]
        credentials = self.codec.decrypt(descriptor.credential_ref)
        uri = build_mongo_uri(descriptor, database_name, credentials)

        started = perf_counter()
        client = self._client_factory(uri, serverSelectionTimeoutMS=self.server_selection_timeout_ms)
        try:
            collection = client[database_name][invocation.collection]
            raw = method.handler(collection, invocation.args, self.read_timeout_seconds * 1000)
        finally:
            client.close()

        logger.info(
            "execution.document_finished instance=%s database=%s collection=%s method=%s elapsed_ms=%.2f",
            descriptor.name,
            database_name,
            invocation.collection,
            invocation.method,
            (perf_counter() - started) * 1000.0,
        )
        if method.kind is MethodKind.CURSOR:
            return self.offloader.apply(raw, source="mongo").as_payload()
        if method.kind is MethodKind.VALUE:
            return {"result": normalize_value(raw)}
        return summarize_write(raw)
