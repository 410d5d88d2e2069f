"""Runs untrusted Python scripts in a restricted, time-limited child process.

Security goals:
- Fresh spawned interpreter per run, killed on timeout
- Empty environment variables in the child
- Restricted builtins and an import allow-list
- Imported modules are read-only views exposing a curated set of public
  names; module-valued attributes are never handed out
- No private/dunder attribute access, frame or loop introspection,
  process or socket helpers
- Only the injected context is visible to the script

Contract:
- The script's value is ``main()`` when it defines a callable ``main``,
  otherwise its top-level ``result`` variable.
- Awaitables (for example from ``async def main``) are awaited to completion.
- ``print`` and ``console.log/info/warn`` lines go to ``logs``;
  ``console.error`` lines go to ``errors``.
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import importlib
import inspect
import json
import multiprocessing as mp
import os
import queue as queue_module
import time
import types
from typing import Any

from app.errors import ExecutionFailure, ScriptTimeout
from app.execution.types import SandboxResult

_POLL_INTERVAL_SECONDS = 0.25

# Importable modules and the names each exposes. ``None`` means the module's
# ``__all__`` (or its public names when it has none).
_MODULE_EXPORTS: dict[str, frozenset[str] | None] = {
    "asyncio": frozenset(
        {
            "ALL_COMPLETED",
            "BoundedSemaphore",
            "CancelledError",
            "Condition",
            "Event",
            "FIRST_COMPLETED",
            "FIRST_EXCEPTION",
            "Lock",
            "Queue",
            "Semaphore",
            "TimeoutError",
            "as_completed",
            "create_task",
            "gather",
            "run",
            "shield",
            "sleep",
            "timeout",
            "wait",
            "wait_for",
        }
    ),
    "bson": frozenset({"Binary", "Decimal128", "Int64", "ObjectId", "Regex", "SON", "Timestamp", "decode", "encode"}),
    "collections": frozenset({"ChainMap", "Counter", "OrderedDict", "defaultdict", "deque", "namedtuple"}),
    "datetime": frozenset({"MAXYEAR", "MINYEAR", "UTC", "date", "datetime", "time", "timedelta", "timezone"}),
    "decimal": frozenset({"Decimal", "InvalidOperation", "ROUND_DOWN", "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP"}),
    "functools": frozenset({"cache", "cached_property", "cmp_to_key", "lru_cache", "partial", "reduce", "total_ordering", "wraps"}),
    "itertools": None,
    "json": frozenset({"JSONDecodeError", "dumps", "loads"}),
    "math": None,
    "psycopg": frozenset(
        {"DatabaseError", "Error", "IntegrityError", "OperationalError", "ProgrammingError", "connect", "rows", "sql"}
    ),
    "psycopg.rows": frozenset({"dict_row", "namedtuple_row", "tuple_row"}),
    "psycopg.sql": frozenset({"SQL", "Composed", "Identifier", "Literal", "Placeholder"}),
    "pymongo": frozenset(
        {
            "ASCENDING",
            "DESCENDING",
            "DeleteMany",
            "DeleteOne",
            "InsertOne",
            "MongoClient",
            "ReplaceOne",
            "ReturnDocument",
            "UpdateMany",
            "UpdateOne",
            "errors",
        }
    ),
    "pymongo.errors": frozenset({"BulkWriteError", "DuplicateKeyError", "OperationFailure", "PyMongoError"}),
    "re": frozenset(
        {
            "ASCII",
            "DOTALL",
            "IGNORECASE",
            "MULTILINE",
            "VERBOSE",
            "compile",
            "error",
            "escape",
            "findall",
            "finditer",
            "fullmatch",
            "match",
            "search",
            "split",
            "sub",
            "subn",
        }
    ),
    "statistics": None,
    "string": frozenset(
        {
            "Template",
            "ascii_letters",
            "ascii_lowercase",
            "ascii_uppercase",
            "capwords",
            "digits",
            "hexdigits",
            "octdigits",
            "printable",
            "punctuation",
            "whitespace",
        }
    ),
    "time": frozenset({"gmtime", "localtime", "monotonic", "perf_counter", "sleep", "strftime", "time", "time_ns"}),
    "uuid": frozenset({"NAMESPACE_DNS", "NAMESPACE_OID", "NAMESPACE_URL", "UUID", "uuid1", "uuid3", "uuid4", "uuid5"}),
}

ALLOWED_MODULES = frozenset(_MODULE_EXPORTS)

_BLOCKED_NAMES = {
    "__import__",
    "breakpoint",
    "compile",
    "delattr",
    "eval",
    "exec",
    "getattr",
    "globals",
    "input",
    "locals",
    "open",
    "setattr",
    "vars",
}

# Attribute names rejected before the script runs, whatever object they hang off.
_BLOCKED_ATTRIBUTES = {
    "ag_await",
    "ag_code",
    "ag_frame",
    "builtins",
    "cr_await",
    "cr_code",
    "cr_frame",
    "create_connection",
    "create_server",
    "create_subprocess_exec",
    "create_subprocess_shell",
    "f_back",
    "f_builtins",
    "f_code",
    "f_globals",
    "f_locals",
    "get_event_loop",
    "get_loop",
    "get_running_loop",
    "gi_code",
    "gi_frame",
    "gi_yieldfrom",
    "importlib",
    "new_event_loop",
    "open_connection",
    "os",
    "popen",
    "run_in_executor",
    "start_server",
    "subprocess",
    "subprocess_exec",
    "subprocess_shell",
    "sys",
    "system",
    "tb_frame",
    "tb_next",
}
_SAFE_BUILTIN_NAMES = (
    "abs",
    "all",
    "any",
    "bool",
    "bytes",
    "callable",
    "chr",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "hasattr",
    "hash",
    "int",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "list",
    "map",
    "max",
    "min",
    "next",
    "object",
    "ord",
    "pow",
    "property",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "staticmethod",
    "classmethod",
    "str",
    "sum",
    "super",
    "tuple",
    "type",
    "zip",
    "ArithmeticError",
    "AssertionError",
    "AttributeError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "NotImplementedError",
    "RuntimeError",
    "StopIteration",
    "TimeoutError",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)


class _Console:
    """Console-style sink handed to scripts."""

    def __init__(self, logs: list[str], errors: list[str]) -> None:
        self._logs = logs
        self._errors = errors

    def log(self, *args: Any) -> None:
        self._logs.append(" ".join(str(arg) for arg in args))

    info = log
    warn = log

    def error(self, *args: Any) -> None:
        self._errors.append(" ".join(str(arg) for arg in args))


class _ModuleView:
    """Read-only view of an allow-listed module exposing only its curated names."""

    __slots__ = ("_name", "_module", "_exports")

    def __init__(self, name: str) -> None:
        exports = _MODULE_EXPORTS[name]
        module = importlib.import_module(name)
        if exports is None:
            exports = frozenset(
                getattr(module, "__all__", None) or (attr for attr in dir(module) if not attr.startswith("_"))
            )
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_module", module)
        object.__setattr__(self, "_exports", exports)

    def __getattr__(self, attr: str) -> Any:
        qualified = f"{self._name}.{attr}"
        if attr not in self._exports:
            raise AttributeError(f"'{qualified}' is not available in scripts")
        if qualified in _MODULE_EXPORTS:
            return _ModuleView(qualified)
        value = getattr(self._module, attr)
        if isinstance(value, types.ModuleType):
            raise AttributeError(f"'{qualified}' is not available in scripts")
        return value

    def __setattr__(self, attr: str, value: Any) -> None:
        raise AttributeError(f"'{self._name}' is read-only in scripts")

    def __delattr__(self, attr: str) -> None:
        raise AttributeError(f"'{self._name}' is read-only in scripts")

    def __repr__(self) -> str:
        return f"<module {self._name!r}>"


def validate_source(source: str, filename: str = "<script>") -> ast.Module:
    """Reject scripts that reach for blocked names, attributes or imports."""

    tree = ast.parse(source, filename=filename, mode="exec")
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ValueError(f"Access to private attribute is not allowed: {node.attr}")
            if node.attr in _BLOCKED_ATTRIBUTES:
                raise ValueError(f"Access to attribute is not allowed: {node.attr}")
        if isinstance(node, ast.Name) and (node.id in _BLOCKED_NAMES or node.id.startswith("__")):
            raise ValueError(f"Use of blocked name: {node.id}")
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            for module in _imported_modules(node):
                if module not in ALLOWED_MODULES:
                    raise ValueError(f"Import of '{module}' is not allowed in scripts")
            if isinstance(node, ast.ImportFrom) and any(alias.name == "*" for alias in node.names):
                raise ValueError("Wildcard imports are not allowed in scripts")
    return tree


def _imported_modules(node: ast.Import | ast.ImportFrom) -> list[str]:
    if isinstance(node, ast.ImportFrom):
        if node.level:
            return ["."]
        return [node.module or ""]
    return [alias.name for alias in node.names]


def _guarded_import(name: str, globals=None, locals=None, fromlist=(), level=0):
    if level != 0 or name not in ALLOWED_MODULES:
        raise ImportError(f"Import of '{name}' is not allowed in scripts")
    if fromlist:
        return _ModuleView(name)
    return _ModuleView(name.split(".")[0])


def _build_namespace(context: dict[str, Any], logs: list[str], errors: list[str]) -> dict[str, Any]:
    safe_builtins = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
    safe_builtins["__import__"] = _guarded_import
    safe_builtins["__build_class__"] = builtins.__build_class__
    safe_builtins["print"] = lambda *args, sep=" ", end="\n", **_: logs.append(
        sep.join(str(arg) for arg in args)
    )
    namespace: dict[str, Any] = {
        "__builtins__": safe_builtins,
        "__name__": "__script__",
        "console": _Console(logs, errors),
    }
    namespace.update(context)
    return namespace


async def _settle(awaitable: Any) -> Any:
    return await awaitable


def _transferable(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value, default=str))
    except (TypeError, ValueError) as exc:
        return {
            "_serialization_error": True,
            "message": "Result contains non-serializable data. Return plain dicts, lists and scalars.",
            "original_error": str(exc),
        }


def _sandbox_worker(source: str, context: dict[str, Any], filename: str, out: Any) -> None:
    logs: list[str] = []
    errors: list[str] = []
    os.environ.clear()
    try:
        tree = validate_source(source, filename)
        namespace = _build_namespace(context, logs, errors)
        exec(compile(tree, filename, "exec"), namespace)  # validated source, restricted builtins

        entrypoint = namespace.get("main")
        value = entrypoint() if callable(entrypoint) else namespace.get("result")
        if inspect.isawaitable(value):
            value = asyncio.run(_settle(value))
        out.put({"ok": True, "value": _transferable(value), "logs": logs, "errors": errors})
    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        out.put({"ok": False, "error": message, "logs": logs, "errors": errors})


def _await_message(out: Any, process: Any, deadline: float) -> dict[str, Any] | None:
    """Wait for the worker's message; ``None`` means the deadline passed first."""

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        try:
            return out.get(timeout=min(_POLL_INTERVAL_SECONDS, remaining))
        except queue_module.Empty:
            if process.is_alive():
                continue
        # The worker is gone; pick up a message that raced with its exit.
        try:
            return out.get(timeout=_POLL_INTERVAL_SECONDS)
        except queue_module.Empty:
            raise ExecutionFailure(
                f"Script sandbox exited without returning a result (exit code {process.exitcode})"
            ) from None


def run_sandboxed(
    source: str,
    context: dict[str, Any],
    timeout_seconds: float = 60,
    *,
    filename: str = "<script>",
) -> SandboxResult:
    """Execute ``source`` in a spawned child process with a hard wall-clock timeout."""

    ctx = mp.get_context("spawn")
    out = ctx.Queue()
    process = ctx.Process(target=_sandbox_worker, args=(source, context, filename, out), daemon=True)
    process.start()
    deadline = time.monotonic() + timeout_seconds
    try:
        message = _await_message(out, process, deadline)
        if message is None:
            process.terminate()
            process.join(1)
            raise ScriptTimeout(
                f"Script execution timed out: the script took longer than {timeout_seconds:g} seconds "
                "to complete and was terminated."
            )
    finally:
        if process.is_alive():
            process.join(1)
        if process.is_alive():
            process.kill()
        out.close()

    if not message.get("ok"):
        raise ExecutionFailure(str(message.get("error") or "Script failed"))
    return SandboxResult(
        value=message.get("value"),
        logs=list(message.get("logs") or []),
        errors=list(message.get("errors") or []),
    )
