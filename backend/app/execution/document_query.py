"""Parser for shell-style document-store invocations.

Accepted shape: ``db.<collection>.<method>(<args>)`` on a single line. The
arguments are read as a literal array by walking the Python AST of the
argument text; nothing is evaluated, so the arguments cannot reach any
ambient state. Shell conveniences such as unquoted keys, ``$``-operators,
``true``/``false``/``null``, ``ObjectId(...)`` and ``ISODate(...)`` are
understood.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bson import Decimal128, ObjectId
from bson.errors import InvalidId

from app.errors import InvalidArgument

_INVOCATION = re.compile(r"^db\.([A-Za-z0-9_]+)\.([A-Za-z0-9_]+)\((.*)\)$")
_BARE_OPERATOR_KEY = re.compile(r"(?P<prefix>[{,]\s*)(?P<key>\$[A-Za-z_][A-Za-z0-9_]*)\s*:")
_NEW_KEYWORD = re.compile(r"\bnew\s+(?=[A-Z])")
_STRING_LITERAL = re.compile(r"'(?:\\.|[^'\\\n])*'|\"(?:\\.|[^\"\\\n])*\"")

_NAMED_CONSTANTS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "True": True,
    "False": False,
    "None": None,
}


@dataclass(slots=True)
class DocumentInvocation:
    """A parsed ``db.<collection>.<method>(<args>)`` call."""

    collection: str
    method: str
    args: list[Any] = field(default_factory=list)


def parse_invocation(text: str | None, allowed_methods: Collection[str]) -> DocumentInvocation:
    """Parse and validate an invocation against the supported method allow-list."""

    match = _INVOCATION.match((text or "").strip())
    if match is None:
        raise InvalidArgument("Invalid MongoDB query format. Expected: db.collection.method(args)")
    collection, method, raw_args = match.groups()
    if method not in allowed_methods:
        raise InvalidArgument(f"Method {method} not supported on collection")
    return DocumentInvocation(collection=collection, method=method, args=parse_arguments(raw_args))


def parse_arguments(raw_args: str) -> list[Any]:
    """Read the comma-separated argument text as a literal list."""

    if not raw_args.strip():
        return []
    source = _rewrite_shell_syntax(raw_args)
    try:
        tree = ast.parse(f"[{source}]", mode="eval")
    except SyntaxError as exc:
        raise InvalidArgument(f"Failed to parse query arguments: {exc.msg}") from exc
    try:
        return _literal(tree.body)
    except (ValueError, TypeError, InvalidId) as exc:
        raise InvalidArgument(f"Failed to parse query arguments: {exc}") from exc


def _rewrite_shell_syntax(raw_args: str) -> str:
    """Quote bare ``$`` keys and drop ``new``, leaving string literals untouched."""

    parts: list[str] = []
    position = 0
    for match in _STRING_LITERAL.finditer(raw_args):
        parts.append(_rewrite_code(raw_args[position : match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(_rewrite_code(raw_args[position:]))
    return "".join(parts)


def _rewrite_code(segment: str) -> str:
    segment = _BARE_OPERATOR_KEY.sub(lambda m: f'{m.group("prefix")}"{m.group("key")}":', segment)
    return _NEW_KEYWORD.sub("", segment)


def _literal(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (str, int, float, bool)) or node.value is None:
            return node.value
        raise ValueError(f"unsupported constant {node.value!r}")
    if isinstance(node, (ast.List, ast.Tuple)):
        return [_literal(item) for item in node.elts]
    if isinstance(node, ast.Dict):
        result: dict[str, Any] = {}
        for key, value in zip(node.keys, node.values):
            if key is None:
                raise ValueError("spread syntax is not supported")
            result[_key(key)] = _literal(value)
        return result
    if isinstance(node, ast.Name):
        if node.id in _NAMED_CONSTANTS:
            return _NAMED_CONSTANTS[node.id]
        raise ValueError(f"unknown identifier {node.id!r}")
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        operand = _literal(node.operand)
        if isinstance(operand, bool) or not isinstance(operand, (int, float)):
            raise ValueError("unary operators only apply to numbers")
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
        return _constructor(node.func.id, [_literal(arg) for arg in node.args])
    raise ValueError(f"unsupported expression {type(node).__name__}")


def _key(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int)):
        return str(node.value)
    raise ValueError(f"unsupported object key {type(node).__name__}")


def _constructor(name: str, args: list[Any]) -> Any:
    if name == "ObjectId":
        return ObjectId(args[0]) if args else ObjectId()
    if name in {"ISODate", "Date"}:
        if not args:
            return datetime.now(timezone.utc)
        return _parse_datetime(args[0])
    if name in {"NumberInt", "NumberLong"} and len(args) == 1:
        return int(args[0])
    if name == "NumberDecimal" and len(args) == 1:
        return Decimal128(str(args[0]))
    raise ValueError(f"unsupported constructor {name}()")


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if not isinstance(value, str):
        raise ValueError("date constructors expect an ISO-8601 string or epoch milliseconds")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
