"""Read-only catalog of reachable database instances."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from app.errors import InstanceNotFound
from app.models.query_request import DbType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """How to reach one database instance. Credentials stay encoded until use."""

    name: str
    kind: str
    host: str
    port: int
    credential_ref: str | None = None
    connection_string: str | None = None
    ssl_mode: str = "prefer"
    databases: tuple[str, ...] = field(default_factory=tuple)

    def public_view(self) -> dict[str, Any]:
        """Return catalog fields that are safe to expose to clients."""

        return {
            "name": self.name,
            "kind": self.kind,
            "host": self.host,
            "port": self.port,
            "databases": list(self.databases),
        }


class ConnectionRegistry:
    """Immutable lookup of connection descriptors keyed by (name, kind)."""

    def __init__(self, descriptors: Iterable[ConnectionDescriptor]) -> None:
        entries: dict[tuple[str, str], ConnectionDescriptor] = {}
        for descriptor in descriptors:
            key = (descriptor.name, descriptor.kind)
            if key in entries:
                raise ValueError(f"Duplicate registry entry for {descriptor.name} ({descriptor.kind})")
            entries[key] = descriptor
        self._entries = entries

    def resolve(self, name: str, kind: str) -> ConnectionDescriptor:
        """Return the descriptor for an instance or raise InstanceNotFound."""

        descriptor = self._entries.get((name, kind))
        if descriptor is None:
            raise InstanceNotFound(f"Database instance {name} ({kind}) not found in configuration")
        return descriptor

    def find_by_name(self, name: str) -> ConnectionDescriptor | None:
        for (entry_name, _), descriptor in self._entries.items():
            if entry_name == name:
                return descriptor
        return None

    def entries(self) -> list[ConnectionDescriptor]:
        return sorted(self._entries.values(), key=lambda item: (item.kind, item.name))


def load_registry(path: str | Path) -> ConnectionRegistry:
    """Load registry entries from a JSON file with a top-level ``databases`` list."""

    registry_path = Path(path)
    if not registry_path.exists():
        logger.warning("registry.config_missing path=%s", registry_path)
        return ConnectionRegistry([])

    raw = json.loads(registry_path.read_text(encoding="utf-8"))
    entries = raw.get("databases", []) if isinstance(raw, dict) else raw
    descriptors = [_descriptor_from_mapping(entry) for entry in entries]
    logger.info("registry.loaded path=%s instances=%d", registry_path, len(descriptors))
    return ConnectionRegistry(descriptors)


def _descriptor_from_mapping(entry: dict[str, Any]) -> ConnectionDescriptor:
    kind = str(entry.get("kind") or entry.get("type") or "").strip().upper()
    if kind not in {DbType.POSTGRESQL, DbType.MONGODB}:
        raise ValueError(f"Unsupported database kind for registry entry {entry.get('name')!r}: {kind!r}")
    default_port = 5432 if kind == DbType.POSTGRESQL else 27017
    return ConnectionDescriptor(
        name=str(entry["name"]).strip(),
        kind=kind,
        host=str(entry.get("host") or "localhost"),
        port=int(entry.get("port") or default_port),
        credential_ref=entry.get("credential_ref"),
        connection_string=entry.get("connection_string"),
        ssl_mode=str(entry.get("ssl_mode") or "prefer"),
        databases=tuple(str(name) for name in entry.get("databases", [])),
    )
