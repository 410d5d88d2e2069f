"""Local storage for uploaded request scripts."""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from app.errors import ExecutionFailure, InvalidArgument

logger = logging.getLogger(__name__)

ALLOWED_SUFFIXES = (".py",)
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(slots=True)
class ScriptStore:
    """Saves validated script uploads and reads them back for execution."""

    root_dir: str
    max_bytes: int = 5 * 1024 * 1024

    def save(self, filename: str, content: bytes) -> str:
        """Validate and persist an upload, returning the stored path."""

        clean_name = Path(filename or "").name
        if not clean_name.lower().endswith(ALLOWED_SUFFIXES):
            raise InvalidArgument("Only Python (.py) script files are allowed")
        if not content:
            raise InvalidArgument("Script file is empty")
        if len(content) > self.max_bytes:
            raise InvalidArgument(f"File size exceeds the {self.max_bytes // (1024 * 1024)}MB limit")
        try:
            content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidArgument("Script file must be UTF-8 text") from exc

        stem = _UNSAFE_NAME_CHARS.sub("_", Path(clean_name).stem)[:80] or "script"
        stored_name = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{stem}.py"
        target_dir = Path(self.root_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / stored_name
        target.write_bytes(content)
        logger.info("scripts.saved path=%s bytes=%d", target, len(content))
        return str(target)

    def exists(self, script_path: str | None) -> bool:
        return bool(script_path) and Path(script_path).is_file()

    def read(self, script_path: str | None) -> str:
        """Return script text or fail when the artifact is gone."""

        if not self.exists(script_path):
            raise ExecutionFailure("Script file not found")
        return Path(script_path).read_text(encoding="utf-8")
