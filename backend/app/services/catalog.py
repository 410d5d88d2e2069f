"""Pod catalog loaded from static configuration."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from app.schemas.catalog import PodRead

logger = logging.getLogger(__name__)


def load_pods(path: str | Path) -> list[PodRead]:
    """Read pods from a JSON file with a top-level ``pods`` list."""

    pods_path = Path(path)
    if not pods_path.exists():
        logger.warning("catalog.pods_config_missing path=%s", pods_path)
        return []
    raw = json.loads(pods_path.read_text(encoding="utf-8"))
    entries = raw.get("pods", []) if isinstance(raw, dict) else raw
    pods = [PodRead.model_validate(entry) for entry in entries]
    logger.info("catalog.pods_loaded path=%s pods=%d", pods_path, len(pods))
    return pods


def manager_email_for(pods: list[PodRead], pod_name: str) -> str | None:
    for pod in pods:
        if pod.name == pod_name:
            return pod.manager_email
    return None
