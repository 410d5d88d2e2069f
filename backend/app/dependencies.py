"""FastAPI dependency providers for identity and wired collaborators."""

from functools import lru_cache

from fastapi import Header, HTTPException

from app.config import get_settings
from app.execution.dispatcher import ExecutionDispatcher, build_dispatcher
from app.schemas.actor import Actor, Role
from app.schemas.catalog import PodRead
from app.services.catalog import load_pods
from app.services.connection_registry import ConnectionRegistry, load_registry
from app.services.notifications import WebhookNotifier
from app.services.object_storage import ObjectStorage, build_object_storage
from app.services.script_store import ScriptStore


def get_current_actor(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_pod: str | None = Header(default=None),
) -> Actor:
    """Build the caller identity forwarded by the authenticating gateway."""

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    role_value = (x_user_role or Role.DEVELOPER.value).strip().upper()
    try:
        role = Role(role_value)
    except ValueError as exc:
        raise HTTPException(status_code=403, detail=f"Unknown role: {role_value}") from exc
    return Actor(
        id=x_user_id.strip(),
        name=x_user_name,
        email=x_user_email,
        role=role,
        pod_name=x_user_pod,
    )


@lru_cache
def get_registry() -> ConnectionRegistry:
    return load_registry(get_settings().connection_registry_path)


@lru_cache
def get_object_storage() -> ObjectStorage:
    return build_object_storage(get_settings())


@lru_cache
def get_dispatcher() -> ExecutionDispatcher:
    return build_dispatcher(get_settings(), get_registry(), get_object_storage())


@lru_cache
def get_script_store() -> ScriptStore:
    settings = get_settings()
    return ScriptStore(settings.script_storage_dir, max_bytes=settings.max_script_bytes)


@lru_cache
def get_notifier() -> WebhookNotifier:
    settings = get_settings()
    return WebhookNotifier(
        settings.notification_webhook_url,
        frontend_url=settings.frontend_url,
        timeout_seconds=settings.notification_timeout_seconds,
    )


@lru_cache
def get_pods() -> list[PodRead]:
    return load_pods(get_settings().pods_config_path)
