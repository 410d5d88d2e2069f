"""Instance registry and pod catalog routes."""

from fastapi import APIRouter, Depends, HTTPException, Path

from app.dependencies import get_current_actor, get_pods, get_registry
from app.schemas.actor import Actor
from app.schemas.catalog import InstanceRead, PodRead
from app.schemas.common import ApiResponse
from app.services.connection_registry import ConnectionRegistry

router = APIRouter()


@router.get("/instances", response_model=ApiResponse[list[InstanceRead]])
def list_instances(
    _: Actor = Depends(get_current_actor),
    registry: ConnectionRegistry = Depends(get_registry),
) -> ApiResponse[list[InstanceRead]]:
    """List configured instances without credentials."""

    return ApiResponse(data=[InstanceRead(**entry.public_view()) for entry in registry.entries()])


@router.get("/instances/{instance_name}/databases", response_model=ApiResponse[list[str]])
def list_databases(
    instance_name: str = Path(..., min_length=1),
    _: Actor = Depends(get_current_actor),
    registry: ConnectionRegistry = Depends(get_registry),
) -> ApiResponse[list[str]]:
    descriptor = registry.find_by_name(instance_name)
    if descriptor is None:
        raise HTTPException(status_code=404, detail=f"Database instance {instance_name} not found in configuration")
    return ApiResponse(data=list(descriptor.databases))


@router.get("/pods", response_model=ApiResponse[list[PodRead]])
def list_pods(
    _: Actor = Depends(get_current_actor),
    pods: list[PodRead] = Depends(get_pods),
) -> ApiResponse[list[PodRead]]:
    return ApiResponse(data=pods)
