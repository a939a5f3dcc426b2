"""Container management routes for the Personal Inventory API."""

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas
from .auth import get_current_user
from .database import get_db
from .media import upload_image
from .models import User
from .services import ContainerService

router = APIRouter(prefix="/containers", tags=["containers"])


def get_container_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ContainerService:
    """Build a container service scoped to the authenticated user."""
    return ContainerService(db, current_user)


@router.get("/", response_model=List[schemas.ContainerNode])
def list_containers(
    flat: bool = False,
    location_id: int | None = Query(None),
    search: str | None = Query(None),
    service: ContainerService = Depends(get_container_service),
):
    """
    Retrieve the current user's containers.

    Containers are nested by ``parent_container_id`` unless ``flat=true``.
    Each row carries its location name plus child and item counts.

    Args:
        flat (bool): Return a flat list instead of a tree.
        location_id (int | None): Only containers placed in this location.
        search (str | None): Optional name/description/barcode filter.
        service (ContainerService): Owner-scoped container service.

    Returns:
        list[ContainerNode]: Root containers, or all containers when flat.
    """
    return service.list(flat=flat, location_id=location_id, search=search)


@router.post(
    "/", response_model=schemas.ContainerOut, status_code=status.HTTP_201_CREATED
)
def create_container(
    container_in: schemas.ContainerCreate,
    service: ContainerService = Depends(get_container_service),
):
    """
    Create a new container.

    Raises:
        ValidationError: If the location or parent container is not found.
    """
    return service.create(container_in)


@router.get("/barcode/{barcode}", response_model=schemas.ContainerWithItems)
def get_container_by_barcode(
    barcode: str, service: ContainerService = Depends(get_container_service)
):
    """Find a container by its barcode label, with the items inside."""
    return service.get_by_barcode(barcode)


@router.get("/{container_id}", response_model=schemas.ContainerDetail)
def get_container(
    container_id: int, service: ContainerService = Depends(get_container_service)
):
    """Retrieve a container with its parent, child containers and items."""
    return service.get(container_id)


@router.patch("/{container_id}", response_model=schemas.ContainerOut)
def patch_container(
    container_id: int,
    changes: schemas.ContainerUpdate,
    service: ContainerService = Depends(get_container_service),
):
    """
    Partially update a container.

    Raises:
        NotFoundError: If the container is not found.
        ValidationError: If the location or parent container is not found.
        ConflictError: If the new parent is the container or a descendant.
    """
    return service.update(container_id, changes)


@router.put("/{container_id}/image", response_model=schemas.ContainerOut)
def upload_container_image(
    container_id: int,
    file: UploadFile = File(...),
    service: ContainerService = Depends(get_container_service),
):
    """Attach a photo to a container."""
    service.get(container_id)
    return service.set_image(
        container_id, upload_image(file, folder="inventory/containers")
    )


@router.delete("/{container_id}")
def remove_container(
    container_id: int, service: ContainerService = Depends(get_container_service)
):
    """
    Delete an empty container.

    Raises:
        NotFoundError: If the container is not found.
        ConflictError: If child containers or items remain inside.
    """
    service.delete(container_id)
    return {"ok": True}
