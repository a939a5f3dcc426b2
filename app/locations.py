"""Location management routes for the Personal Inventory API."""

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas
from .auth import get_current_user
from .database import get_db
from .media import upload_image
from .models import User
from .services import LocationService

router = APIRouter(prefix="/locations", tags=["locations"])


def get_location_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LocationService:
    """Build a location service scoped to the authenticated user."""
    return LocationService(db, current_user)


@router.get("/", response_model=List[schemas.LocationNode])
def list_locations(
    flat: bool = False,
    search: str | None = Query(None),
    service: LocationService = Depends(get_location_service),
):
    """
    Retrieve the current user's locations.

    By default the locations are nested into a tree under ``children``;
    ``flat=true`` returns plain rows. Every row carries child, container
    and item counts.

    Args:
        flat (bool): Return a flat list instead of a tree.
        search (str | None): Optional name/description filter (flat result).
        service (LocationService): Owner-scoped location service.

    Returns:
        list[LocationNode]: Root locations, or all locations when flat.
    """
    return service.list(flat=flat, search=search)


@router.post(
    "/", response_model=schemas.LocationOut, status_code=status.HTTP_201_CREATED
)
def create_location(
    location_in: schemas.LocationCreate,
    service: LocationService = Depends(get_location_service),
):
    """
    Create a new location, optionally below an existing parent location.

    Raises:
        ValidationError: If the parent location is not found.
    """
    return service.create(location_in)


@router.get("/{location_id}", response_model=schemas.LocationDetail)
def get_location(
    location_id: int, service: LocationService = Depends(get_location_service)
):
    """
    Retrieve a location with its parent, sub-locations, containers and items.

    Raises:
        NotFoundError: If the location is not found.
    """
    return service.get(location_id)


@router.patch("/{location_id}", response_model=schemas.LocationOut)
def patch_location(
    location_id: int,
    changes: schemas.LocationUpdate,
    service: LocationService = Depends(get_location_service),
):
    """
    Partially update a location.

    Only fields provided in the request will be updated. Moving the
    location below one of its own descendants is refused.

    Args:
        location_id (int): Location identifier.
        changes (LocationUpdate): Fields to update.
        service (LocationService): Owner-scoped location service.

    Raises:
        NotFoundError: If the location is not found.
        ValidationError: If the new parent location is not found.
        ConflictError: If the move would create a cycle.

    Returns:
        LocationOut: Updated location.
    """
    return service.update(location_id, changes)


@router.put("/{location_id}/image", response_model=schemas.LocationOut)
def upload_location_image(
    location_id: int,
    file: UploadFile = File(...),
    service: LocationService = Depends(get_location_service),
):
    """Attach a photo to a location."""
    service.get(location_id)
    return service.set_image(location_id, upload_image(file, folder="inventory/locations"))


@router.delete("/{location_id}")
def remove_location(
    location_id: int, service: LocationService = Depends(get_location_service)
):
    """
    Delete an empty location.

    Raises:
        NotFoundError: If the location is not found.
        ConflictError: If sub-locations, containers or items still
            reference the location.

    Returns:
        dict: Deletion status.
    """
    service.delete(location_id)
    return {"ok": True}
