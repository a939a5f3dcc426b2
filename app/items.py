"""Item management routes for the Personal Inventory API."""

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas
from .auth import get_current_user
from .database import get_db
from .media import upload_image
from .models import User
from .services import ItemService

router = APIRouter(prefix="/items", tags=["items"])


def get_item_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ItemService:
    """Build an item service scoped to the authenticated user."""
    return ItemService(db, current_user)


@router.post("/", response_model=schemas.ItemOut, status_code=status.HTTP_201_CREATED)
def create_item(
    item_in: schemas.ItemCreate,
    service: ItemService = Depends(get_item_service),
):
    """
    Create a new item owned by the current user.

    Args:
        item_in (ItemCreate): Item input data.
        service (ItemService): Owner-scoped item service.

    Raises:
        ValidationError: If a referenced category, container or location
            is not found.

    Returns:
        ItemOut: Created item.
    """
    return service.create(item_in)


@router.get("/", response_model=List[schemas.ItemOut])
def list_items(
    search: str | None = Query(None),
    category_id: int | None = Query(None),
    container_id: int | None = Query(None),
    location_id: int | None = Query(None),
    service: ItemService = Depends(get_item_service),
):
    """
    Retrieve the current user's items, newest first.

    Supports optional text search over name, description and barcode,
    and filtering by category, container or location.

    Args:
        search (str | None): Optional search query.
        category_id (int | None): Category filter.
        container_id (int | None): Container filter.
        location_id (int | None): Location filter.
        service (ItemService): Owner-scoped item service.

    Returns:
        list[ItemOut]: List of items.
    """
    return service.list(
        search=search,
        category_id=category_id,
        container_id=container_id,
        location_id=location_id,
    )


@router.get("/barcode/{barcode}", response_model=schemas.ItemOut)
def get_item_by_barcode(barcode: str, service: ItemService = Depends(get_item_service)):
    """Retrieve the item carrying ``barcode``."""
    return service.get_by_barcode(barcode)


@router.get("/{item_id}", response_model=schemas.ItemOut)
def get_item(item_id: int, service: ItemService = Depends(get_item_service)):
    """
    Retrieve a single item by ID for the current user.

    Raises:
        NotFoundError: If item is not found.
    """
    return service.get(item_id)


@router.patch("/{item_id}", response_model=schemas.ItemOut)
def patch_item(
    item_id: int,
    changes: schemas.ItemUpdate,
    service: ItemService = Depends(get_item_service),
):
    """
    Partially update an existing item.

    Only fields provided in the request will be updated; sending
    ``null`` for a placement field clears it.
    """
    return service.update(item_id, changes)


@router.put("/{item_id}/image", response_model=schemas.ItemOut)
def upload_item_image(
    item_id: int,
    file: UploadFile = File(...),
    service: ItemService = Depends(get_item_service),
):
    """Attach a photo to an item."""
    service.get(item_id)
    return service.set_image(item_id, upload_image(file, folder="inventory/items"))


@router.delete("/{item_id}")
def remove_item(item_id: int, service: ItemService = Depends(get_item_service)):
    """
    Delete an item owned by the current user.

    Raises:
        NotFoundError: If item is not found.

    Returns:
        dict: Deletion status.
    """
    service.delete(item_id)
    return {"ok": True}
