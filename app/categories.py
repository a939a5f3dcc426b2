"""Category management routes for the Personal Inventory API."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from . import schemas
from .auth import get_current_user
from .database import get_db
from .models import User
from .services import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])


def get_category_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CategoryService:
    """Build a category service scoped to the authenticated user."""
    return CategoryService(db, current_user)


@router.get("/", response_model=List[schemas.CategoryOut])
def list_categories(service: CategoryService = Depends(get_category_service)):
    """
    Retrieve the current user's categories ordered by name.

    Each category carries the number of items filed under it.
    """
    return service.list()


@router.post(
    "/", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED
)
def create_category(
    category_in: schemas.CategoryCreate,
    service: CategoryService = Depends(get_category_service),
):
    """
    Create a new category owned by the current user.

    Args:
        category_in (CategoryCreate): Category input data.
        service (CategoryService): Owner-scoped category service.

    Raises:
        ConflictError: If the user already has a category with that name.

    Returns:
        CategoryOut: Created category.
    """
    return service.create(category_in)


@router.get("/{category_id}", response_model=schemas.CategoryDetail)
def get_category(
    category_id: int, service: CategoryService = Depends(get_category_service)
):
    """Retrieve a single category with its items."""
    return service.get(category_id)


@router.patch("/{category_id}", response_model=schemas.CategoryOut)
def patch_category(
    category_id: int,
    changes: schemas.CategoryUpdate,
    service: CategoryService = Depends(get_category_service),
):
    """
    Partially update a category.

    Renaming checks the new name against the user's other categories.
    """
    return service.update(category_id, changes)


@router.delete("/{category_id}")
def remove_category(
    category_id: int, service: CategoryService = Depends(get_category_service)
):
    """
    Delete a category that no item refers to.

    Raises:
        NotFoundError: If the category is not found.
        ConflictError: If items are still filed under the category.

    Returns:
        dict: Deletion status.
    """
    service.delete(category_id)
    return {"ok": True}
