"""User-related routes and operations for the Personal Inventory API."""

from fastapi import APIRouter, Depends, UploadFile, File, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .auth import get_current_user, evict_cached_user
from .database import get_db
from .media import upload_image
from . import schemas, crud

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def read_me(current_user=Depends(get_current_user)):
    """
    Retrieve details of the currently authenticated user.

    Args:
        current_user (User): Authenticated user obtained from JWT token.

    Returns:
        UserOut: User profile information.
    """
    return current_user


@router.put("/avatar", response_model=schemas.UserOut)
async def update_avatar(
    file: UploadFile = File(...),
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Upload a new profile picture for the authenticated user.

    Args:
        file (UploadFile): Uploaded image file.
        current_user (User): Authenticated user.
        db (Session): Database session.

    Raises:
        ValidationError: If the file is not an image.
        DependencyError: If image storage is not configured or fails.

    Returns:
        UserOut: Updated user profile.
    """
    picture_url = await run_in_threadpool(upload_image, file, folder="inventory_avatars")
    user = crud.update_profile_picture(db, current_user, picture_url)
    await evict_cached_user(user.email)
    return user


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete the authenticated account and every category, location,
    container and item it owns.
    """
    crud.delete_user(db, current_user)
    await evict_cached_user(current_user.email)
