"""Image uploads to Cloudinary for profile pictures and inventory photos."""

import logging

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

from .core import get_settings
from .errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}

settings = get_settings()

if settings.CLOUDINARY_URL:
    cloudinary.config(cloudinary_url=settings.CLOUDINARY_URL)


def upload_image(file: UploadFile, folder: str) -> str:
    """
    Upload an image and return its public HTTPS URL.

    Args:
        file (UploadFile): Uploaded image file.
        folder (str): Cloudinary folder, e.g. ``"inventory/items"``.

    Raises:
        ValidationError: If the file is not a supported image type.
        DependencyError: If Cloudinary is not configured or the upload fails.

    Returns:
        str: Secure URL of the stored image.
    """
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only image files are allowed (jpeg, png, gif, webp)")

    if not get_settings().CLOUDINARY_URL:
        raise DependencyError("Image storage is not configured", source="cloudinary")

    try:
        upload_result = cloudinary.uploader.upload(file.file, folder=folder)
    except Exception as exc:
        logger.exception("Cloudinary upload to %s failed", folder)
        raise DependencyError("Failed to upload image", source="cloudinary") from exc

    image_url = upload_result.get("secure_url")
    if not image_url:
        raise DependencyError("Failed to upload image", source="cloudinary")
    return image_url
