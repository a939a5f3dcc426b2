"""Barcode routes: scanning, product lookup, registration and validation."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from . import schemas
from .auth import get_current_user
from .barcode_lookup import BarcodeLookup, validate_barcode
from .database import get_db
from .errors import ConflictError, DependencyError, ValidationError
from .identification import (
    IdentificationService,
    get_barcode_lookup,
    get_identification_service,
)
from .models import User
from .services import ItemService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/barcode", tags=["barcode"])


def require_valid(barcode: str) -> dict:
    validation = validate_barcode(barcode)
    if not validation["valid"]:
        raise ValidationError("Invalid barcode format")
    return validation


@router.post("/scan", response_model=schemas.BarcodeScanResponse)
def scan_barcode(
    image: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    identifier: IdentificationService = Depends(get_identification_service),
):
    """
    Detect a barcode printed in a photo and look up its product.

    Raises:
        NotFoundError: If no barcode is found in the image.
        DependencyError: If the vision service is unavailable.
    """
    return {"success": True, **identifier.scan_barcode(image.file.read())}


@router.get("/lookup/{barcode}", response_model=schemas.BarcodeLookupResponse)
def lookup_barcode(
    barcode: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    lookup: BarcodeLookup = Depends(get_barcode_lookup),
):
    """
    Look up product data for a barcode and whether the user already owns it.

    Args:
        barcode (str): Barcode to look up.
        db (Session): Database session.
        current_user (User): Authenticated user.
        lookup (BarcodeLookup): Product database client.

    Raises:
        ValidationError: If the barcode format is invalid.
        DependencyError: If every product database failed.

    Returns:
        BarcodeLookupResponse: Barcode info, product data and inventory match.
    """
    validation = require_valid(barcode)
    existing = ItemService(db, current_user).find_by_barcode(validation["barcode"])
    product = lookup.lookup(validation["barcode"])
    return {
        "success": True,
        "barcode": {
            "value": validation["barcode"],
            "format": validation["format"],
            "valid": True,
        },
        "product": product,
        "in_inventory": existing is not None,
        "inventory_item": existing,
    }


@router.post(
    "/register", response_model=schemas.ItemOut, status_code=status.HTTP_201_CREATED
)
def register_barcode(
    request: schemas.BarcodeRegisterRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    lookup: BarcodeLookup = Depends(get_barcode_lookup),
):
    """
    Create an item from a barcode.

    When no name is given, name and description are taken from the
    product databases.

    Raises:
        ValidationError: If the barcode is invalid or no name could be found.
        ConflictError: If the user already has an item with this barcode.
    """
    validation = require_valid(request.barcode)
    barcode = validation["barcode"]
    items = ItemService(db, current_user)
    if items.find_by_barcode(barcode) is not None:
        raise ConflictError("Item with this barcode already exists", kind="duplicate")

    name = request.name
    description = request.description
    barcode_type = validation["format"]
    if not name:
        try:
            product = lookup.lookup(barcode)
        except DependencyError as exc:
            logger.warning("Barcode lookup failed for %s: %s", barcode, exc)
            product = None
        if product:
            name = (product.get("name") or "")[:200] or None
            description = description or product.get("description")
            barcode_type = product.get("barcode_type") or barcode_type
    if not name:
        raise ValidationError("Item name is required (could not auto-detect from barcode)")

    return items.create(
        schemas.ItemCreate(
            name=name,
            description=description,
            quantity=request.quantity,
            category_id=request.category_id,
            container_id=request.container_id,
            location_id=request.location_id,
            barcode=barcode,
            barcode_type=barcode_type,
        )
    )


@router.get("/find/{barcode}", response_model=schemas.FoundItemResponse)
def find_by_barcode(
    barcode: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Tell where an item with this barcode is stored.

    Raises:
        NotFoundError: If the user has no item with this barcode.
    """
    item = ItemService(db, current_user).get_by_barcode(barcode)
    path = [name for name in (item.location_name, item.container_name) if name]
    return {
        "success": True,
        "item": {
            "id": item.id,
            "name": item.name,
            "description": item.description,
            "quantity": item.quantity,
            "category": item.category_name,
            "location": item.location_name,
            "container": item.container_name,
            "location_path": " > ".join(path),
            "barcode": item.barcode,
            "image_path": item.image_path,
        },
    }


@router.post("/validate", response_model=schemas.BarcodeValidateResponse)
def validate(
    request: schemas.BarcodeValidateRequest,
    current_user: User = Depends(get_current_user),
):
    """Report the format of a barcode and whether its check digit is correct."""
    return {"success": True, "validation": validate_barcode(request.barcode)}
