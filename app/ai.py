"""AI-assisted routes: identification, placement suggestions and questions.

All routes share one rate limit per client, configured through
``AI_RATE_LIMIT_TIMES`` and ``AI_RATE_LIMIT_SECONDS``.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi_limiter.depends import RateLimiter
from sqlalchemy.orm import Session

from . import schemas
from .auth import get_current_user
from .core import get_settings
from .database import get_db
from .identification import IdentificationService, get_identification_service
from .models import User
from .services import CategoryService, ContainerService, ItemService, LocationService

settings = get_settings()

router = APIRouter(
    prefix="/ai",
    tags=["ai"],
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.AI_RATE_LIMIT_TIMES,
                seconds=settings.AI_RATE_LIMIT_SECONDS,
            )
        )
    ],
)


def summarize_item(item) -> str:
    """One-line description of an item used as language model context."""
    line = f"{item.name} (x{item.quantity})"
    places = [name for name in (item.location_name, item.container_name) if name]
    if places:
        line += " in " + " > ".join(places)
    if item.category_name:
        line += f" [{item.category_name}]"
    return line


@router.post("/identify-item", response_model=schemas.IdentifyResponse)
def identify_item(
    description: str | None = Form(None),
    barcode: str | None = Form(None),
    image: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    identifier: IdentificationService = Depends(get_identification_service),
):
    """
    Identify an item from a description, a photo and/or a barcode.

    Args:
        description (str | None): Free-text description.
        barcode (str | None): Barcode printed on the item.
        image (UploadFile | None): Photo of the item.
        current_user (User): Authenticated user.
        identifier (IdentificationService): Identification service.

    Raises:
        ValidationError: If none of the inputs were given.
        DependencyError: If the external services could not produce an
            identification.

    Returns:
        IdentifyResponse: Suggested item fields plus raw vision and product data.
    """
    image_bytes = image.file.read() if image is not None else None
    result = identifier.identify(
        description=description, image=image_bytes, barcode=barcode
    )
    return {"success": True, **result}


@router.post("/suggest-placement", response_model=schemas.PlacementResponse)
def suggest_placement(
    request: schemas.PlacementRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    identifier: IdentificationService = Depends(get_identification_service),
):
    """
    Suggest where to store an item among the user's locations and containers.

    Raises:
        ValidationError: If the user has no locations or containers yet.
        DependencyError: If the language model is unavailable.
    """
    locations = [
        {"id": row["id"], "name": row["name"], "description": row["description"]}
        for row in LocationService(db, current_user).list(flat=True)
    ]
    containers = [
        {
            "id": row["id"],
            "name": row["name"],
            "description": row["description"],
            "location_name": row["location_name"],
        }
        for row in ContainerService(db, current_user).list(flat=True)
    ]
    suggestion = identifier.suggest_placement(
        {
            "name": request.item_name,
            "description": request.item_description,
            "category": request.item_category,
        },
        locations,
        containers,
    )
    return {
        "success": True,
        "suggestion": suggestion,
        "available_locations": locations,
        "available_containers": containers,
    }


@router.post("/query", response_model=schemas.QueryResponse)
def query_inventory(
    request: schemas.QueryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    identifier: IdentificationService = Depends(get_identification_service),
):
    """Answer a natural-language question about the user's inventory."""
    item_service = ItemService(db, current_user)
    items = item_service.list(limit=settings.QUERY_ITEM_LIMIT)
    categories = CategoryService(db, current_user).list()
    locations = LocationService(db, current_user).list(flat=True)

    result = identifier.answer_query(
        request.query,
        [summarize_item(item) for item in items],
        [category["name"] for category in categories],
        [location["name"] for location in locations],
    )
    return {
        "success": True,
        "query": request.query,
        "answer": result["answer"],
        "confidence": result["confidence"],
        "context": {
            "total_items": item_service.count(),
            "total_categories": len(categories),
            "total_locations": len(locations),
        },
    }


@router.post("/analyze-image", response_model=schemas.ImageAnalysisResponse)
def analyze_image(
    image: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    identifier: IdentificationService = Depends(get_identification_service),
):
    """Describe a photo: labels, objects, text, logos and dominant colours."""
    return {"success": True, "analysis": identifier.analyze_image(image.file.read())}
