from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional


class OrmModel(BaseModel):
    """Base for response schemas read straight from SQLAlchemy objects."""

    model_config = ConfigDict(from_attributes=True)


class Reference(OrmModel):
    """Minimal ``{id, name}`` pointer to a related row."""

    id: int
    name: str


# Categories


class CategoryCreate(BaseModel):
    """Schema for creating a category."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    """Schema for updating a category (all fields optional)."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None


class CategoryOut(OrmModel):
    """Category as returned by the API."""

    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    item_count: Optional[int] = None


# Items


class ItemBase(BaseModel):
    """Shared writable item fields."""

    description: Optional[str] = None
    category_id: Optional[int] = None
    container_id: Optional[int] = None
    location_id: Optional[int] = None
    barcode: Optional[str] = Field(None, max_length=100)
    barcode_type: Optional[str] = Field(None, max_length=20)


class ItemCreate(ItemBase):
    """Schema for creating an item."""

    name: str = Field(min_length=1, max_length=200)
    quantity: int = Field(1, ge=0)
    ai_identified: bool = False
    ai_confidence: Optional[float] = Field(None, ge=0, le=100)


class ItemUpdate(ItemBase):
    """Schema for updating an item (all fields optional)."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    quantity: Optional[int] = Field(None, ge=0)


class ItemOut(OrmModel):
    """Item with display names of its category and placement."""

    id: int
    name: str
    description: Optional[str] = None
    quantity: int
    category_id: Optional[int] = None
    container_id: Optional[int] = None
    location_id: Optional[int] = None
    barcode: Optional[str] = None
    barcode_type: Optional[str] = None
    image_path: Optional[str] = None
    ai_identified: bool = False
    ai_confidence: Optional[float] = None
    category_name: Optional[str] = None
    container_name: Optional[str] = None
    location_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryDetail(CategoryOut):
    """Category with the items filed under it."""

    items: List[ItemOut] = []


# Containers


class ContainerCreate(BaseModel):
    """Schema for creating a container."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    location_id: Optional[int] = None
    parent_container_id: Optional[int] = None
    barcode: Optional[str] = Field(None, max_length=100)
    barcode_type: Optional[str] = Field(None, max_length=20)


class ContainerUpdate(BaseModel):
    """Schema for updating a container (all fields optional)."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    location_id: Optional[int] = None
    parent_container_id: Optional[int] = None
    barcode: Optional[str] = Field(None, max_length=100)
    barcode_type: Optional[str] = Field(None, max_length=20)


class ContainerOut(OrmModel):
    """Container record."""

    id: int
    name: str
    description: Optional[str] = None
    location_id: Optional[int] = None
    parent_container_id: Optional[int] = None
    barcode: Optional[str] = None
    barcode_type: Optional[str] = None
    image_path: Optional[str] = None
    location_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContainerNode(ContainerOut):
    """Container in a list view, with counts and, in tree mode, children."""

    item_count: int = 0
    child_count: int = 0
    children: Optional[List["ContainerNode"]] = None


class ContainerDetail(ContainerOut):
    """Container with its parent, direct children and items."""

    parent: Optional[Reference] = None
    children: List[ContainerOut] = []
    items: List[ItemOut] = []


# Locations


class LocationCreate(BaseModel):
    """Schema for creating a location."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    parent_location_id: Optional[int] = None


class LocationUpdate(BaseModel):
    """Schema for updating a location (all fields optional)."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    parent_location_id: Optional[int] = None


class LocationOut(OrmModel):
    """Location record."""

    id: int
    name: str
    description: Optional[str] = None
    parent_location_id: Optional[int] = None
    image_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LocationNode(LocationOut):
    """Location in a list view, with counts and, in tree mode, children."""

    child_count: int = 0
    container_count: int = 0
    item_count: int = 0
    children: Optional[List["LocationNode"]] = None


class LocationDetail(LocationOut):
    """Location with its parent, sub-locations, containers and direct items."""

    parent: Optional[Reference] = None
    children: List[LocationOut] = []
    containers: List[ContainerOut] = []
    items: List[ItemOut] = []


class ContainerWithItems(ContainerOut):
    """Container found by barcode, with its items."""

    items: List[ItemOut] = []


# Identification


class IdentifiedItem(BaseModel):
    """Best guess returned by the identification service."""

    name: str
    description: str = ""
    category: str = "Uncategorized"
    brand: Optional[str] = None
    confidence: float = Field(ge=0, le=100)
    ai_identified: bool = True
    barcode: Optional[str] = None
    barcode_type: Optional[str] = None


class IdentifyResponse(BaseModel):
    """Identification result plus the raw signals it was built from."""

    success: bool = True
    item: IdentifiedItem
    vision_data: Optional[dict] = None
    barcode_data: Optional[dict] = None


class PlacementRequest(BaseModel):
    """Item to find a home for."""

    item_name: str = Field(min_length=1)
    item_description: Optional[str] = None
    item_category: Optional[str] = None


class PlacementSuggestion(BaseModel):
    """Suggested location and/or container for an item."""

    location_id: Optional[int] = None
    container_id: Optional[int] = None
    reasoning: str = ""
    alternatives: List[str] = []


class PlacementCandidate(BaseModel):
    """Location or container offered to the placement oracle."""

    id: int
    name: str
    description: Optional[str] = None
    location_name: Optional[str] = None


class PlacementResponse(BaseModel):
    """Placement suggestion plus the candidates that were considered."""

    success: bool = True
    suggestion: PlacementSuggestion
    available_locations: List[PlacementCandidate] = []
    available_containers: List[PlacementCandidate] = []


class QueryRequest(BaseModel):
    """Natural-language question about the caller's inventory."""

    query: str = Field(min_length=1)


class QueryContext(BaseModel):
    """Size of the inventory summary sent along with a query."""

    total_items: int
    total_categories: int
    total_locations: int


class QueryResponse(BaseModel):
    """Answer to a natural-language inventory question."""

    success: bool = True
    query: str
    answer: str
    confidence: float
    context: QueryContext


class ImageAnalysis(BaseModel):
    """Raw vision signals extracted from an image."""

    labels: List[dict] = []
    objects: List[dict] = []
    text: Optional[str] = None
    logos: List[str] = []
    colors: List[dict] = []


class ImageAnalysisResponse(BaseModel):
    """Result of the analyze-image endpoint."""

    success: bool = True
    analysis: ImageAnalysis


# Barcodes


class BarcodeValidation(BaseModel):
    """Outcome of barcode format validation."""

    valid: bool
    format: Optional[str] = None
    barcode: str
    check_digit_valid: Optional[bool] = None


class BarcodeValidateRequest(BaseModel):
    """Barcode to validate."""

    barcode: str = Field(min_length=1)


class BarcodeValidateResponse(BaseModel):
    """Response of the barcode validation endpoint."""

    success: bool = True
    validation: BarcodeValidation


class BarcodeInfo(BaseModel):
    """Barcode value with its detected format."""

    value: str
    format: Optional[str] = None
    valid: bool


class ProductInfo(BaseModel):
    """Product record from an external barcode database."""

    name: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    barcode: str
    barcode_type: Optional[str] = None
    source: Optional[str] = None


class BarcodeLookupResponse(BaseModel):
    """Product lookup result and whether the caller already owns the item."""

    success: bool = True
    barcode: BarcodeInfo
    product: Optional[ProductInfo] = None
    in_inventory: bool = False
    inventory_item: Optional[ItemOut] = None


class BarcodeScanResponse(BaseModel):
    """Barcode detected in an uploaded image, with product info if found."""

    success: bool = True
    barcode: BarcodeInfo
    product: Optional[ProductInfo] = None


class BarcodeRegisterRequest(BaseModel):
    """Register an item by barcode; name may be filled from product lookup."""

    barcode: str = Field(min_length=1, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    quantity: int = Field(1, ge=0)
    category_id: Optional[int] = None
    container_id: Optional[int] = None
    location_id: Optional[int] = None


class FoundItem(BaseModel):
    """Item located by barcode with a readable placement path."""

    id: int
    name: str
    description: Optional[str] = None
    quantity: int
    category: Optional[str] = None
    location: Optional[str] = None
    container: Optional[str] = None
    location_path: str = ""
    barcode: Optional[str] = None
    image_path: Optional[str] = None


class FoundItemResponse(BaseModel):
    """Response of the barcode find endpoint."""

    success: bool = True
    item: FoundItem


# Users and tokens


class UserBase(BaseModel):
    """Shared fields for user schemas."""

    email: EmailStr


class UserCreate(UserBase):
    """Payload for registering a local user."""

    password: str = Field(min_length=6)
    username: Optional[str] = Field(None, min_length=1, max_length=100)


class UserOut(UserBase):
    """Response schema for user data."""

    id: int
    username: Optional[str] = None
    auth_provider: str = "local"
    profile_picture: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    """JWT token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    """Schema for requesting a new access token from a refresh token."""

    refresh_token: str


class TokenData(BaseModel):
    """Payload stored inside JWT token."""

    sub: str | None = None
    exp: Optional[datetime] = None
    scope: Optional[str] = None


class GoogleLogin(BaseModel):
    """Google ID token obtained by the client from Google Sign-In."""

    id_token: str = Field(min_length=1)
