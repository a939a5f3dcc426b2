"""Item identification, placement suggestions and inventory questions.

:class:`IdentificationService` combines three collaborators passed in at
construction: a vision client, a barcode lookup and a language model.
Routes obtain it through :func:`get_identification_service`, which tests
override with fakes.
"""

import logging

from .barcode_lookup import BarcodeLookup, validate_barcode
from .core import get_settings
from .errors import DependencyError, NotFoundError, ValidationError
from .oracle import GeminiClient, LanguageModel, VisionClient, extract_json

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_CONFIDENCE = 30
PRODUCT_ONLY_CONFIDENCE = 40
QUERY_CONFIDENCE = 80

IDENTIFY_INSTRUCTIONS = """You are an expert at identifying items for inventory management.
Based on the following information, identify the item and provide:
1. A clear, concise name for the item
2. A brief description
3. Suggested category
4. Confidence level (0-100)

"""

IDENTIFY_FORMAT = """
Provide your response in JSON format with these fields:
{
  "name": "item name",
  "description": "brief description",
  "category": "suggested category",
  "brand": "brand name if identifiable",
  "confidence": 85
}"""

PLACEMENT_FORMAT = """
Based on the item characteristics and available storage options, suggest:
1. The best location or container for this item
2. Reasoning for your suggestion
3. Alternative options if applicable

Provide your response in JSON format:
{
  "suggested_location_id": null or location_id,
  "suggested_container_id": null or container_id,
  "reasoning": "explanation",
  "alternatives": ["alternative 1", "alternative 2"]
}"""


def _confidence(value, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(100.0, number))


def _candidate_id(value, allowed: set[int]) -> int | None:
    try:
        candidate = int(value)
    except (TypeError, ValueError):
        return None
    return candidate if candidate in allowed else None


def describe_vision(vision_data: dict) -> str:
    lines = []
    if vision_data.get("labels"):
        labels = ", ".join(label["description"] for label in vision_data["labels"])
        lines.append(f"Image labels detected: {labels}")
    if vision_data.get("objects"):
        objects = ", ".join(obj["name"] for obj in vision_data["objects"])
        lines.append(f"Objects detected: {objects}")
    if vision_data.get("text"):
        lines.append(f"Text detected: {vision_data['text']}")
    if vision_data.get("logos"):
        lines.append(f"Logos detected: {', '.join(vision_data['logos'])}")
    return "\n".join(lines)


def build_identify_prompt(
    description: str | None, vision_data: dict | None, product: dict | None
) -> str:
    prompt = IDENTIFY_INSTRUCTIONS
    if description:
        prompt += f"User description: {description}\n\n"
    if product:
        prompt += (
            f"Barcode: {product.get('barcode')}\n"
            f"Barcode type: {product.get('barcode_type') or 'N/A'}\n"
            f"Product database name: {product.get('name') or 'N/A'}\n"
            f"Brand: {product.get('brand') or 'N/A'}\n"
            f"Category: {product.get('category') or 'N/A'}\n\n"
        )
    if vision_data:
        prompt += describe_vision(vision_data) + "\n"
    return prompt + IDENTIFY_FORMAT


def item_from_product(product: dict) -> dict:
    """Identification built from barcode database data alone."""
    return {
        "name": product.get("name") or "Unknown Product",
        "description": product.get("description") or "",
        "category": product.get("category") or "Uncategorized",
        "brand": product.get("brand"),
        "confidence": PRODUCT_ONLY_CONFIDENCE,
    }


class IdentificationService:
    """
    AI-assisted helpers for the inventory.

    Args:
        vision: Object with ``analyze(image)`` and ``detect_barcodes(image)``.
        barcodes: Object with ``lookup(barcode)`` returning product data or ``None``.
        language_model: Object with ``generate(prompt)`` returning text.
    """

    def __init__(self, vision, barcodes, language_model: LanguageModel):
        self.vision = vision
        self.barcodes = barcodes
        self.language_model = language_model

    def identify(
        self,
        description: str | None = None,
        image: bytes | None = None,
        barcode: str | None = None,
    ) -> dict:
        """
        Identify an item from any mix of description, photo and barcode.

        Vision and barcode failures are logged and the remaining inputs
        are used. If the language model fails but product data was
        found, the product data is returned as the identification.

        Raises:
            ValidationError: If no input was given at all.
            DependencyError: If no usable information remains after the
                collaborators failed, or the language model failed without
                product data to fall back on.

        Returns:
            dict: ``item`` (name, description, category, brand, confidence,
            barcode, barcode_type), ``vision_data`` and ``barcode_data``.
        """
        description = (description or "").strip() or None
        barcode = (barcode or "").strip() or None
        if not (description or image or barcode):
            raise ValidationError("Please provide at least a description, image, or barcode")

        failed = []
        vision_data = None
        if image:
            try:
                vision_data = self.vision.analyze(image)
            except DependencyError as exc:
                failed.append(exc.source)
                logger.warning("Vision analysis failed, continuing without it: %s", exc)

        product = None
        if barcode:
            try:
                product = self.barcodes.lookup(barcode)
            except DependencyError as exc:
                failed.append(exc.source)
                logger.warning("Barcode lookup failed for %s: %s", barcode, exc)
            else:
                if product is None:
                    failed.append("barcode_lookup")
                    logger.info("No product data found for barcode %s", barcode)

        if not (description or vision_data or product):
            raise DependencyError(
                "Not enough information to identify the item",
                source=",".join(failed) or "identification",
            )

        prompt = build_identify_prompt(description, vision_data, product)
        try:
            answer = self.language_model.generate(prompt)
        except DependencyError as exc:
            if product is None:
                raise
            logger.warning("Language model failed, using product data: %s", exc)
            item = item_from_product(product)
        else:
            item = self._parse_identification(answer, product)

        item["ai_identified"] = True
        item["barcode"] = barcode
        item["barcode_type"] = (product or {}).get("barcode_type") or (
            validate_barcode(barcode)["format"] if barcode else None
        )
        return {"item": item, "vision_data": vision_data, "barcode_data": product}

    def _parse_identification(self, answer: str, product: dict | None) -> dict:
        parsed = extract_json(answer)
        if parsed is None:
            if product is not None:
                return item_from_product(product)
            return {
                "name": "Unknown Item",
                "description": answer[:200],
                "category": "Uncategorized",
                "brand": None,
                "confidence": UNKNOWN_ITEM_CONFIDENCE,
            }
        fallback = item_from_product(product) if product else {}
        return {
            "name": parsed.get("name") or fallback.get("name") or "Unknown Item",
            "description": parsed.get("description") or fallback.get("description") or "",
            "category": parsed.get("category") or fallback.get("category") or "Uncategorized",
            "brand": parsed.get("brand") or fallback.get("brand"),
            "confidence": _confidence(parsed.get("confidence"), 50),
        }

    def suggest_placement(
        self, item: dict, locations: list[dict], containers: list[dict]
    ) -> dict:
        """
        Ask the language model where ``item`` should be stored.

        Suggested ids that are not among the given candidates are dropped.

        Args:
            item (dict): ``name`` plus optional ``description`` and ``category``.
            locations (list[dict]): Candidate locations (id, name, description).
            containers (list[dict]): Candidate containers, also with ``location_name``.

        Raises:
            ValidationError: If there are no candidates at all.
            DependencyError: If the language model fails.
        """
        if not locations and not containers:
            raise ValidationError(
                "No locations or containers found. Please create some storage locations first."
            )
        location_lines = "\n".join(
            f"- [id {loc['id']}] {loc['name']}: {loc.get('description') or 'No description'}"
            for loc in locations
        )
        container_lines = "\n".join(
            f"- [id {cont['id']}] {cont['name']} (in {cont.get('location_name') or 'no location'}): "
            f"{cont.get('description') or 'No description'}"
            for cont in containers
        )
        prompt = (
            "You are an expert at organizing inventory and suggesting optimal storage locations.\n\n"
            "Item to store:\n"
            f"- Name: {item['name']}\n"
            f"- Description: {item.get('description') or 'N/A'}\n"
            f"- Category: {item.get('category') or 'N/A'}\n\n"
            f"Available locations:\n{location_lines}\n\n"
            f"Available containers:\n{container_lines}\n"
            + PLACEMENT_FORMAT
        )
        answer = self.language_model.generate(prompt)
        parsed = extract_json(answer)
        if parsed is None:
            return {"location_id": None, "container_id": None, "reasoning": answer, "alternatives": []}

        location_id = _candidate_id(
            parsed.get("suggested_location_id"), {loc["id"] for loc in locations}
        )
        container_id = _candidate_id(
            parsed.get("suggested_container_id"), {cont["id"] for cont in containers}
        )
        if parsed.get("suggested_location_id") is not None and location_id is None:
            logger.info("Discarding unknown suggested location %r", parsed["suggested_location_id"])
        if parsed.get("suggested_container_id") is not None and container_id is None:
            logger.info("Discarding unknown suggested container %r", parsed["suggested_container_id"])
        alternatives = parsed.get("alternatives") or []
        return {
            "location_id": location_id,
            "container_id": container_id,
            "reasoning": str(parsed.get("reasoning") or ""),
            "alternatives": [str(alt) for alt in alternatives if alt]
            if isinstance(alternatives, list)
            else [],
        }

    def answer_query(
        self,
        query: str,
        item_summaries: list[str],
        category_names: list[str],
        location_names: list[str],
    ) -> dict:
        """
        Answer a natural-language question about the inventory.

        Raises:
            ValidationError: If ``query`` is blank.
            DependencyError: If the language model fails.
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query is required")
        prompt = (
            "You are an AI assistant for a personal inventory management system.\n"
            "Answer the user's question about their inventory.\n\n"
            f"User question: {query}\n\n"
            f"User has {len(item_summaries)} items in inventory.\n"
        )
        if item_summaries:
            prompt += "Items:\n" + "\n".join(f"- {line}" for line in item_summaries) + "\n"
        if category_names:
            prompt += f"Categories: {', '.join(category_names)}\n"
        if location_names:
            prompt += f"Locations: {', '.join(location_names)}\n"
        prompt += (
            "\nProvide a helpful, concise response. If you need more specific "
            "information to answer accurately, ask for clarification."
        )
        return {"answer": self.language_model.generate(prompt), "confidence": QUERY_CONFIDENCE}

    def analyze_image(self, image: bytes) -> dict:
        if not image:
            raise ValidationError("Image file is required")
        return self.vision.analyze(image)

    def scan_barcode(self, image: bytes) -> dict:
        """
        Detect a barcode in ``image`` and look up its product.

        Raises:
            ValidationError: If the image is empty.
            NotFoundError: If no valid barcode is printed in the image.
            DependencyError: If the vision service fails.

        Returns:
            dict: ``barcode`` (value, format, valid) and ``product`` or ``None``.
        """
        if not image:
            raise ValidationError("Image file is required")
        candidates = self.vision.detect_barcodes(image)
        if not candidates:
            raise NotFoundError("No barcode detected in image")
        detected = candidates[0]
        product = None
        try:
            product = self.barcodes.lookup(detected["value"])
        except DependencyError as exc:
            logger.warning("Barcode lookup failed for %s: %s", detected["value"], exc)
        return {
            "barcode": {"value": detected["value"], "format": detected.get("format"), "valid": True},
            "product": product,
        }


def get_barcode_lookup() -> BarcodeLookup:
    """Build the production barcode lookup from settings."""
    settings = get_settings()
    return BarcodeLookup(
        timeout=settings.ORACLE_TIMEOUT_SECONDS,
        upcitemdb_key=settings.UPCITEMDB_API_KEY,
        barcode_lookup_key=settings.BARCODE_LOOKUP_API_KEY,
    )


def get_identification_service() -> IdentificationService:
    """Build the production identification service from settings."""
    settings = get_settings()
    timeout = settings.ORACLE_TIMEOUT_SECONDS
    return IdentificationService(
        vision=VisionClient(settings.GOOGLE_VISION_API_KEY, timeout=timeout),
        barcodes=get_barcode_lookup(),
        language_model=GeminiClient(
            settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL, timeout=timeout
        ),
    )
