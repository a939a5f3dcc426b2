"""Barcode format checks, GS1 check digits and product database lookups."""

import logging
import re

import requests

from .errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)

GS1_FORMATS = {8: "EAN-8", 12: "UPC-A", 13: "EAN-13"}
CODE39_PATTERN = re.compile(r"^[A-Z0-9\-. $/+%]+$")


def validate_barcode(barcode: str) -> dict:
    """
    Classify ``barcode`` into one of the supported symbologies.

    Digit-only codes of length 8, 12 and 13 are EAN-8, UPC-A and EAN-13
    and get their check digit verified; any other even-length digit run is
    ITF. Remaining codes must fit the Code-39 alphabet, which has no
    lowercase letters.

    Args:
        barcode (str): Raw barcode text. Surrounding whitespace is ignored.

    Returns:
        dict: ``valid``, ``format``, ``barcode`` (normalised) and
        ``check_digit_valid`` (``None`` for symbologies without one).
    """
    value = str(barcode).strip()
    result = {"valid": False, "format": None, "barcode": value, "check_digit_valid": None}
    if not value:
        return result

    if value.isdigit():
        if len(value) in GS1_FORMATS:
            result.update(
                valid=True,
                format=GS1_FORMATS[len(value)],
                check_digit_valid=verify_check_digit(value),
            )
            return result
        if len(value) % 2 == 0:
            result.update(valid=True, format="ITF")
            return result

    if CODE39_PATTERN.match(value):
        result.update(valid=True, format="Code-39")
    return result


def calculate_check_digit(payload: str) -> int:
    """
    GS1 modulo-10 check digit for ``payload`` (the code without its check digit).

    Weights alternate 3, 1, 3, ... starting from the rightmost payload digit.

    Raises:
        ValidationError: If ``payload`` is empty or not made of digits.
    """
    if not payload or not payload.isdigit():
        raise ValidationError("Check digits can only be computed for digit strings")
    total = 0
    for position, digit in enumerate(reversed(payload)):
        total += int(digit) * (3 if position % 2 == 0 else 1)
    return (10 - total % 10) % 10


def verify_check_digit(barcode: str) -> bool:
    """
    Whether the last digit of an EAN-8, UPC-A, EAN-13 or GTIN-14 code is correct.

    Raises:
        ValidationError: If the code is not 8, 12, 13 or 14 digits long.
    """
    if not barcode.isdigit() or len(barcode) not in (8, 12, 13, 14):
        raise ValidationError(
            "Invalid barcode length for check digit verification"
        )
    return calculate_check_digit(barcode[:-1]) == int(barcode[-1])


def suggest_barcodes(partial: str) -> list[dict]:
    """
    Formats that a partially typed code could still grow into.

    When a digit-only prefix is exactly one digit short of a format, the
    completed code with its check digit is included as ``candidate``.
    """
    partial = str(partial).strip()
    suggestions = []
    for length, format_name in (
        (12, "UPC-A"),
        (13, "EAN-13"),
        (8, "EAN-8"),
    ):
        remaining = length - len(partial)
        if remaining <= 0:
            continue
        suggestion = {"format": format_name, "length": length, "remaining": remaining}
        if remaining == 1 and partial.isdigit():
            suggestion["candidate"] = partial + str(calculate_check_digit(partial))
        suggestions.append(suggestion)
    return suggestions


class BarcodeLookup:
    """
    Product lookup across public barcode databases.

    Providers are tried in order: Open Food Facts (GS1 retail codes),
    UPCitemdb and Barcode Lookup (each only when an API key is configured).
    The first provider that knows the product wins.
    """

    OPEN_FOOD_FACTS_URL = "https://world.openfoodfacts.org/api/v0/product/{barcode}.json"
    UPCITEMDB_URL = "https://api.upcitemdb.com/prod/trial/lookup"
    BARCODE_LOOKUP_URL = "https://api.barcodelookup.com/v3/products"

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = 5.0,
        upcitemdb_key: str | None = None,
        barcode_lookup_key: str | None = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.upcitemdb_key = upcitemdb_key
        self.barcode_lookup_key = barcode_lookup_key

    def _providers(self, barcode: str):
        providers = []
        if barcode.isdigit() and len(barcode) in GS1_FORMATS:
            providers.append(("Open Food Facts", self._open_food_facts))
        if self.upcitemdb_key:
            providers.append(("UPC Item DB", self._upcitemdb))
        if self.barcode_lookup_key:
            providers.append(("Barcode Lookup", self._barcode_lookup))
        return providers

    def lookup(self, barcode: str) -> dict | None:
        """
        Find product data for ``barcode``.

        Args:
            barcode (str): Code to look up.

        Raises:
            DependencyError: If every applicable provider failed to answer.

        Returns:
            dict | None: Product fields plus ``source``, or ``None`` when no
            provider knows the code.
        """
        barcode = barcode.strip()
        providers = self._providers(barcode)
        failures = 0
        for source, provider in providers:
            try:
                product = provider(barcode)
            except (requests.RequestException, ValueError) as exc:
                failures += 1
                logger.warning("%s lookup failed for %s: %s", source, barcode, exc)
                continue
            if product:
                product["source"] = source
                logger.info("Barcode %s found in %s", barcode, source)
                return product

        if providers and failures == len(providers):
            raise DependencyError(
                "Barcode lookup services are unavailable", source="barcode_lookup"
            )
        return None

    def _get(self, url: str, **kwargs) -> dict | None:
        response = self.session.get(url, timeout=self.timeout, **kwargs)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _records(data: dict | None, key: str) -> list:
        records = (data or {}).get(key) or []
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValueError(f"malformed {key!r} in response")
        return records

    def _open_food_facts(self, barcode: str) -> dict | None:
        data = self._get(self.OPEN_FOOD_FACTS_URL.format(barcode=barcode))
        if not data or data.get("status") != 1:
            return None
        product = data.get("product") or {}
        if not isinstance(product, dict):
            raise ValueError("malformed 'product' in response")
        return {
            "name": product.get("product_name") or product.get("product_name_en"),
            "brand": product.get("brands"),
            "category": product.get("categories"),
            "description": product.get("generic_name") or product.get("product_name"),
            "image_url": product.get("image_url"),
            "barcode": barcode,
            "barcode_type": GS1_FORMATS[len(barcode)],
        }

    def _upcitemdb(self, barcode: str) -> dict | None:
        data = self._get(
            self.UPCITEMDB_URL,
            params={"upc": barcode},
            headers={"user_key": self.upcitemdb_key, "key_type": "3scale"},
        )
        items = self._records(data, "items")
        if not items:
            return None
        item = items[0]
        return {
            "name": item.get("title"),
            "brand": item.get("brand"),
            "category": item.get("category"),
            "description": item.get("description"),
            "image_url": (item.get("images") or [None])[0],
            "barcode": barcode,
            "barcode_type": "UPC",
        }

    def _barcode_lookup(self, barcode: str) -> dict | None:
        data = self._get(
            self.BARCODE_LOOKUP_URL,
            params={"barcode": barcode, "formatted": "y", "key": self.barcode_lookup_key},
        )
        products = self._records(data, "products")
        if not products:
            return None
        product = products[0]
        return {
            "name": product.get("title") or product.get("product_name"),
            "brand": product.get("brand"),
            "category": product.get("category"),
            "description": product.get("description"),
            "image_url": (product.get("images") or [None])[0],
            "barcode": barcode,
            "barcode_type": product.get("barcode_type"),
        }
