"""REST clients for the image-analysis and language-model services.

Both clients take an optional ``requests.Session`` so callers and tests
can supply their own transport; every call carries an explicit timeout
and every failure surfaces as :class:`app.errors.DependencyError`.
"""

import base64
import json
import logging
import re
from contextlib import contextmanager
from typing import Protocol

import requests

from .barcode_lookup import validate_barcode
from .errors import DependencyError

logger = logging.getLogger(__name__)

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
DIGIT_RUN = re.compile(r"\b\d{8,14}\b")

ANALYSIS_FEATURES = [
    {"type": "LABEL_DETECTION", "maxResults": 10},
    {"type": "OBJECT_LOCALIZATION", "maxResults": 10},
    {"type": "TEXT_DETECTION"},
    {"type": "LOGO_DETECTION"},
    {"type": "IMAGE_PROPERTIES"},
]


@contextmanager
def reply_shape(source: str, label: str):
    """Report a decoded reply that lacks the expected structure as a :class:`DependencyError`."""
    try:
        yield
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        logger.warning("%s returned a malformed response: %r", label, exc)
        raise DependencyError(f"{label} returned a malformed response", source=source) from exc


class LanguageModel(Protocol):
    def generate(self, prompt: str) -> str: ...


def extract_json(text: str) -> dict | None:
    """Pull the outermost JSON object out of a free-form model answer."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_annotations(result: dict) -> dict:
    """
    Reduce a Vision ``annotate`` response to the fields the API exposes.

    Args:
        result (dict): One element of the ``responses`` array.

    Returns:
        dict: ``labels``, ``objects``, ``text``, ``logos`` and the three
        most dominant ``colors``.
    """
    texts = result.get("textAnnotations") or []
    colors = (
        (result.get("imagePropertiesAnnotation") or {})
        .get("dominantColors", {})
        .get("colors", [])
    )
    return {
        "labels": [
            {
                "description": label.get("description"),
                "confidence": round(label.get("score", 0) * 100),
            }
            for label in result.get("labelAnnotations") or []
        ],
        "objects": [
            {"name": obj.get("name"), "confidence": round(obj.get("score", 0) * 100)}
            for obj in result.get("localizedObjectAnnotations") or []
        ],
        "text": texts[0].get("description") if texts else None,
        "logos": [logo.get("description") for logo in result.get("logoAnnotations") or []],
        "colors": [
            {
                "red": color.get("color", {}).get("red", 0),
                "green": color.get("color", {}).get("green", 0),
                "blue": color.get("color", {}).get("blue", 0),
                "score": color.get("score"),
            }
            for color in colors[:3]
        ],
    }


class VisionClient:
    """Google Cloud Vision ``images:annotate`` over REST with an API key."""

    ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"

    def __init__(
        self,
        api_key: str | None,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _annotate(self, image: bytes, features: list[dict]) -> dict:
        if not self.api_key:
            raise DependencyError("Vision API not configured", source="vision")
        body = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image).decode("ascii")},
                    "features": features,
                }
            ]
        }
        try:
            response = self.session.post(
                self.ANNOTATE_URL,
                params={"key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise DependencyError(f"Vision request failed: {exc}", source="vision") from exc

        with reply_shape("vision", "Vision API"):
            result = (payload.get("responses") or [{}])[0]
            if not isinstance(result, dict):
                raise TypeError(f"unexpected response entry {result!r}")
            error = result.get("error")
            message = error.get("message", "Vision request failed") if error else None
        if message:
            raise DependencyError(message, source="vision")
        return result

    def analyze(self, image: bytes) -> dict:
        """Labels, objects, text, logos and dominant colours found in ``image``."""
        result = self._annotate(image, ANALYSIS_FEATURES)
        with reply_shape("vision", "Vision API"):
            return parse_annotations(result)

    def detect_barcodes(self, image: bytes) -> list[dict]:
        """
        Barcode candidates printed in ``image``.

        Digit runs of 8 to 14 characters found by text detection are kept
        when they pass format validation, in reading order and without
        duplicates.
        """
        result = self._annotate(image, [{"type": "TEXT_DETECTION"}])
        with reply_shape("vision", "Vision API"):
            texts = result.get("textAnnotations") or []
            text = str(texts[0].get("description", "")) if texts else ""
        found = []
        seen = set()
        for value in DIGIT_RUN.findall(text):
            if value in seen:
                continue
            seen.add(value)
            validation = validate_barcode(value)
            if validation["valid"]:
                found.append({"value": value, "format": validation["format"]})
        return found


class GeminiClient:
    """Gemini ``generateContent`` over REST; implements :class:`LanguageModel`."""

    GENERATE_URL = (
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    )

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-1.5-flash",
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.model = model
        self.session = session or requests.Session()
        self.timeout = timeout

    def generate(self, prompt: str) -> str:
        """
        Send ``prompt`` and return the concatenated text of the first candidate.

        Raises:
            DependencyError: If the client is unconfigured, the request fails
                or the answer carries no text.
        """
        if not self.api_key:
            raise DependencyError("Gemini API not configured", source="language_model")
        try:
            response = self.session.post(
                self.GENERATE_URL.format(model=self.model),
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise DependencyError(
                f"Language model request failed: {exc}", source="language_model"
            ) from exc

        with reply_shape("language_model", "Language model"):
            candidates = payload.get("candidates") or []
            parts = (candidates[0].get("content") or {}).get("parts", []) if candidates else []
            text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            raise DependencyError(
                "Language model returned an empty answer", source="language_model"
            )
        return text
