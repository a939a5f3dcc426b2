import pytest
import requests
from fastapi import status

from app.errors import DependencyError, NotFoundError, ValidationError
from app.identification import IdentificationService, get_identification_service
from app.oracle import GeminiClient, VisionClient, extract_json, parse_annotations
from main import app


class FakeVision:
    def __init__(self, analysis=None, error=None, barcodes=None):
        self.analysis = analysis
        self.error = error
        self.barcodes = barcodes or []

    def analyze(self, image):
        if self.error:
            raise self.error
        return self.analysis

    def detect_barcodes(self, image):
        if self.error:
            raise self.error
        return self.barcodes


class FakeBarcodes:
    def __init__(self, product=None, error=None):
        self.product = product
        self.error = error
        self.calls = []

    def lookup(self, barcode):
        self.calls.append(barcode)
        if self.error:
            raise self.error
        return self.product


class FakeModel:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


VISION_DOWN = DependencyError("Vision API not configured", source="vision")
LOOKUP_DOWN = DependencyError("Barcode lookup services are unavailable", source="barcode_lookup")
MODEL_DOWN = DependencyError("Gemini API not configured", source="language_model")

ANALYSIS = {
    "labels": [{"description": "Tool", "confidence": 93}],
    "objects": [{"name": "Drill", "confidence": 88}],
    "text": "BOSCH",
    "logos": ["Bosch"],
    "colors": [],
}
PRODUCT = {
    "name": "Nutella",
    "brand": "Ferrero",
    "category": "Spreads",
    "description": "Hazelnut spread",
    "barcode": "3017620422003",
    "barcode_type": "EAN-13",
    "source": "Open Food Facts",
}


def service(vision=None, barcodes=None, model=None):
    return IdentificationService(
        vision or FakeVision(error=VISION_DOWN),
        barcodes or FakeBarcodes(),
        model or FakeModel(error=MODEL_DOWN),
    )


def test_identify_requires_some_input():
    with pytest.raises(ValidationError):
        service().identify(description="   ")


def test_identify_from_description_and_image():
    model = FakeModel(
        'Sure! {"name": "Cordless drill", "description": "18V", "category": "Tools", '
        '"brand": "Bosch", "confidence": 91}'
    )
    result = service(FakeVision(ANALYSIS), model=model).identify(
        description="green drill", image=b"jpeg"
    )

    item = result["item"]
    assert item["name"] == "Cordless drill"
    assert item["brand"] == "Bosch"
    assert item["confidence"] == 91
    assert item["ai_identified"] is True
    assert result["vision_data"] == ANALYSIS
    assert "User description: green drill" in model.prompts[0]
    assert "Objects detected: Drill" in model.prompts[0]


def test_vision_failure_falls_back_to_description():
    model = FakeModel('{"name": "Mug", "confidence": 250}')
    result = service(FakeVision(error=VISION_DOWN), model=model).identify(
        description="a white mug", image=b"jpeg"
    )
    assert result["vision_data"] is None
    assert result["item"]["name"] == "Mug"
    assert result["item"]["category"] == "Uncategorized"
    assert result["item"]["confidence"] == 100


def test_barcode_only_without_product_data_fails_cleanly():
    barcodes = FakeBarcodes(product=None)
    model = FakeModel('{"name": "Guess"}')
    with pytest.raises(DependencyError) as excinfo:
        service(barcodes=barcodes, model=model).identify(barcode="036000291452")
    assert excinfo.value.source == "barcode_lookup"
    assert barcodes.calls == ["036000291452"]
    assert model.prompts == []


def test_image_and_barcode_both_failing_names_both_sources():
    with pytest.raises(DependencyError) as excinfo:
        service(FakeVision(error=VISION_DOWN), FakeBarcodes(error=LOOKUP_DOWN)).identify(
            image=b"jpeg", barcode="036000291452"
        )
    assert excinfo.value.source == "vision,barcode_lookup"


def test_model_failure_with_product_data_uses_product():
    result = service(
        barcodes=FakeBarcodes(PRODUCT), model=FakeModel(error=MODEL_DOWN)
    ).identify(barcode="3017620422003")
    item = result["item"]
    assert item["name"] == "Nutella"
    assert item["brand"] == "Ferrero"
    assert item["confidence"] == 40
    assert item["barcode"] == "3017620422003"
    assert item["barcode_type"] == "EAN-13"
    assert result["barcode_data"] == PRODUCT


def test_model_failure_without_product_data_propagates():
    with pytest.raises(DependencyError) as excinfo:
        service(model=FakeModel(error=MODEL_DOWN)).identify(description="lamp")
    assert excinfo.value.source == "language_model"


def test_unparseable_answer_is_low_confidence_unknown_item():
    result = service(model=FakeModel("I think it is a lamp.")).identify(description="lamp")
    assert result["item"]["name"] == "Unknown Item"
    assert result["item"]["confidence"] == 30
    assert result["item"]["description"] == "I think it is a lamp."


def test_suggest_placement_discards_unknown_ids():
    model = FakeModel(
        '{"suggested_location_id": "1", "suggested_container_id": 99, '
        '"reasoning": "Tools go in the garage", "alternatives": ["Shed"]}'
    )
    suggestion = service(model=model).suggest_placement(
        {"name": "Drill"},
        [{"id": 1, "name": "Garage", "description": None}],
        [{"id": 5, "name": "Box1", "description": None, "location_name": "Garage"}],
    )
    assert suggestion == {
        "location_id": 1,
        "container_id": None,
        "reasoning": "Tools go in the garage",
        "alternatives": ["Shed"],
    }
    assert "Box1 (in Garage)" in model.prompts[0]


def test_suggest_placement_requires_candidates():
    with pytest.raises(ValidationError):
        service(model=FakeModel("{}")).suggest_placement({"name": "Drill"}, [], [])


def test_answer_query_includes_inventory_context():
    model = FakeModel("Your drill is in the garage.")
    result = service(model=model).answer_query(
        "Where is my drill?", ["Drill (x1) in Garage"], ["Tools"], ["Garage"]
    )
    assert result == {"answer": "Your drill is in the garage.", "confidence": 80}
    assert "Drill (x1) in Garage" in model.prompts[0]
    assert "Categories: Tools" in model.prompts[0]


def test_scan_barcode():
    vision = FakeVision(barcodes=[{"value": "3017620422003", "format": "EAN-13"}])
    result = service(vision, FakeBarcodes(error=LOOKUP_DOWN)).scan_barcode(b"jpeg")
    assert result["barcode"] == {"value": "3017620422003", "format": "EAN-13", "valid": True}
    assert result["product"] is None

    with pytest.raises(NotFoundError):
        service(FakeVision(barcodes=[])).scan_barcode(b"jpeg")


def test_extract_json():
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json("no json here") is None
    assert extract_json("{not json}") is None


def test_parse_annotations_keeps_three_colors():
    result = parse_annotations(
        {
            "labelAnnotations": [{"description": "Cup", "score": 0.914}],
            "localizedObjectAnnotations": [{"name": "Mug", "score": 0.5}],
            "textAnnotations": [{"description": "HELLO"}],
            "logoAnnotations": [{"description": "Acme"}],
            "imagePropertiesAnnotation": {
                "dominantColors": {
                    "colors": [{"color": {"red": i}, "score": 0.1} for i in range(5)]
                }
            },
        }
    )
    assert result["labels"] == [{"description": "Cup", "confidence": 91}]
    assert result["objects"] == [{"name": "Mug", "confidence": 50}]
    assert result["text"] == "HELLO"
    assert result["logos"] == ["Acme"]
    assert [color["red"] for color in result["colors"]] == [0, 1, 2]


class FakePostResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakePostSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def test_clients_without_keys_raise_dependency_errors():
    with pytest.raises(DependencyError) as vision_error:
        VisionClient(None).analyze(b"jpeg")
    assert vision_error.value.source == "vision"
    with pytest.raises(DependencyError) as model_error:
        GeminiClient(None).generate("hello")
    assert model_error.value.source == "language_model"


def test_vision_detects_valid_barcodes_in_text():
    session = FakePostSession(
        FakePostResponse(
            {"responses": [{"textAnnotations": [
                {"description": "Lot 12345678 EAN 4006381333931 4006381333931 UPC 036000291452"}
            ]}]}
        )
    )
    barcodes = VisionClient("key", session=session, timeout=3).detect_barcodes(b"img")
    assert [b["value"] for b in barcodes] == ["12345678", "4006381333931", "036000291452"]
    assert session.requests[0]["params"] == {"key": "key"}
    assert session.requests[0]["timeout"] == 3


def test_gemini_client_reads_candidate_text_and_wraps_failures():
    session = FakePostSession(
        FakePostResponse({"candidates": [{"content": {"parts": [{"text": "Hi "}, {"text": "there"}]}}]})
    )
    assert GeminiClient("key", session=session).generate("hello") == "Hi there"
    assert session.requests[0]["json"]["contents"][0]["parts"][0]["text"] == "hello"

    failing = GeminiClient("key", session=FakePostSession(error=requests.Timeout("slow")))
    with pytest.raises(DependencyError):
        failing.generate("hello")


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"responses": "nope"},
        {"responses": [["nested"]]},
        {"responses": [{"labelAnnotations": [{"score": "high"}]}]},
        {"responses": [{"error": "quota"}]},
    ],
)
def test_vision_malformed_replies_are_dependency_errors(payload):
    vision = VisionClient("key", session=FakePostSession(FakePostResponse(payload)))
    with pytest.raises(DependencyError) as excinfo:
        vision.analyze(b"img")
    assert excinfo.value.source == "vision"


@pytest.mark.parametrize(
    "payload",
    [
        "just text",
        {"candidates": {"content": "x"}},
        {"candidates": [{"content": {"parts": ["raw"]}}]},
    ],
)
def test_gemini_malformed_replies_are_dependency_errors(payload):
    model = GeminiClient("key", session=FakePostSession(FakePostResponse(payload)))
    with pytest.raises(DependencyError) as excinfo:
        model.generate("hello")
    assert excinfo.value.source == "language_model"


def test_malformed_vision_reply_falls_back_to_description():
    vision = VisionClient(
        "key", session=FakePostSession(FakePostResponse(["not", "an", "object"]))
    )
    model = FakeModel('{"name": "Mug", "category": "Kitchen", "confidence": 70}')
    result = IdentificationService(vision, FakeBarcodes(), model).identify(
        description="white mug", image=b"img"
    )
    assert result["vision_data"] is None
    assert result["item"]["name"] == "Mug"


def use_service(identifier):
    app.dependency_overrides[get_identification_service] = lambda: identifier


def test_identify_endpoint(client, auth_headers):
    use_service(service(barcodes=FakeBarcodes(PRODUCT), model=FakeModel(error=MODEL_DOWN)))
    response = client.post(
        "/ai/identify-item",
        data={"barcode": "3017620422003"},
        files={"image": ("jar.jpg", b"jpeg", "image/jpeg")},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["item"]["name"] == "Nutella"
    assert body["vision_data"] is None


def test_identify_endpoint_barcode_only_miss_is_bad_gateway(client, auth_headers):
    use_service(service(barcodes=FakeBarcodes(None), model=FakeModel('{"name": "x"}')))
    response = client.post(
        "/ai/identify-item",
        data={"barcode": "036000291452"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["source"] == "barcode_lookup"


def test_suggest_placement_endpoint(client, auth_headers):
    model = FakeModel('{"suggested_location_id": null, "suggested_container_id": null}')
    use_service(service(model=model))
    empty = client.post(
        "/ai/suggest-placement", json={"item_name": "Drill"}, headers=auth_headers
    )
    assert empty.status_code == status.HTTP_400_BAD_REQUEST

    garage = client.post("/locations/", json={"name": "Garage"}, headers=auth_headers).json()
    model.answer = (
        '{"suggested_location_id": %d, "reasoning": "dry", "alternatives": []}' % garage["id"]
    )
    response = client.post(
        "/ai/suggest-placement",
        json={"item_name": "Drill", "item_category": "Tools"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["suggestion"]["location_id"] == garage["id"]
    assert [loc["name"] for loc in body["available_locations"]] == ["Garage"]


def test_query_endpoint_reports_context(client, auth_headers):
    use_service(service(model=FakeModel("In the garage.")))
    client.post("/categories/", json={"name": "Tools"}, headers=auth_headers)
    client.post("/locations/", json={"name": "Garage"}, headers=auth_headers)
    client.post("/items/", json={"name": "Drill"}, headers=auth_headers)

    response = client.post(
        "/ai/query", json={"query": "Where is my drill?"}, headers=auth_headers
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["answer"] == "In the garage."
    assert body["confidence"] == 80
    assert body["context"] == {"total_items": 1, "total_categories": 1, "total_locations": 1}


def test_analyze_image_endpoint(client, auth_headers):
    use_service(service(FakeVision(ANALYSIS)))
    response = client.post(
        "/ai/analyze-image",
        files={"image": ("drill.jpg", b"jpeg", "image/jpeg")},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["analysis"]["logos"] == ["Bosch"]


def test_analyze_image_endpoint_vision_down(client, auth_headers):
    use_service(service(FakeVision(error=VISION_DOWN)))
    response = client.post(
        "/ai/analyze-image",
        files={"image": ("drill.jpg", b"jpeg", "image/jpeg")},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json() == {
        "detail": "Vision API not configured",
        "kind": "dependency",
        "source": "vision",
    }


def test_scan_endpoint(client, auth_headers):
    use_service(
        service(
            FakeVision(barcodes=[{"value": "3017620422003", "format": "EAN-13"}]),
            FakeBarcodes(PRODUCT),
        )
    )
    response = client.post(
        "/barcode/scan",
        files={"image": ("jar.jpg", b"jpeg", "image/jpeg")},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["product"]["brand"] == "Ferrero"
