from __future__ import annotations

import base64
from pathlib import Path

import pytest
from starlette.testclient import TestClient

from snap_stock.api import create_app
from snap_stock.inventory import InventoryDatabase
from snap_stock.orchestrator.errors import BackendUnavailable
from snap_stock.orchestrator.parser import StructuredRecordParser
from snap_stock.orchestrator.pipeline import ExtractionPipeline
from snap_stock.orchestrator.strategy import TextFirstStrategy, VisionFirstStrategy

SHIRT = '[{"name": "Blue Shirt", "quantity": 5, "purchasePrice": 300, "sellingPrice": 500}]'


@pytest.fixture
def db(tmp_path: Path) -> InventoryDatabase:
    return InventoryDatabase(str(tmp_path / "inventory.sqlite3"))


def _client(pipeline: ExtractionPipeline, store) -> TestClient:
    return TestClient(create_app(pipeline=pipeline, store=store))


def _text_pipeline(fake_extractor, reply: str = SHIRT) -> ExtractionPipeline:
    return ExtractionPipeline(TextFirstStrategy(), StructuredRecordParser(fake_extractor(reply)))


def test_health_reports_strategy(fake_extractor, db) -> None:
    resp = _client(_text_pipeline(fake_extractor), db).get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["strategy"] == "text"


def test_extract_multipart_document(fake_extractor, fake_store, docx_bytes: bytes) -> None:
    client = _client(_text_pipeline(fake_extractor), fake_store())

    resp = client.post("/api/extract", files={"file": ("stock.docx", docx_bytes)})

    assert resp.status_code == 200
    body = resp.json()
    assert body["products"] == [
        {
            "supplier": None,
            "productType": None,
            "name": "Blue Shirt",
            "quantity": 5,
            "weight": None,
            "size": None,
            "purchasePrice": 300.0,
            "sellingPrice": 500.0,
            "notes": None,
        }
    ]
    assert "Blue Shirt" in body["text"]


def test_extract_json_image_with_vision(fake_extractor, fake_store, png_bytes: bytes) -> None:
    pipeline = ExtractionPipeline(VisionFirstStrategy(fake_extractor('```json\n[{"name": "Cap", "qty": 2}]\n```')))
    client = _client(pipeline, fake_store())
    image = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")

    resp = client.post("/api/extract", json={"image": image})

    assert resp.status_code == 200
    assert resp.json() == {"products": [{**_blank(), "name": "Cap", "quantity": 2}]}


def _blank() -> dict:
    return {
        "supplier": None,
        "productType": None,
        "name": "",
        "quantity": None,
        "weight": None,
        "size": None,
        "purchasePrice": None,
        "sellingPrice": None,
        "notes": None,
    }


def test_extract_blank_document_is_422(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor), fake_store())
    resp = client.post("/api/extract", files={"file": ("blank.txt", b"  \n ")})
    assert resp.status_code == 422
    assert resp.json()["error"] == "No text found in document"


def test_extract_no_products_is_422(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor, "```json\n[]\n```"), fake_store())
    resp = client.post("/api/extract", files={"file": ("stock.txt", b"Nothing to sell here")})
    assert resp.status_code == 422
    assert resp.json()["error"] == "No products detected"


def test_extract_malformed_reply_is_502(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor, "Sure! Here are your products."), fake_store())
    resp = client.post("/api/extract", files={"file": ("stock.txt", b"Blue Shirt x5")})
    assert resp.status_code == 502
    assert resp.json()["code"] == "malformed_reply"


def test_extract_backend_outage_is_503(fake_extractor, fake_store) -> None:
    pipeline = ExtractionPipeline(
        TextFirstStrategy(), StructuredRecordParser(fake_extractor(error=BackendUnavailable()))
    )
    resp = _client(pipeline, fake_store()).post("/api/extract", files={"file": ("stock.txt", b"Blue Shirt x5")})
    assert resp.status_code == 503


def test_extract_unsupported_and_missing_files_are_400(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor), fake_store())

    unsupported = client.post("/api/extract", files={"file": ("tool.exe", b"MZ")})
    missing = client.post("/api/extract", json={})

    assert unsupported.status_code == 400
    assert unsupported.json()["error"] == "Unsupported file type"
    assert missing.status_code == 400


def test_commit_persists_records(fake_extractor, db) -> None:
    client = _client(_text_pipeline(fake_extractor), db)

    resp = client.post(
        "/api/commit",
        json={"actorId": "user-1", "records": [{"name": "Blue Shirt", "quantity": 5, "sellingPrice": 500}]},
    )

    assert resp.status_code == 200
    assert resp.json()["inserted"] == 1
    listing = client.get("/api/products", params={"actorId": "user-1"}).json()
    assert listing["total"] == 1
    assert listing["items"][0]["selling_price"] == 500


def test_commit_reports_per_record_errors(fake_extractor, fake_store) -> None:
    store = fake_store()
    client = _client(_text_pipeline(fake_extractor), store)

    resp = client.post(
        "/api/commit",
        json={"actorId": "user-1", "records": [{"name": "Blue Shirt", "quantity": 5}, {"name": "Red Scarf", "quantity": 0}]},
    )

    assert resp.status_code == 422
    body = resp.json()
    assert body["errors"] == {"1": "Quantity must be a positive number."}
    assert "Product 2: Quantity must be a positive number." in body["error"]
    assert store.calls == []


def test_commit_store_failure_is_500(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor), fake_store(fail_times=1))
    resp = client.post("/api/commit", json={"actorId": "user-1", "records": [{"name": "Cap", "quantity": 1}]})
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to insert items into inventory. Please try again."


@pytest.mark.parametrize(
    "body, status",
    [
        ({"records": [{"name": "Cap", "quantity": 1}]}, 401),
        ({"actorId": "  ", "records": [{"name": "Cap", "quantity": 1}]}, 401),
        ({"actorId": "user-1", "records": []}, 400),
        ({"actorId": "user-1", "records": ["Cap"]}, 400),
        ({"actorId": "user-1"}, 400),
    ],
)
def test_commit_rejects_bad_requests(fake_extractor, fake_store, body: dict, status: int) -> None:
    store = fake_store()
    resp = _client(_text_pipeline(fake_extractor), store).post("/api/commit", json=body)
    assert resp.status_code == status
    assert store.calls == []


def test_products_requires_actor(fake_extractor, db) -> None:
    resp = _client(_text_pipeline(fake_extractor), db).get("/api/products")
    assert resp.status_code == 401


@pytest.mark.parametrize("quantity", ["1e400", "Infinity", "NaN"])
def test_commit_non_finite_quantity_is_a_record_error(fake_extractor, fake_store, quantity: str) -> None:
    store = fake_store()
    client = _client(_text_pipeline(fake_extractor), store)

    resp = client.post(
        "/api/commit",
        content='{"actorId": "user-1", "records": [{"name": "Cap", "quantity": %s}]}' % quantity,
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 422
    assert resp.json()["errors"] == {"0": "Quantity must be a positive number."}
    assert store.calls == []


def test_extract_reply_with_infinity_is_502(fake_extractor, fake_store) -> None:
    client = _client(_text_pipeline(fake_extractor, '[{"name": "Cap", "quantity": Infinity}]'), fake_store())
    resp = client.post("/api/extract", files={"file": ("stock.txt", b"Cap x lots")})
    assert resp.status_code == 502
    assert resp.json()["code"] == "malformed_reply"
