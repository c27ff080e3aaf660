"""Tests for the HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.api.main import app, get_pipeline
from app.workflow.correction_pipeline import CorrectionPipeline


@pytest.fixture()
def client(pipeline: CorrectionPipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_process_returns_result(client: TestClient, make_invoice) -> None:
    response = client.post("/process", json=make_invoice(currency="", rawText="Total: 150 €"))

    assert response.status_code == 200
    body = response.json()
    assert body["normalizedInvoice"]["currency"] == "EUR"
    assert body["requiresHumanReview"] is False
    assert {"proposedCorrections", "reasoning", "confidenceScore", "memoryUpdates", "auditTrail"} <= set(body)


def test_learn_then_memory_snapshot(client: TestClient, make_invoice) -> None:
    original = make_invoice(vendorName="Supplier GmbH", rawText="Leistungsdatum: 01.01.2024")
    final = dict(original, serviceDate="01.01.2024")

    response = client.post("/learn", json={"originalInvoice": original, "finalInvoice": final})
    assert response.status_code == 200
    assert response.json()["reasoning"] == "Feedback Persisted"

    memory = client.get("/memory").json()
    assert memory["vendors"]["Supplier GmbH"]["patterns"]["serviceDate"]["pattern"] == "Leistungsdatum"
    assert memory["processedInvoices"] == ["INV-001"]


def test_learn_requires_both_invoices(client: TestClient, make_invoice) -> None:
    response = client.post("/learn", json={"originalInvoice": make_invoice()})
    assert response.status_code == 400


def test_resolution(client: TestClient, pipeline: CorrectionPipeline) -> None:
    missing = client.post("/resolution", json={"context": "description=Bolts", "success": True})
    assert missing.status_code == 404

    pipeline.store.add_correction("description=Bolts", "map_sku_BLT")
    response = client.post("/resolution", json={"context": "description=Bolts", "success": False})
    assert response.status_code == 200
    assert pipeline.store.find_correction("description=Bolts")["failCount"] == 1


def test_reset_clears_memory(client: TestClient, make_invoice) -> None:
    invoice = make_invoice()
    client.post("/learn", json={"originalInvoice": invoice, "finalInvoice": invoice})

    response = client.post("/reset")
    assert response.json() == {"success": True, "message": "Memory cleared"}

    memory = client.get("/memory").json()
    assert memory["processedInvoices"] == []
    assert client.post("/process", json=invoice).json()["confidenceScore"] == 1.0
