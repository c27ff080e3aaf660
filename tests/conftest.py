"""Test configuration and shared fixtures."""

import os
import tempfile
from pathlib import Path

# Must run before core.config is imported anywhere
_AUDIT_DIR = tempfile.mkdtemp(prefix="memory-agent-audit-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_AUDIT_DIR) / 'audit.db'}"
os.environ.pop("MEMORY_FILE_PATH", None)
os.environ.pop("LOG_FILE", None)

import pytest  # noqa: E402

from app.workflow.correction_pipeline import CorrectionPipeline  # noqa: E402
from core.memory.pattern_store import PatternStore  # noqa: E402


@pytest.fixture()
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "memory.json"


@pytest.fixture()
def store(store_path: Path) -> PatternStore:
    """Fresh file-backed pattern store for each test."""
    return PatternStore(str(store_path))


@pytest.fixture()
def pipeline(store: PatternStore) -> CorrectionPipeline:
    return CorrectionPipeline(store)


@pytest.fixture()
def make_invoice():
    """Factory for flat invoices with sensible defaults."""

    def _make(**overrides):
        invoice = {
            "id": "INV-001",
            "vendorName": "Parts AG",
            "date": "2024-02-05",
            "totalAmount": 1190.0,
            "currency": "EUR",
            "lineItems": [
                {"description": "Bolts", "quantity": 100, "price": 10.0, "total": 1000.0},
            ],
            "rawText": "Rechnung INV-001",
        }
        invoice.update(overrides)
        return invoice

    return _make
