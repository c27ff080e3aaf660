"""Unit tests for the file-backed pattern store."""

import json
import os
from datetime import timedelta
from pathlib import Path

import pytest

from app.workflow.correction_pipeline import CorrectionPipeline
from core.memory.pattern_store import PatternStore
from core.utils.error_handler import MemoryPersistenceError
from core.utils.helpers import parse_timestamp, utc_now


# ------------------------------------------------------------------
# Vendor patterns
# ------------------------------------------------------------------


def test_first_pattern_starts_at_half_confidence(store: PatternStore) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")

    entry = store.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]
    assert entry["pattern"] == "Leistungsdatum"
    assert entry["confidence"] == 0.5
    assert entry["frequency"] == 1
    assert parse_timestamp(entry["lastSeen"]) is not None


def test_same_pattern_is_reinforced(store: PatternStore) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")

    entry = store.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]
    assert entry["frequency"] == 2
    assert entry["confidence"] == pytest.approx(0.6)


def test_reinforcement_is_capped(store: PatternStore) -> None:
    for _ in range(10):
        store.update_vendor_pattern("Supplier GmbH", "poNumber", "Bestellnr")

    entry = store.get_vendor_memory("Supplier GmbH")["patterns"]["poNumber"]
    assert entry["frequency"] == 10
    assert entry["confidence"] == 0.99


def test_different_pattern_replaces_entry(store: PatternStore) -> None:
    for _ in range(3):
        store.update_vendor_pattern("Skyline Logistics", "serviceDate", "Arrival Date")
    store.update_vendor_pattern("Skyline Logistics", "serviceDate", "Service Date")

    entry = store.get_vendor_memory("Skyline Logistics")["patterns"]["serviceDate"]
    assert entry["pattern"] == "Service Date"
    assert entry["confidence"] == 0.5
    assert entry["frequency"] == 1


def test_unknown_vendor_has_no_memory(store: PatternStore) -> None:
    assert store.get_vendor_memory("Nobody Ltd") is None


def test_vendor_default_is_stored(store: PatternStore) -> None:
    store.update_vendor_default("Parts AG", "currency", "EUR")
    assert store.get_vendor_memory("Parts AG")["defaults"] == {"currency": "EUR"}


# ------------------------------------------------------------------
# Decay
# ------------------------------------------------------------------


def test_decay_after_ten_days(store: PatternStore) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")

    store.apply_decay(now=utc_now() + timedelta(days=10))

    entry = store.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]
    assert entry["confidence"] == pytest.approx(0.4, abs=1e-4)


def test_decay_within_a_day_leaves_confidence(store: PatternStore) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")

    decayed = store.apply_decay(now=utc_now() + timedelta(hours=12))

    assert decayed == 0
    assert store.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]["confidence"] == 0.5


def test_decay_never_goes_below_floor(store: PatternStore) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")

    store.apply_decay(now=utc_now() + timedelta(days=365))

    assert store.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]["confidence"] == 0.1


def test_decay_is_persisted(store: PatternStore, store_path: Path) -> None:
    store.update_vendor_pattern("Supplier GmbH", "serviceDate", "Leistungsdatum")
    store.apply_decay(now=utc_now() + timedelta(days=20))

    reloaded = PatternStore(str(store_path))
    entry = reloaded.get_vendor_memory("Supplier GmbH")["patterns"]["serviceDate"]
    assert entry["confidence"] == pytest.approx(0.3, abs=1e-4)


def test_custom_decay_rate(store_path: Path) -> None:
    store = PatternStore(str(store_path), decay_rate=0.05)
    store.update_vendor_pattern("Supplier GmbH", "skonto", "Skonto")

    store.apply_decay(now=utc_now() + timedelta(days=4))

    entry = store.get_vendor_memory("Supplier GmbH")["patterns"]["skonto"]
    assert entry["confidence"] == pytest.approx(0.3, abs=1e-4)


# ------------------------------------------------------------------
# Correction memory
# ------------------------------------------------------------------


def test_add_correction_creates_entry(store: PatternStore) -> None:
    store.add_correction("description=Transport fee", "map_sku_FREIGHT")

    memory = store.find_correction("description=Transport fee")
    assert memory == {
        "context": "description=Transport fee",
        "correction": "map_sku_FREIGHT",
        "confidence": 0.5,
        "successCount": 1,
        "failCount": 0,
    }


def test_same_correction_is_reinforced(store: PatternStore) -> None:
    store.add_correction("description=Transport fee", "map_sku_FREIGHT")
    store.add_correction("description=Transport fee", "map_sku_FREIGHT")

    memory = store.find_correction("description=Transport fee")
    assert memory["successCount"] == 2
    assert memory["confidence"] == pytest.approx(0.55)


def test_different_correction_replaces_entry(store: PatternStore) -> None:
    for _ in range(4):
        store.add_correction("description=Transport fee", "map_sku_FREIGHT")
    store.add_correction("description=Transport fee", "map_sku_SHIP")

    memory = store.find_correction("description=Transport fee")
    assert memory["correction"] == "map_sku_SHIP"
    assert memory["confidence"] == 0.5
    assert len(store.snapshot()["corrections"]) == 1


def test_record_resolution_success_and_failure(store: PatternStore) -> None:
    store.add_correction("description=Bolts", "map_sku_BLT-10")

    assert store.record_resolution("description=Bolts", True) is True
    memory = store.find_correction("description=Bolts")
    assert memory["successCount"] == 2
    assert memory["confidence"] == pytest.approx(0.55)

    for _ in range(5):
        store.record_resolution("description=Bolts", False)
    memory = store.find_correction("description=Bolts")
    assert memory["failCount"] == 5
    assert memory["confidence"] == 0.0


def test_record_resolution_for_unknown_context(store: PatternStore) -> None:
    assert store.record_resolution("description=Unknown", True) is False


# ------------------------------------------------------------------
# Duplicate indexes
# ------------------------------------------------------------------


def test_record_invoice_is_idempotent(store: PatternStore, make_invoice) -> None:
    invoice = make_invoice()
    store.record_invoice(invoice)
    store.record_invoice(invoice)

    snapshot = store.snapshot()
    assert snapshot["processedInvoices"] == ["INV-001"]
    assert snapshot["invoiceFingerprints"] == ["Parts AG|2024-02-05|1190"]


def test_duplicate_by_id_and_fingerprint(store: PatternStore, make_invoice) -> None:
    store.record_invoice(make_invoice())

    assert store.is_duplicate_by_id("INV-001")
    assert store.is_duplicate(make_invoice())
    assert store.is_duplicate(make_invoice(id="INV-999"))
    assert store.is_duplicate(make_invoice(id="INV-999", totalAmount=1190))
    assert not store.is_duplicate(make_invoice(id="INV-999", totalAmount=1190.5))
    assert not store.is_duplicate(make_invoice(id="INV-999", date="2024-02-06"))


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


def test_state_survives_reload(store: PatternStore, store_path: Path, make_invoice) -> None:
    store.update_vendor_pattern("Supplier GmbH", "poNumber", "Bestellnr")
    store.add_correction("description=Seefracht", "map_sku_FREIGHT")
    store.record_invoice(make_invoice())

    document = json.loads(store_path.read_text(encoding="utf-8"))
    assert set(document) == {"vendors", "corrections", "processedInvoices", "invoiceFingerprints"}

    reloaded = PatternStore(str(store_path))
    assert reloaded.snapshot() == store.snapshot()


def test_missing_file_starts_empty(store: PatternStore) -> None:
    assert store.snapshot() == {
        "vendors": {},
        "corrections": [],
        "processedInvoices": [],
        "invoiceFingerprints": [],
    }


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        "",
        json.dumps({"vendors": {"Parts AG": {}}}),
        json.dumps({"vendors": ["Parts AG"]}),
        json.dumps({"vendors": {"Parts AG": {"patterns": {"skonto": {"pattern": "Skonto"}}}}}),
        json.dumps({"vendors": {"Parts AG": {"patterns": {"skonto": {"pattern": "Skonto", "confidence": "high"}}}}}),
        json.dumps({"corrections": {"description=Bolts": "map_sku_B-1"}}),
        json.dumps({"processedInvoices": "INV-001"}),
        json.dumps({"invoiceFingerprints": {"a": 1}}),
    ],
)
def test_malformed_file_starts_empty(store_path: Path, content: str) -> None:
    store_path.write_text(content, encoding="utf-8")

    store = PatternStore(str(store_path))

    assert store.snapshot() == {
        "vendors": {},
        "corrections": [],
        "processedInvoices": [],
        "invoiceFingerprints": [],
    }


def test_partial_document_is_filled_in(store_path: Path) -> None:
    store_path.write_text(json.dumps({"processedInvoices": ["A-1"]}), encoding="utf-8")

    store = PatternStore(str(store_path))

    assert store.is_duplicate_by_id("A-1")
    assert store.snapshot()["invoiceFingerprints"] == []


def test_clear_memory_persists_empty_store(store: PatternStore, store_path: Path, make_invoice) -> None:
    store.update_vendor_pattern("Supplier GmbH", "skonto", "Skonto")
    store.record_invoice(make_invoice())

    store.clear_memory()

    reloaded = PatternStore(str(store_path))
    assert reloaded.get_vendor_memory("Supplier GmbH") is None
    assert not reloaded.is_duplicate_by_id("INV-001")


def test_persistence_failure_propagates(tmp_path: Path) -> None:
    blocked = tmp_path / "memory.json"
    blocked.mkdir()
    store = PatternStore(str(blocked))

    with pytest.raises(MemoryPersistenceError):
        store.update_vendor_pattern("Supplier GmbH", "skonto", "Skonto")


def test_vendor_without_defaults_is_filled_in(store_path: Path) -> None:
    entry = {"pattern": "Skonto", "confidence": 0.6, "lastSeen": utc_now().isoformat()}
    store_path.write_text(
        json.dumps({"vendors": {"Parts AG": {"patterns": {"skonto": entry}}}}), encoding="utf-8"
    )

    store = PatternStore(str(store_path))
    store.update_vendor_default("Parts AG", "currency", "EUR")
    store.update_vendor_pattern("Parts AG", "skonto", "Skonto")

    vendor_memory = store.get_vendor_memory("Parts AG")
    assert vendor_memory["defaults"] == {"currency": "EUR"}
    assert vendor_memory["patterns"]["skonto"]["frequency"] == 2
    assert vendor_memory["patterns"]["skonto"]["confidence"] == pytest.approx(0.7)


def test_corrupt_store_does_not_break_processing(store_path: Path, make_invoice) -> None:
    store_path.write_text(json.dumps({"vendors": {"Parts AG": {}}}), encoding="utf-8")
    pipeline = CorrectionPipeline(PatternStore(str(store_path)))

    for invoice_id in ("INV-001", "INV-002"):
        result = pipeline.process(make_invoice(id=invoice_id))
        assert result["confidenceScore"] == 1.0
        assert result["reasoning"] == "Processed successfully."


def test_failed_replace_removes_temp_file(store: PatternStore, store_path: Path, monkeypatch) -> None:
    def refuse_replace(src, dst):
        raise PermissionError("read-only volume")

    monkeypatch.setattr(os, "replace", refuse_replace)

    with pytest.raises(MemoryPersistenceError):
        store.update_vendor_pattern("Supplier GmbH", "skonto", "Skonto")

    assert not store_path.exists()
    assert list(store_path.parent.glob(".*.tmp")) == []
