"""
Pattern Store - persistent knowledge of the memory agent

Holds per-vendor field patterns, context -> correction mappings and the two
duplicate indexes. The whole store is one JSON document that is loaded once
and rewritten on every mutation.
"""
import copy
import json
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from core.config.config import config
from core.models.invoice import (
    CorrectionMemory,
    MemoryStoreDocument,
    VendorMemory,
)
from core.utils.error_handler import (
    MemoryLoadError,
    MemoryPersistenceError,
    RetryPolicy,
    error_handler,
    with_retry,
)
from core.utils.helpers import (
    days_between,
    invoice_fingerprint,
    parse_timestamp,
    utc_now,
)
from core.utils.logging_config import get_logger

logger = get_logger(__name__)


INITIAL_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.99
PATTERN_REINFORCEMENT = 0.1
DECAY_FLOOR = 0.1
DECAY_GRACE_DAYS = 1.0
CORRECTION_REINFORCEMENT = 0.05
CORRECTION_FAILURE_PENALTY = 0.2

PERSIST_RETRY_POLICY = RetryPolicy(max_retries=2, backoff_seconds=0.05)


def empty_document() -> MemoryStoreDocument:
    return {
        'vendors': {},
        'corrections': [],
        'processedInvoices': [],
        'invoiceFingerprints': [],
    }


def _check_document(parsed: Any) -> MemoryStoreDocument:
    """
    Fill in missing sections and check the shape of a loaded document

    Raises:
        ValueError: If any section has the wrong structure
    """
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")

    memory = empty_document()
    for key, default in memory.items():
        value = parsed.get(key)
        if value is None:
            continue
        if not isinstance(value, type(default)):
            raise ValueError(f"'{key}' must be a {type(default).__name__}, got {type(value).__name__}")
        memory[key] = value

    for vendor_name, vendor_memory in memory['vendors'].items():
        if not isinstance(vendor_memory, dict) or not isinstance(vendor_memory.get('patterns'), dict):
            raise ValueError(f"vendor '{vendor_name}' has no patterns table")
        defaults = vendor_memory.setdefault('defaults', {})
        if not isinstance(defaults, dict):
            raise ValueError(f"vendor '{vendor_name}' defaults must be an object")
        vendor_memory.setdefault('vendorName', vendor_name)
        for field, entry in vendor_memory['patterns'].items():
            if not isinstance(entry, dict) or not isinstance(entry.get('pattern'), str):
                raise ValueError(f"{vendor_name}/{field} pattern entry has no anchor")
            confidence = entry.get('confidence')
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                raise ValueError(f"{vendor_name}/{field} confidence must be a number")
            entry.setdefault('frequency', 1)

    for correction in memory['corrections']:
        if not isinstance(correction, dict) or 'context' not in correction:
            raise ValueError("correction entries must be objects with a context")
        confidence = correction.get('confidence')
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValueError(f"correction '{correction['context']}' confidence must be a number")
        correction.setdefault('successCount', 0)
        correction.setdefault('failCount', 0)

    return memory


@with_retry(retry_policy=PERSIST_RETRY_POLICY, exceptions=(OSError,))
def _write_document(path: Path, payload: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class PatternStore:
    """
    File-backed store of learned vendor patterns and corrections

    A single instance owns the file. Every mutate-and-persist cycle runs
    under ``self.lock``; callers that need several operations to act as one
    unit (a whole pipeline pass) may hold the same lock around them.
    """

    def __init__(self, file_path: str = None, decay_rate: float = None):
        """
        Initialize the store and load persisted state

        Args:
            file_path: JSON document location, defaults to MEMORY_FILE_PATH
            decay_rate: Confidence lost per elapsed day, defaults to DECAY_RATE
        """
        self.file_path = Path(file_path or config.MEMORY_FILE_PATH)
        self.decay_rate = config.DECAY_RATE if decay_rate is None else decay_rate
        self.lock = threading.RLock()
        self._memory: MemoryStoreDocument = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> MemoryStoreDocument:
        if not self.file_path.exists():
            logger.info(f"No pattern store at {self.file_path}, starting empty")
            return empty_document()

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                parsed = json.load(f)
            memory = _check_document(parsed)
        except (OSError, ValueError) as e:
            error_handler.handle_error(
                MemoryLoadError(f"Could not load pattern store {self.file_path}: {e}", node="PATTERN_STORE"),
                node="PATTERN_STORE",
            )
            logger.warning("Pattern store is unreadable, starting with empty memory")
            return empty_document()

        logger.info(
            f"Loaded pattern store - Vendors: {len(memory['vendors'])}, "
            f"Corrections: {len(memory['corrections'])}, "
            f"Known invoices: {len(memory['processedInvoices'])}"
        )
        return memory

    def save(self):
        """
        Persist the full store

        Raises:
            MemoryPersistenceError: If the document cannot be written
        """
        with self.lock:
            payload = json.dumps(self._memory, indent=2, ensure_ascii=False)
            try:
                _write_document(self.file_path, payload)
            except OSError as e:
                raise MemoryPersistenceError(
                    f"Failed to persist pattern store to {self.file_path}: {e}",
                    node="PATTERN_STORE",
                ) from e
            logger.debug(f"Pattern store persisted to {self.file_path}")

    def snapshot(self) -> MemoryStoreDocument:
        """Deep copy of the whole store document"""
        with self.lock:
            return copy.deepcopy(self._memory)

    # ------------------------------------------------------------------
    # Vendor patterns
    # ------------------------------------------------------------------

    def get_vendor_memory(self, vendor_name: str) -> Optional[VendorMemory]:
        with self.lock:
            return self._memory['vendors'].get(vendor_name)

    def _ensure_vendor(self, vendor_name: str) -> VendorMemory:
        vendors = self._memory['vendors']
        if vendor_name not in vendors:
            vendors[vendor_name] = {'vendorName': vendor_name, 'patterns': {}, 'defaults': {}}
        return vendors[vendor_name]

    def update_vendor_pattern(self, vendor_name: str, field: str, pattern: str):
        """
        Learn or reinforce the anchor used to find a field for a vendor

        The same anchor reinforces the entry; a different anchor replaces it.

        Args:
            vendor_name: Vendor name
            field: Invoice field (serviceDate, skonto, poNumber, ...)
            pattern: Keyword or regex anchor
        """
        with self.lock:
            vendor_memory = self._ensure_vendor(vendor_name)
            now = utc_now().isoformat()
            existing = vendor_memory['patterns'].get(field)

            if existing is not None and existing['pattern'] == pattern:
                existing['frequency'] += 1
                existing['confidence'] = min(MAX_CONFIDENCE, existing['confidence'] + PATTERN_REINFORCEMENT)
                existing['lastSeen'] = now
                logger.info(
                    f"Reinforced {field} pattern '{pattern}' for {vendor_name} "
                    f"(confidence {existing['confidence']:.2f}, seen {existing['frequency']}x)"
                )
            else:
                if existing is not None:
                    logger.info(
                        f"Replacing {field} pattern '{existing['pattern']}' with '{pattern}' for {vendor_name}"
                    )
                else:
                    logger.info(f"Learned new {field} pattern '{pattern}' for {vendor_name}")
                vendor_memory['patterns'][field] = {
                    'pattern': pattern,
                    'confidence': INITIAL_CONFIDENCE,
                    'frequency': 1,
                    'lastSeen': now,
                }

            self.save()

    def update_vendor_default(self, vendor_name: str, field: str, value: Any):
        """Remember a default value (e.g. currency) for a vendor"""
        with self.lock:
            self._ensure_vendor(vendor_name)['defaults'][field] = value
            logger.info(f"Stored default {field}={value!r} for {vendor_name}")
            self.save()

    def apply_decay(self, now: datetime = None) -> int:
        """
        Lower the confidence of patterns not seen for more than a day

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of patterns whose confidence was lowered
        """
        now = now or utc_now()
        decayed = 0

        with self.lock:
            for vendor_memory in self._memory['vendors'].values():
                for field, entry in vendor_memory['patterns'].items():
                    last_seen = parse_timestamp(entry.get('lastSeen'))
                    if last_seen is None:
                        continue
                    elapsed_days = days_between(last_seen, now)
                    if elapsed_days > DECAY_GRACE_DAYS:
                        new_confidence = max(DECAY_FLOOR, entry['confidence'] - self.decay_rate * elapsed_days)
                        if new_confidence != entry['confidence']:
                            decayed += 1
                        entry['confidence'] = new_confidence

            if decayed:
                logger.debug(f"Decay lowered confidence of {decayed} pattern(s)")
            self.save()

        return decayed

    # ------------------------------------------------------------------
    # Correction memory
    # ------------------------------------------------------------------

    def find_correction(self, context: str) -> Optional[CorrectionMemory]:
        with self.lock:
            return next((c for c in self._memory['corrections'] if c['context'] == context), None)

    def add_correction(self, context: str, correction: str):
        """
        Learn or reinforce the correction for a context

        Args:
            context: Opaque context key, e.g. "description=Transport fee"
            correction: Action token, e.g. "map_sku_FREIGHT"
        """
        with self.lock:
            memory = self.find_correction(context)
            if memory is None:
                self._memory['corrections'].append({
                    'context': context,
                    'correction': correction,
                    'confidence': INITIAL_CONFIDENCE,
                    'successCount': 1,
                    'failCount': 0,
                })
                logger.info(f"Learned correction {correction} for {context}")
            elif memory['correction'] == correction:
                memory['successCount'] += 1
                memory['confidence'] = min(MAX_CONFIDENCE, memory['confidence'] + CORRECTION_REINFORCEMENT)
                logger.info(f"Reinforced correction {correction} for {context} (confidence {memory['confidence']:.2f})")
            else:
                logger.info(f"Replacing correction {memory['correction']} with {correction} for {context}")
                memory['correction'] = correction
                memory['confidence'] = INITIAL_CONFIDENCE

            self.save()

    def record_resolution(self, context: str, success: bool) -> bool:
        """
        Track whether an applied correction turned out right

        Args:
            context: Context key of the correction
            success: True if the correction was confirmed

        Returns:
            False if no correction exists for the context
        """
        with self.lock:
            memory = self.find_correction(context)
            if memory is None:
                logger.debug(f"No correction memory for {context}, resolution ignored")
                return False

            if success:
                memory['successCount'] += 1
                memory['confidence'] = min(MAX_CONFIDENCE, memory['confidence'] + CORRECTION_REINFORCEMENT)
            else:
                memory['failCount'] += 1
                memory['confidence'] = max(0.0, memory['confidence'] - CORRECTION_FAILURE_PENALTY)

            logger.info(
                f"Recorded {'success' if success else 'failure'} for {context} "
                f"(confidence {memory['confidence']:.2f})"
            )
            self.save()
            return True

    # ------------------------------------------------------------------
    # Duplicate detection
    # ------------------------------------------------------------------

    def is_duplicate_by_id(self, invoice_id: str) -> bool:
        with self.lock:
            return invoice_id in self._memory['processedInvoices']

    def is_duplicate_by_fingerprint(self, invoice: Dict[str, Any]) -> bool:
        with self.lock:
            return invoice_fingerprint(invoice) in self._memory['invoiceFingerprints']

    def is_duplicate(self, invoice: Dict[str, Any]) -> bool:
        """Check the invoice ID first, then the vendor|date|amount fingerprint"""
        if self.is_duplicate_by_id(invoice.get('id')):
            return True
        return self.is_duplicate_by_fingerprint(invoice)

    def record_invoice(self, invoice: Dict[str, Any]):
        """Add the invoice ID and fingerprint to the duplicate indexes"""
        with self.lock:
            invoice_id = invoice.get('id')
            if invoice_id not in self._memory['processedInvoices']:
                self._memory['processedInvoices'].append(invoice_id)

            fingerprint = invoice_fingerprint(invoice)
            if fingerprint not in self._memory['invoiceFingerprints']:
                self._memory['invoiceFingerprints'].append(fingerprint)

            logger.info(f"Recorded invoice {invoice_id} ({fingerprint})")
            self.save()

    # ------------------------------------------------------------------

    def clear_memory(self):
        """Forget everything and persist the empty store"""
        with self.lock:
            self._memory = empty_document()
            logger.warning("Pattern store cleared")
            self.save()
