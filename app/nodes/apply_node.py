"""
APPLY Node - Fill and fix invoice fields from memory and default rules
"""
from typing import Any, Dict, List

from app.nodes.base_node import BaseNode
from core.memory.field_matchers import FIELD_MATCHERS, extract_field
from core.memory.pattern_store import PatternStore
from core.models.invoice import ProposedCorrection
from core.models.state import InvoiceState
from core.utils.helpers import is_blank
from core.utils.logging_config import get_logger

logger = get_logger(__name__)


SKU_MAPPING_PREFIX = 'map_sku_'


def description_context(description: Any) -> str:
    """Correction memory key for a line item description"""
    return f"description={description}"


class ApplyNode(BaseNode):
    """
    APPLY node: propose corrections for the normalized invoice

    Responsibilities:
    - Extract serviceDate / skonto / poNumber with the vendor's learned anchors
    - Recover a missing currency (vendor default, then symbols in the text)
    - Derive the tax amount for VAT-inclusive invoices
    - Map line item SKUs from correction memory
    """

    step = 'apply'

    def __init__(self, store: PatternStore, rules: Dict[str, Any]):
        super().__init__(name="APPLY", store=store)
        confidence = rules.get('confidence', {})
        vat = rules.get('vat', {})

        self.currency_markers = [tuple(marker) for marker in rules.get('currency_markers', [])]
        self.vat_rate = float(vat.get('rate', 0.19))
        self.vat_markers = [marker.lower() for marker in vat.get('inclusive_markers', [])]
        self.currency_text_confidence = confidence.get('currency_from_text', 0.7)
        self.currency_default_confidence = confidence.get('currency_from_vendor_default', 0.85)
        self.vat_confidence = confidence.get('vat_inclusive', 0.8)

    def execute(self, state: InvoiceState) -> InvoiceState:
        invoice = state['invoice']
        normalized = state['normalized_invoice']
        corrections = state['proposed_corrections']
        raw_text = invoice.get('rawText') or ''

        self.add_audit_entry(state, 'Applying memory and rules.')

        vendor_memory = self.store.get_vendor_memory(invoice.get('vendorName'))
        if vendor_memory:
            self._apply_vendor_patterns(vendor_memory, raw_text, normalized, corrections)

        self._recover_currency(vendor_memory, raw_text, normalized, corrections)
        self._derive_vat(raw_text, normalized, corrections)
        self._map_line_item_skus(normalized, corrections)

        logger.info(f"Proposed {len(corrections)} correction(s) for invoice {invoice.get('id')}")
        state['status'] = 'APPLIED'
        return state

    def _apply_vendor_patterns(
        self,
        vendor_memory: Dict[str, Any],
        raw_text: str,
        normalized: Dict[str, Any],
        corrections: List[ProposedCorrection]
    ):
        if not raw_text:
            return

        for field, entry in vendor_memory['patterns'].items():
            matcher = FIELD_MATCHERS.get(field)
            if matcher is None:
                continue

            value = extract_field(field, entry['pattern'], raw_text)
            if value is None:
                continue

            corrections.append({
                'field': field,
                'originalValue': normalized.get(field),
                'newValue': value,
                'reason': matcher.reason(entry['pattern']),
                'confidence': entry['confidence'],
                'source': 'vendor_memory',
            })
            normalized[field] = value
            logger.info(f"{field}={value} extracted with anchor '{entry['pattern']}'")

    def _recover_currency(
        self,
        vendor_memory: Dict[str, Any],
        raw_text: str,
        normalized: Dict[str, Any],
        corrections: List[ProposedCorrection]
    ):
        if not is_blank(normalized.get('currency')):
            return

        default_currency = (vendor_memory or {}).get('defaults', {}).get('currency')
        if default_currency:
            corrections.append({
                'field': 'currency',
                'originalValue': normalized.get('currency'),
                'newValue': default_currency,
                'reason': 'Vendor default currency',
                'confidence': self.currency_default_confidence,
                'source': 'vendor_memory',
            })
            normalized['currency'] = default_currency
            return

        if not raw_text:
            return

        for marker, currency in self.currency_markers:
            if marker in raw_text:
                corrections.append({
                    'field': 'currency',
                    'originalValue': normalized.get('currency'),
                    'newValue': currency,
                    'reason': f"Recovered from text ('{marker}')",
                    'confidence': self.currency_text_confidence,
                    'source': 'default_rule',
                })
                normalized['currency'] = currency
                return

    def _derive_vat(
        self,
        raw_text: str,
        normalized: Dict[str, Any],
        corrections: List[ProposedCorrection]
    ):
        raw_lower = raw_text.lower()
        if not any(marker in raw_lower for marker in self.vat_markers):
            return
        if normalized.get('taxAmount'):
            return

        total = normalized.get('totalAmount')
        if not isinstance(total, (int, float)) or isinstance(total, bool):
            logger.debug("VAT-inclusive marker found but total amount is not numeric")
            return

        tax = round(total * self.vat_rate / (1 + self.vat_rate), 2)
        corrections.append({
            'field': 'taxAmount',
            'originalValue': normalized.get('taxAmount'),
            'newValue': tax,
            'reason': 'VAT Included Strategy',
            'confidence': self.vat_confidence,
            'source': 'default_rule',
        })
        normalized['taxAmount'] = tax

    def _map_line_item_skus(self, normalized: Dict[str, Any], corrections: List[ProposedCorrection]):
        for index, item in enumerate(normalized.get('lineItems') or []):
            memory = self.store.find_correction(description_context(item.get('description')))
            if memory is None or not memory['correction'].startswith(SKU_MAPPING_PREFIX):
                continue

            sku = memory['correction'][len(SKU_MAPPING_PREFIX):]
            if item.get('sku') == sku:
                continue

            corrections.append({
                'field': f"lineItems[{index}].sku",
                'originalValue': item.get('sku'),
                'newValue': sku,
                'reason': f"Mapped from memory ({memory['context']})",
                'confidence': memory['confidence'],
                'source': 'correction_memory',
            })
            item['sku'] = sku
