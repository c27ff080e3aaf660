"""
LEARN Node - Turn a human-approved invoice into new memory
"""
from typing import Any, Dict, List

from app.nodes.apply_node import SKU_MAPPING_PREFIX, description_context
from app.nodes.base_node import BaseNode
from core.memory.pattern_store import PatternStore
from core.models.state import InvoiceState
from core.utils.helpers import is_blank
from core.utils.logging_config import get_logger
from integrations.dialects.nested_fields import translate_invoice

logger = get_logger(__name__)


class LearnNode(BaseNode):
    """
    LEARN node: compare the original invoice with the approved version

    Responsibilities:
    - Register the label that precedes a field the reviewer had to fill in
    - Map original line item descriptions to the SKUs the reviewer set
    - Remember a vendor default currency
    - Record the original invoice in the duplicate indexes
    """

    step = 'learn'

    def __init__(self, store: PatternStore, rules: Dict[str, Any]):
        super().__init__(name="LEARN", store=store)
        self.keywords: Dict[str, List[str]] = rules.get('learning_keywords', {})

    def execute(self, state: InvoiceState) -> InvoiceState:
        original = translate_invoice(state['invoice'])
        final = translate_invoice(state['final_invoice'])
        state['invoice'] = original
        state['final_invoice'] = final
        state['invoice_id'] = original.get('id')

        vendor = original.get('vendorName')
        raw_text = original.get('rawText') or ''
        updates = state.setdefault('memory_updates', [])

        self.add_audit_entry(state, f"Learning from reviewed invoice {original.get('id')}")

        for field, keywords in self.keywords.items():
            if not is_blank(original.get(field)) or is_blank(final.get(field)) or not raw_text:
                continue

            keyword = next((kw for kw in keywords if kw in raw_text), None)
            if keyword is None:
                logger.info(f"No known label for {field} in invoice {original.get('id')}")
                continue

            self.store.update_vendor_pattern(vendor, field, keyword)
            self._note(state, updates, f"Learned {field} pattern: {keyword}")

        original_items = original.get('lineItems') or []
        for index, final_item in enumerate(final.get('lineItems') or []):
            if index >= len(original_items):
                break
            original_item = original_items[index]
            final_sku = final_item.get('sku')
            if final_sku and original_item.get('sku') != final_sku:
                self.store.add_correction(
                    description_context(original_item.get('description')),
                    f"{SKU_MAPPING_PREFIX}{final_sku}"
                )
                self._note(state, updates, f"Mapped SKU: {original_item.get('description')} -> {final_sku}")

        if is_blank(original.get('currency')) and not is_blank(final.get('currency')):
            self.store.update_vendor_default(vendor, 'currency', final['currency'])
            self._note(state, updates, f"Learned default currency: {final['currency']}")

        self.store.record_invoice(original)
        self.add_audit_entry(state, 'Memory persistence successful.')

        state['normalized_invoice'] = final
        state['proposed_corrections'] = []
        state['confidence_score'] = 1.0
        state['requires_human_review'] = False
        state['reasoning'] = "Feedback Persisted"
        state['status'] = 'LEARNED'

        logger.info(f"Learned {len(updates)} update(s) from invoice {original.get('id')}")
        return state

    def _note(self, state: InvoiceState, updates: List[str], message: str):
        updates.append(message)
        self.add_audit_entry(state, message)
