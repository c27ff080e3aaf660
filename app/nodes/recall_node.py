"""
RECALL Node - Normalize the invoice, age the memory and catch duplicates
"""
import copy

from app.nodes.base_node import BaseNode
from core.memory.pattern_store import PatternStore
from core.models.state import InvoiceState
from core.utils.logging_config import get_logger
from integrations.dialects.nested_fields import translate_invoice

logger = get_logger(__name__)


DUPLICATE_REASONING = "Duplicate Invoice Detected."
FINGERPRINT_DUPLICATE_REASONING = "Duplicate Invoice Detected (same vendor, date and amount as a known invoice)."


class RecallNode(BaseNode):
    """
    RECALL node: prepare the invoice and consult the duplicate indexes

    Responsibilities:
    - Translate dialect input to the flat invoice shape
    - Copy the invoice into the normalized invoice
    - Apply time decay to the whole pattern store
    - Short-circuit on a known invoice ID or fingerprint
    """

    step = 'recall'

    def __init__(self, store: PatternStore):
        super().__init__(name="RECALL", store=store)

    def execute(self, state: InvoiceState) -> InvoiceState:
        invoice = translate_invoice(state['invoice'])
        invoice.setdefault('lineItems', [])
        state['invoice'] = invoice
        state['invoice_id'] = invoice.get('id')
        state['normalized_invoice'] = copy.deepcopy(invoice)

        self.store.apply_decay()
        self.add_audit_entry(state, f"Fetching memory for vendor: {invoice.get('vendorName')}")

        if self.store.is_duplicate_by_id(invoice.get('id')):
            logger.warning(f"Invoice {invoice.get('id')} was already processed")
            state['duplicate_type'] = 'id'
            state['normalized_invoice']['isDuplicate'] = True
            state['proposed_corrections'].append({
                'field': 'id',
                'originalValue': invoice.get('id'),
                'newValue': invoice.get('id'),
                'reason': 'Duplicate ID detected',
                'confidence': 1.0,
                'source': 'default_rule',
            })
            state['confidence_score'] = 0.0
            state['requires_human_review'] = True
            state['reasoning'] = DUPLICATE_REASONING
            state['status'] = 'DUPLICATE'
            self.add_audit_entry(state, 'Flagged as duplicate.', step='decide')
            return state

        if self.store.is_duplicate_by_fingerprint(invoice):
            logger.warning(
                f"Invoice {invoice.get('id')} matches a known invoice from "
                f"{invoice.get('vendorName')} on {invoice.get('date')} for {invoice.get('totalAmount')}"
            )
            state['duplicate_type'] = 'fingerprint'
            state['normalized_invoice']['isDuplicate'] = True
            state['requires_human_review'] = True
            state['reasoning'] = FINGERPRINT_DUPLICATE_REASONING
            state['status'] = 'DUPLICATE'
            self.add_audit_entry(state, 'Flagged as possible duplicate (vendor, date and amount match).', step='decide')
            return state

        state['duplicate_type'] = None
        state['status'] = 'RECALLED'
        return state
