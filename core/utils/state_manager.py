"""
State management utilities for workflow state operations
"""
from typing import Dict, Any
import copy

from core.models.invoice import ProcessingResult
from core.models.state import InvoiceState
from core.utils.helpers import utc_now_iso


class StateManager:
    """
    Utility class for managing workflow state
    """

    @staticmethod
    def create_initial_state(invoice: Dict[str, Any]) -> InvoiceState:
        """
        Create initial workflow state for processing an invoice

        Args:
            invoice: Incoming invoice (flat or nested-fields shape)

        Returns:
            Initial InvoiceState
        """
        now = utc_now_iso()
        invoice = copy.deepcopy(invoice)
        return {
            'invoice_id': invoice.get('id') or invoice.get('invoiceId'),
            'invoice': invoice,
            'normalized_invoice': {},
            'duplicate_type': None,
            'proposed_corrections': [],
            'confidence_score': 1.0,
            'requires_human_review': False,
            'reasoning': "Processed successfully.",
            'memory_updates': [],
            'audit_trail': [],
            'status': 'PENDING',
            'error_info': None,
            'created_at': now,
            'updated_at': now
        }

    @staticmethod
    def create_learning_state(original: Dict[str, Any], final: Dict[str, Any]) -> InvoiceState:
        """
        Create workflow state for learning from a reviewed invoice

        Args:
            original: Invoice as first submitted
            final: Human-approved version of the invoice

        Returns:
            Initial InvoiceState for the LEARN node
        """
        state = StateManager.create_initial_state(original)
        state['final_invoice'] = copy.deepcopy(final)
        return state

    @staticmethod
    def to_processing_result(state: InvoiceState) -> ProcessingResult:
        """
        Build the caller-facing result from a finished workflow state

        Args:
            state: Final workflow state

        Returns:
            ProcessingResult dict
        """
        return {
            'normalizedInvoice': state.get('normalized_invoice') or state.get('invoice') or {},
            'proposedCorrections': state.get('proposed_corrections', []),
            'requiresHumanReview': state.get('requires_human_review', False),
            'reasoning': state.get('reasoning', ''),
            'confidenceScore': state.get('confidence_score', 0.0),
            'memoryUpdates': state.get('memory_updates', []),
            'auditTrail': state.get('audit_trail', [])
        }

    @staticmethod
    def get_state_summary(state: InvoiceState) -> Dict[str, Any]:
        """
        Get a summary of the current state

        Args:
            state: Current state

        Returns:
            Summary dictionary
        """
        normalized = state.get('normalized_invoice') or {}
        return {
            'invoice_id': state.get('invoice_id'),
            'status': state.get('status'),
            'vendor_name': normalized.get('vendorName'),
            'total_amount': normalized.get('totalAmount'),
            'duplicate_type': state.get('duplicate_type'),
            'corrections': len(state.get('proposed_corrections', [])),
            'confidence_score': state.get('confidence_score'),
            'requires_human_review': state.get('requires_human_review'),
            'created_at': state.get('created_at'),
            'updated_at': state.get('updated_at')
        }


# Create singleton instance
state_manager = StateManager()
