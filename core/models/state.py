"""
State schema for the memory agent workflow
"""
from typing import TypedDict, List, Dict, Optional, Any

from core.models.invoice import (
    Invoice,
    NormalizedInvoice,
    ProposedCorrection,
    AuditEntry,
)


class InvoiceState(TypedDict, total=False):
    """
    Complete state schema for one pass through the memory workflow.
    Each node updates specific fields in this state.
    """

    # Input
    invoice_id: Optional[str]
    invoice: Invoice

    # RECALL node outputs
    normalized_invoice: NormalizedInvoice
    duplicate_type: Optional[str]  # "id", "fingerprint" or None

    # APPLY node outputs
    proposed_corrections: List[ProposedCorrection]

    # DECIDE node outputs
    confidence_score: float
    requires_human_review: bool
    reasoning: str

    # LEARN node input/outputs
    final_invoice: NormalizedInvoice
    memory_updates: List[str]

    # Audit
    audit_trail: List[AuditEntry]

    # Status / errors
    status: str
    error_info: Optional[Dict[str, Any]]

    # Metadata
    created_at: Optional[str]
    updated_at: Optional[str]
