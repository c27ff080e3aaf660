"""
DECIDE Node - Score the result and decide whether a human must review it
"""
from typing import Any, Dict

from app.nodes.base_node import BaseNode
from core.config.config import config
from core.memory.pattern_store import PatternStore
from core.models.state import InvoiceState
from core.utils.helpers import is_blank
from core.utils.logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_REASONING = "Processed successfully."
MISSING_SERVICE_DATE_PENALTY = 0.3
LOW_CONFIDENCE_PENALTY = 0.2


class DecideNode(BaseNode):
    """
    DECIDE node: confidence score and review flag

    Penalties are cumulative; the reasoning is the message of the last
    penalty applied.
    """

    step = 'decide'

    def __init__(self, store: PatternStore, rules: Dict[str, Any]):
        super().__init__(name="DECIDE", store=store)
        self.service_date_vendors = set(rules.get('service_date_required_vendors', []))
        self.review_threshold = config.REVIEW_THRESHOLD
        self.low_confidence_threshold = config.LOW_CONFIDENCE_THRESHOLD

    def execute(self, state: InvoiceState) -> InvoiceState:
        normalized = state['normalized_invoice']
        corrections = state['proposed_corrections']

        confidence_score = 1.0
        reasoning = DEFAULT_REASONING

        if is_blank(normalized.get('serviceDate')) and normalized.get('vendorName') in self.service_date_vendors:
            confidence_score -= MISSING_SERVICE_DATE_PENALTY
            reasoning = "Missing Service Date."

        if any(c['confidence'] < self.low_confidence_threshold for c in corrections):
            confidence_score -= LOW_CONFIDENCE_PENALTY
            reasoning = "Low confidence corrections applied."

        requires_human_review = confidence_score < self.review_threshold

        state['confidence_score'] = confidence_score
        state['requires_human_review'] = requires_human_review
        state['reasoning'] = reasoning
        state['status'] = 'NEEDS_REVIEW' if requires_human_review else 'AUTO_APPROVED'

        self.add_audit_entry(
            state,
            f"Confidence {confidence_score:.2f} - "
            f"{'human review required' if requires_human_review else 'auto-approved'}: {reasoning}"
        )
        logger.info(
            f"Decision for invoice {state.get('invoice_id')}: score={confidence_score:.2f}, "
            f"review={requires_human_review}"
        )
        return state
