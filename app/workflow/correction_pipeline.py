"""
Correction pipeline - entry points for processing and learning
"""
from typing import Any, Dict, Optional

from app.nodes.learn_node import LearnNode
from app.workflow.memory_workflow import get_compiled_workflow
from core.config.config import config
from core.memory.pattern_store import PatternStore
from core.models.invoice import MemoryStoreDocument, ProcessingResult
from core.utils.logging_config import get_logger
from core.utils.state_manager import state_manager

logger = get_logger(__name__)


class CorrectionPipeline:
    """
    Processes invoices against a pattern store and learns from reviews

    The store handle is explicit: one pipeline, one store. Whole process and
    learn passes hold the store lock, so concurrent callers are serialized.
    """

    def __init__(self, store: PatternStore, rules: Optional[Dict[str, Any]] = None):
        """
        Args:
            store: Pattern store to read and update
            rules: Extraction and decision rules, defaults to rules.yaml
        """
        self.store = store
        self.rules = rules if rules is not None else config.load_rules_config()
        self.workflow = get_compiled_workflow(store, self.rules)
        self.learn_node = LearnNode(store, self.rules)

    def process(self, invoice: Dict[str, Any]) -> ProcessingResult:
        """
        Run recall -> apply -> decide for one invoice

        Args:
            invoice: Invoice in flat or nested-fields shape

        Returns:
            ProcessingResult
        """
        initial_state = state_manager.create_initial_state(invoice)
        logger.info(f"Processing invoice {initial_state.get('invoice_id')}")

        with self.store.lock:
            final_state = self.workflow.invoke(initial_state)

        logger.debug(f"Final state summary: {state_manager.get_state_summary(final_state)}")
        return state_manager.to_processing_result(final_state)

    def learn(self, original_invoice: Dict[str, Any], final_invoice: Dict[str, Any]) -> ProcessingResult:
        """
        Learn from a human-approved version of an invoice

        Args:
            original_invoice: Invoice as it was submitted to process()
            final_invoice: Invoice after human review

        Returns:
            ProcessingResult with the learned updates in memoryUpdates
        """
        state = state_manager.create_learning_state(original_invoice, final_invoice)
        logger.info(f"Learning from correction for invoice {state.get('invoice_id')}")

        with self.store.lock:
            final_state = self.learn_node.run(state)

        return state_manager.to_processing_result(final_state)

    def record_resolution(self, context: str, success: bool) -> bool:
        """Report whether a correction from memory was right"""
        return self.store.record_resolution(context, success)

    def memory_snapshot(self) -> MemoryStoreDocument:
        return self.store.snapshot()

    def clear_memory(self):
        self.store.clear_memory()


def create_pipeline(memory_file_path: str = None) -> CorrectionPipeline:
    """
    Build a pipeline backed by a file pattern store

    Args:
        memory_file_path: Store location, defaults to MEMORY_FILE_PATH

    Returns:
        CorrectionPipeline
    """
    return CorrectionPipeline(PatternStore(memory_file_path))
