"""
Base node class for LangGraph workflow nodes
"""
from typing import Dict, Any, Optional
from abc import ABC, abstractmethod
from datetime import datetime, timezone
import uuid

from core.config.config import config
from core.memory.pattern_store import PatternStore
from core.models.state import InvoiceState
from core.utils.error_handler import error_handler
from core.utils.helpers import utc_now_iso
from core.utils.logging_config import get_logger

logger = get_logger(__name__)


class BaseNode(ABC):
    """
    Abstract base class for all workflow nodes

    Each node should:
    1. Inherit from this class
    2. Implement the execute() method
    3. Update the state and return it
    """

    # Audit trail step reported by this node (recall, apply, decide, learn)
    step: str = None

    def __init__(self, name: str, store: PatternStore):
        """
        Initialize base node

        Args:
            name: Node name (e.g., "RECALL", "APPLY")
            store: Pattern store the node reads and mutates
        """
        self.name = name
        self.store = store

    def __call__(self, state: InvoiceState) -> InvoiceState:
        """
        Make the node callable for LangGraph

        Args:
            state: Current workflow state

        Returns:
            Updated workflow state
        """
        return self.run(state)

    def run(self, state: InvoiceState) -> InvoiceState:
        """
        Run the node with error handling and audit logging

        Args:
            state: Current workflow state

        Returns:
            Updated workflow state
        """
        logger.info(f"Starting node: {self.name} (invoice {state.get('invoice_id')})")
        start_time = datetime.now(timezone.utc)

        try:
            updated_state = self.execute(state)
            updated_state['updated_at'] = utc_now_iso()

            self._log_audit(
                state=updated_state,
                action=f"{self.name}_execute",
                result="success",
                details={
                    'status': updated_state.get('status'),
                    'duration_ms': (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
                }
            )

            logger.info(f"Completed node: {self.name}")
            return updated_state

        except Exception as e:
            error_info = error_handler.handle_error(error=e, node=self.name, state=state)

            self._log_audit(
                state=state,
                action=f"{self.name}_execute",
                result="failed",
                details={
                    'error': error_info,
                    'duration_ms': (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
                }
            )

            # Re-raise if unrecoverable
            if not error_info.get('recoverable', True):
                raise

            # Nothing the node produced can be trusted; hand the invoice to a human
            state['status'] = 'ERROR'
            state['error_info'] = error_info
            state['confidence_score'] = 0.0
            state['requires_human_review'] = True
            state['reasoning'] = f"Processing error in {self.name}: {e}"
            return state

    @abstractmethod
    def execute(self, state: InvoiceState) -> InvoiceState:
        """
        Execute the node logic (must be implemented by subclasses)

        Args:
            state: Current workflow state

        Returns:
            Updated workflow state
        """
        pass

    def add_audit_entry(self, state: InvoiceState, details: str, step: str = None):
        """Append a {step, timestamp, details} entry to the state's audit trail"""
        state.setdefault('audit_trail', []).append({
            'step': step or self.step,
            'timestamp': utc_now_iso(),
            'details': details,
        })

    def _log_audit(
        self,
        state: InvoiceState,
        action: str,
        result: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Log audit entry for this node's execution

        Args:
            state: Current workflow state
            action: Action performed
            result: Result of the action
            details: Additional details
        """
        if not config.AUDIT_DB_ENABLED:
            return

        from core.models.database import get_session, AuditLog

        session = None
        try:
            session = get_session()
            audit_entry = AuditLog(
                id=str(uuid.uuid4()),
                invoice_id=str(state.get('invoice_id') or 'unknown'),
                node_name=self.name,
                action=action,
                result=result,
                details=details or {}
            )
            session.add(audit_entry)
            session.commit()
        except Exception as e:
            if session is not None:
                session.rollback()
            logger.error(f"Failed to log audit entry: {e}")
        finally:
            if session is not None:
                session.close()
