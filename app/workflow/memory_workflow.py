"""
LangGraph Workflow - recall -> apply -> decide orchestration
"""
from typing import Any, Dict, Literal

from langgraph.graph import StateGraph, END

from app.nodes.recall_node import RecallNode
from app.nodes.apply_node import ApplyNode
from app.nodes.decide_node import DecideNode
from core.memory.pattern_store import PatternStore
from core.models.state import InvoiceState
from core.utils.logging_config import get_logger

logger = get_logger(__name__)


# Conditional edge functions
def after_recall(state: InvoiceState) -> Literal["apply", "end"]:
    """
    Stop after RECALL for duplicates and failures

    Args:
        state: Current workflow state

    Returns:
        "end" if the invoice is a duplicate or recall failed, "apply" otherwise
    """
    status = state.get('status')

    if status == 'DUPLICATE':
        logger.info(f"Duplicate ({state.get('duplicate_type')}) - skipping APPLY and DECIDE")
        return "end"
    if status == 'ERROR':
        logger.info("RECALL failed - routing to END")
        return "end"
    return "apply"


def after_apply(state: InvoiceState) -> Literal["decide", "end"]:
    """
    Skip DECIDE when APPLY failed

    Args:
        state: Current workflow state

    Returns:
        "end" on error, "decide" otherwise
    """
    if state.get('status') == 'ERROR':
        logger.info("APPLY failed - routing to END")
        return "end"
    return "decide"


def create_workflow(store: PatternStore, rules: Dict[str, Any]) -> StateGraph:
    """
    Create the memory workflow graph

    Args:
        store: Pattern store shared by all nodes
        rules: Extraction and decision rules (see core/config/rules.yaml)

    Returns:
        Uncompiled StateGraph
    """
    logger.info("Building memory workflow")

    workflow = StateGraph(InvoiceState)

    workflow.add_node("recall", RecallNode(store))
    workflow.add_node("apply", ApplyNode(store, rules))
    workflow.add_node("decide", DecideNode(store, rules))

    workflow.set_entry_point("recall")

    workflow.add_conditional_edges(
        "recall",
        after_recall,
        {
            "apply": "apply",
            "end": END
        }
    )
    workflow.add_conditional_edges(
        "apply",
        after_apply,
        {
            "decide": "decide",
            "end": END
        }
    )
    workflow.add_edge("decide", END)

    return workflow


def get_compiled_workflow(store: PatternStore, rules: Dict[str, Any]):
    """
    Get the compiled memory workflow

    Args:
        store: Pattern store shared by all nodes
        rules: Extraction and decision rules

    Returns:
        Compiled workflow ready for invoke()
    """
    compiled_workflow = create_workflow(store, rules).compile()
    logger.info("Memory workflow compiled")
    return compiled_workflow
