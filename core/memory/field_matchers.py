"""
Value-shape matchers for learned field anchors

A learned vendor pattern is only an anchor (e.g. "Leistungsdatum"). The
matcher for the field decides what value shape is expected next to it and
how the captured text becomes the field value.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.utils.logging_config import get_logger

logger = get_logger(__name__)


DATE_SHAPE = r'(\d{2}\.\d{2}\.\d{4}|\d{4}-\d{2}-\d{2})'
PERCENT_SHAPE = r'(\d+)\s*%'
PO_SHAPE = r'([A-Z0-9-]+)'


@dataclass(frozen=True)
class FieldMatcher:
    """How to find a field value around a learned anchor"""
    field: str
    build_regex: Callable[[str], str]
    format_value: Callable[[str], str]
    reason: Callable[[str], str]


def _anchor_then(shape: str) -> Callable[[str], str]:
    return lambda anchor: rf'{anchor}\s*[:]?\s*{shape}'


def _skonto_regex(anchor: str) -> str:
    # "2% Skonto" or "Skonto: 2%"
    return rf'{PERCENT_SHAPE}\s*{anchor}|{anchor}\s*[:]?\s*{PERCENT_SHAPE}'


FIELD_MATCHERS: Dict[str, FieldMatcher] = {
    'serviceDate': FieldMatcher(
        field='serviceDate',
        build_regex=_anchor_then(DATE_SHAPE),
        format_value=lambda value: value,
        reason=lambda anchor: f"Extracted using learned pattern '{anchor}'",
    ),
    'skonto': FieldMatcher(
        field='skonto',
        build_regex=_skonto_regex,
        format_value=lambda value: f"{value}%",
        reason=lambda anchor: f"Extracted Skonto using learned pattern '{anchor}'",
    ),
    'poNumber': FieldMatcher(
        field='poNumber',
        build_regex=_anchor_then(PO_SHAPE),
        format_value=lambda value: value,
        reason=lambda anchor: f"Matched PO based on learned pattern '{anchor}'",
    ),
}


def extract_field(field: str, anchor: str, text: Optional[str]) -> Optional[str]:
    """
    Search text for a field value next to a learned anchor

    Args:
        field: Field name (must be in FIELD_MATCHERS)
        anchor: Learned keyword or regex anchor
        text: Raw invoice text

    Returns:
        Formatted field value, or None if there is no match
    """
    matcher = FIELD_MATCHERS.get(field)
    if matcher is None or not text or not anchor:
        return None

    try:
        match = re.search(matcher.build_regex(anchor), text, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Invalid learned pattern '{anchor}' for {field}: {e}")
        return None

    if not match:
        return None

    captured = next((group for group in match.groups() if group), None)
    if captured is None:
        return None
    return matcher.format_value(captured)
