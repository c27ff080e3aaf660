"""
Helper utilities for common operations
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


SECONDS_PER_DAY = 60 * 60 * 24


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return utc_now().isoformat()


def parse_timestamp(value: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp

    Accepts a trailing 'Z' and treats naive timestamps as UTC.

    Args:
        value: Timestamp string

    Returns:
        Timezone-aware datetime or None if parsing fails
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_between(earlier: datetime, later: datetime) -> float:
    """Fractional number of days from earlier to later"""
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def format_amount(amount: Any) -> str:
    """
    Render an amount for use in keys

    Integral floats drop the fractional part so that 2400 and 2400.0
    produce the same key.

    Args:
        amount: Numeric amount (or None)

    Returns:
        String form of the amount
    """
    if amount is None:
        return ''
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def invoice_fingerprint(invoice: Dict[str, Any]) -> str:
    """
    Build the semantic duplicate key for an invoice

    Args:
        invoice: Invoice record

    Returns:
        "vendorName|date|totalAmount"
    """
    vendor = invoice.get('vendorName') or ''
    date = invoice.get('date') or ''
    return f"{vendor}|{date}|{format_amount(invoice.get('totalAmount'))}"


def is_blank(value: Any) -> bool:
    """True for None, empty strings and other empty values"""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False
