"""
Nested-fields invoice dialect

Some upstream extractors send

    {"invoiceId": ..., "vendor": ..., "fields": {"invoiceDate", "grossTotal",
     "currency", "lineItems", "serviceDate", "poNumber"}, "rawText": ...}

instead of the flat invoice shape. This module turns that into the flat
shape the memory workflow expects.
"""
from typing import Any, Dict

from core.utils.logging_config import get_logger

logger = get_logger(__name__)


# flat key -> key inside "fields"
NESTED_FIELD_MAP = {
    'date': 'invoiceDate',
    'totalAmount': 'grossTotal',
    'currency': 'currency',
    'lineItems': 'lineItems',
    'serviceDate': 'serviceDate',
    'poNumber': 'poNumber',
}


def is_nested_dialect(raw: Dict[str, Any]) -> bool:
    return isinstance(raw, dict) and isinstance(raw.get('fields'), dict)


def _first_present(*values):
    for value in values:
        if value is not None and value != '':
            return value
    return None


def translate_invoice(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate a nested-fields invoice into the flat invoice shape

    Values from the nested document win; flat keys already present are only
    used where the nested document has nothing. Every other top-level key
    except "fields" is kept as is. Flat inputs are returned unchanged.

    Args:
        raw: Invoice in either shape

    Returns:
        Flat invoice dict
    """
    if not is_nested_dialect(raw):
        return raw

    fields = raw['fields']
    invoice = {key: value for key, value in raw.items() if key != 'fields'}

    invoice['id'] = _first_present(raw.get('invoiceId'), raw.get('id'))
    invoice['vendorName'] = _first_present(raw.get('vendor'), raw.get('vendorName'))

    for flat_key, nested_key in NESTED_FIELD_MAP.items():
        value = _first_present(fields.get(nested_key), raw.get(flat_key))
        if value is not None:
            invoice[flat_key] = value

    invoice.setdefault('lineItems', [])

    logger.debug(f"Translated nested-fields invoice {invoice.get('id')} to flat shape")
    return invoice
