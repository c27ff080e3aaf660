"""
Record shapes exchanged with the memory agent

Invoices are plain dicts with camelCase keys; vendors may send extra keys,
which are carried through untouched.
"""
from typing import TypedDict, List, Dict, Optional, Any, Literal


CorrectionSource = Literal['vendor_memory', 'correction_memory', 'default_rule']
AuditStep = Literal['recall', 'apply', 'decide', 'learn']


class LineItem(TypedDict, total=False):
    description: str
    quantity: float
    price: float
    total: float
    unit: Optional[str]
    sku: Optional[str]


class Invoice(TypedDict, total=False):
    id: str
    vendorName: str
    date: str
    totalAmount: float
    currency: str
    lineItems: List[LineItem]
    rawText: Optional[str]
    skonto: Optional[str]
    poNumber: Optional[str]


class NormalizedInvoice(Invoice, total=False):
    serviceDate: Optional[str]
    dueDate: Optional[str]
    taxAmount: Optional[float]
    isDuplicate: bool


class ProposedCorrection(TypedDict):
    field: str  # dotted path, e.g. "lineItems[0].sku"
    originalValue: Any
    newValue: Any
    reason: str
    confidence: float
    source: CorrectionSource


class AuditEntry(TypedDict):
    step: AuditStep
    timestamp: str
    details: str


class ProcessingResult(TypedDict):
    normalizedInvoice: NormalizedInvoice
    proposedCorrections: List[ProposedCorrection]
    requiresHumanReview: bool
    reasoning: str
    confidenceScore: float
    memoryUpdates: List[str]
    auditTrail: List[AuditEntry]


# Pattern store documents

class VendorPattern(TypedDict):
    pattern: str  # keyword or regex anchor, e.g. "Leistungsdatum"
    confidence: float
    frequency: int
    lastSeen: str


class VendorMemory(TypedDict):
    vendorName: str
    patterns: Dict[str, VendorPattern]
    defaults: Dict[str, Any]


class CorrectionMemory(TypedDict):
    context: str  # e.g. "description=Seefracht"
    correction: str  # e.g. "map_sku_FREIGHT"
    confidence: float
    successCount: int
    failCount: int


class MemoryStoreDocument(TypedDict):
    vendors: Dict[str, VendorMemory]
    corrections: List[CorrectionMemory]
    processedInvoices: List[str]
    invoiceFingerprints: List[str]
