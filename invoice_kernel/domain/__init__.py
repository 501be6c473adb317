"""
Pure domain layer.

Identifiers, VAT arithmetic, document lifecycle, compliance checks and
number formatting, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from invoice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoice_kernel.domain.compliance import (
    DEFAULT_POLICY,
    CompliancePolicy,
    validate_document,
    validate_document_number,
    validate_draft,
)
from invoice_kernel.domain.documents import (
    Document,
    DocumentStatus,
    DocumentType,
    LineItem,
    OperationType,
    Party,
)
from invoice_kernel.domain.identifiers import validate_siren, validate_siret
from invoice_kernel.domain.money import (
    DocumentTotals,
    LineAmounts,
    TaxBreakdownEntry,
    document_totals,
    round2,
    tax_breakdown,
)
from invoice_kernel.domain.numbering import (
    DEFAULT_NUMBER_FORMAT,
    NumberFormat,
    YearFormat,
    extract_sequence,
    find_gaps,
    format_document_number,
)
from invoice_kernel.domain.tax_identifiers import derive_french_vat, validate_vat
from invoice_kernel.domain.validation import (
    Severity,
    ValidationCode,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Documents
    "Document",
    "DocumentStatus",
    "DocumentType",
    "LineItem",
    "OperationType",
    "Party",
    # Identifiers
    "validate_siren",
    "validate_siret",
    "validate_vat",
    "derive_french_vat",
    # Money
    "DocumentTotals",
    "LineAmounts",
    "TaxBreakdownEntry",
    "document_totals",
    "round2",
    "tax_breakdown",
    # Compliance
    "CompliancePolicy",
    "DEFAULT_POLICY",
    "Severity",
    "ValidationCode",
    "ValidationIssue",
    "ValidationResult",
    "validate_document",
    "validate_document_number",
    "validate_draft",
    # Numbering
    "DEFAULT_NUMBER_FORMAT",
    "NumberFormat",
    "YearFormat",
    "extract_sequence",
    "find_gaps",
    "format_document_number",
]
