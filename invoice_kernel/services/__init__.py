"""Kernel services - the imperative shell around the pure domain."""

from invoice_kernel.services.finalization_service import (
    CancellationResult,
    DocumentFinalizer,
    FinalizationResult,
    FinalizationStatus,
)
from invoice_kernel.services.numbering_service import (
    CounterSnapshot,
    IssuedNumber,
    NumberingAuthority,
    SequenceAuditReport,
    allocate_document_number,
)

__all__ = [
    "CancellationResult",
    "CounterSnapshot",
    "DocumentFinalizer",
    "FinalizationResult",
    "FinalizationStatus",
    "IssuedNumber",
    "NumberingAuthority",
    "SequenceAuditReport",
    "allocate_document_number",
]
