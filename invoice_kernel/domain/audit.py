"""
Audit entries handed back to the caller.

The kernel never writes the audit log.  After a numbering, validation or
lifecycle primitive succeeds (or validation fails), it returns the
``AuditEntry`` the caller is expected to append, so the recorded number,
codes and totals are exactly what the kernel produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from invoice_kernel.domain.documents import Document
from invoice_kernel.domain.validation import ValidationResult


class AuditEventType(str, Enum):
    CREATED = "created"
    VALIDATED = "validated"
    VALIDATION_FAILED = "validation_failed"
    SENT = "sent"
    PAYMENT_RECEIVED = "payment_received"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AuditEntry:
    document_id: str
    event_type: AuditEventType
    description: str
    timestamp: datetime
    document_number: str | None = None
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))


def validated_entry(document: Document, sequence: int, at: datetime) -> AuditEntry:
    kind = "Credit note" if document.is_credit_note else "Invoice"
    return AuditEntry(
        document_id=document.provisional_id,
        event_type=AuditEventType.VALIDATED,
        description=f"{kind} validated with number {document.permanent_number}",
        timestamp=at,
        document_number=document.permanent_number,
        details={
            "sequence": sequence,
            "total_including_tax": str(document.total_including_tax),
        },
    )


def validation_failed_entry(
    document: Document, result: ValidationResult, at: datetime
) -> AuditEntry:
    return AuditEntry(
        document_id=document.provisional_id,
        event_type=AuditEventType.VALIDATION_FAILED,
        description=f"Validation refused: {len(result.errors)} error(s)",
        timestamp=at,
        details={
            "errors": tuple(result.error_codes()),
            "warnings": tuple(result.warning_codes()),
        },
    )


def credit_note_created_entry(
    credit_note: Document, original: Document, at: datetime
) -> AuditEntry:
    return AuditEntry(
        document_id=credit_note.provisional_id,
        event_type=AuditEventType.CREATED,
        description=(
            f"Credit note {credit_note.permanent_number} issued for "
            f"{original.permanent_number}: {credit_note.credit_note_reason}"
        ),
        timestamp=at,
        document_number=credit_note.permanent_number,
        details={"original_document_id": original.provisional_id},
    )


def cancelled_entry(
    document: Document, at: datetime, *, credit_note: Document | None = None
) -> AuditEntry:
    if credit_note is not None:
        description = (
            f"Cancelled by credit note {credit_note.permanent_number}: "
            f"{document.cancellation_reason}"
        )
    else:
        description = f"Cancelled: {document.cancellation_reason}"
    return AuditEntry(
        document_id=document.provisional_id,
        event_type=AuditEventType.CANCELLED,
        description=description,
        timestamp=at,
        document_number=document.permanent_number,
    )


def payment_entry(
    document: Document, amount: Any, total_paid: Any, at: datetime
) -> AuditEntry:
    return AuditEntry(
        document_id=document.provisional_id,
        event_type=AuditEventType.PAYMENT_RECEIVED,
        description=(
            f"Payment of {amount} received, total paid {total_paid} / "
            f"{document.total_including_tax}"
        ),
        timestamp=at,
        document_number=document.permanent_number,
        details={"status": document.status.value},
    )
