"""
Documents -- fiscal document values and lifecycle rules.

Responsibility:
    Defines the immutable shapes that flow through the kernel (Party,
    LineItem, Document) and the lifecycle rules that apply whenever a
    caller asks for a state change: which transitions exist, when amounts
    are frozen, how payments move the status, and how a credit note
    compensates an issued document.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    The record store persists these values; this module never does.

Invariants enforced:
    - Lifecycle: draft -> validated -> sent -> (partial_paid ->) paid;
      validated | sent | partial_paid -> cancelled.  paid and cancelled
      are terminal.
    - A permanent number is set exactly once, on the draft -> validated
      edge, and never changes afterwards.
    - Monetary fields and lines of a non-draft document are frozen.
    - Voiding is done by a separate credit note, never by deletion or
      renumbering.

Failure modes:
    - InvalidStatusTransitionError for any edge not listed above.
    - DocumentImmutableError when recomputing totals of a frozen document.
    - PaymentNotAllowedError for payments before the document was sent.
    - CreditNoteNotAllowedError when the original cannot be credited.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from invoice_kernel.domain.money import (
    ZERO,
    LineAmounts,
    compute_line,
    document_totals,
    to_decimal,
)
from invoice_kernel.exceptions import (
    CreditNoteNotAllowedError,
    DocumentImmutableError,
    InvalidStatusTransitionError,
    PaymentNotAllowedError,
)


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    SENT = "sent"
    PARTIAL_PAID = "partial_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


class DocumentType(str, Enum):
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"


class OperationType(str, Enum):
    """Nature of the operation, mandatory on French invoices from 2026."""

    GOODS = "goods"
    SERVICES = "services"
    MIXED = "mixed"


ALLOWED_TRANSITIONS: Mapping[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.DRAFT: frozenset({DocumentStatus.VALIDATED}),
    DocumentStatus.VALIDATED: frozenset({DocumentStatus.SENT, DocumentStatus.CANCELLED}),
    DocumentStatus.SENT: frozenset({
        DocumentStatus.PARTIAL_PAID,
        DocumentStatus.PAID,
        DocumentStatus.CANCELLED,
    }),
    DocumentStatus.PARTIAL_PAID: frozenset({
        DocumentStatus.PARTIAL_PAID,
        DocumentStatus.PAID,
        DocumentStatus.CANCELLED,
    }),
    DocumentStatus.PAID: frozenset(),
    DocumentStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({DocumentStatus.PAID, DocumentStatus.CANCELLED})
PAYABLE_STATUSES = frozenset({DocumentStatus.SENT, DocumentStatus.PARTIAL_PAID})
CREDITABLE_STATUSES = frozenset({
    DocumentStatus.VALIDATED,
    DocumentStatus.SENT,
    DocumentStatus.PARTIAL_PAID,
    DocumentStatus.PAID,
})


@dataclass(frozen=True)
class Party:
    """Issuer or customer of a document."""

    name: str | None = None
    address: str | None = None
    siret: str | None = None
    vat_number: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str = "FR"


@dataclass(frozen=True)
class LineItem:
    """
    One line of a document.

    ``tax_amount`` and ``total_including_tax`` are the stored values the
    compliance validator reconciles against; ``amounts()`` is the source
    of truth.
    """

    description: str
    quantity: Decimal
    unit_price_excluding_tax: Decimal
    tax_rate: Decimal
    discount_rate: Decimal = Decimal("0")
    tax_amount: Decimal | None = None
    total_including_tax: Decimal | None = None
    unit: str | None = None
    product_code: str | None = None

    def __post_init__(self) -> None:
        for name in ("quantity", "unit_price_excluding_tax", "tax_rate", "discount_rate"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        for name in ("tax_amount", "total_including_tax"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, to_decimal(value))

    def amounts(self) -> LineAmounts:
        return compute_line(self)

    def with_computed_amounts(self) -> LineItem:
        computed = self.amounts()
        return replace(
            self,
            tax_amount=computed.tax_amount,
            total_including_tax=computed.total_including_tax,
        )


@dataclass(frozen=True)
class Document:
    """
    A fiscal document (invoice or credit note).

    Dates may be ``date`` objects or ISO strings as read from the record
    store; the compliance validator reports unparseable values.
    """

    provisional_id: str
    issuer: Party
    customer: Party
    document_date: date | str | None = None
    payment_due_date: date | str | None = None
    operation_type: OperationType | str | None = None
    subtotal_excluding_tax: Decimal = ZERO
    total_tax_amount: Decimal = ZERO
    total_including_tax: Decimal = ZERO
    status: DocumentStatus = DocumentStatus.DRAFT
    document_type: DocumentType = DocumentType.INVOICE
    permanent_number: str | None = None
    original_document_id: str | None = None
    credit_note_reason: str | None = None
    validated_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    def __post_init__(self) -> None:
        for name in ("subtotal_excluding_tax", "total_tax_amount", "total_including_tax"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))
        object.__setattr__(self, "status", DocumentStatus(self.status))
        object.__setattr__(self, "document_type", DocumentType(self.document_type))

    @property
    def is_credit_note(self) -> bool:
        return self.document_type == DocumentType.CREDIT_NOTE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_totals(self, lines: Iterable[LineItem]) -> Document:
        """Copy with totals recomputed from ``lines``; drafts only."""
        assert_mutable(self)
        totals = document_totals(lines)
        return replace(
            self,
            subtotal_excluding_tax=totals.subtotal_excluding_tax,
            total_tax_amount=totals.total_tax_amount,
            total_including_tax=totals.total_including_tax,
        )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def is_terminal(status: DocumentStatus) -> bool:
    return DocumentStatus(status) in TERMINAL_STATUSES


def can_transition(from_status: DocumentStatus, to_status: DocumentStatus) -> bool:
    return DocumentStatus(to_status) in ALLOWED_TRANSITIONS[DocumentStatus(from_status)]


def _require_edge(document: Document, to_status: DocumentStatus) -> None:
    if not can_transition(document.status, to_status):
        raise InvalidStatusTransitionError(
            document.provisional_id, document.status.value, DocumentStatus(to_status).value
        )


def assert_mutable(document: Document) -> None:
    """Raise unless the document's amounts and lines may still change."""
    if document.status != DocumentStatus.DRAFT:
        raise DocumentImmutableError(document.provisional_id, document.status.value)


def mark_validated(document: Document, permanent_number: str, at: datetime) -> Document:
    """The draft -> validated edge, which is where the permanent number lands."""
    _require_edge(document, DocumentStatus.VALIDATED)
    if document.permanent_number is not None:
        raise DocumentImmutableError(document.provisional_id, document.status.value)
    return replace(
        document,
        status=DocumentStatus.VALIDATED,
        permanent_number=permanent_number,
        validated_at=at,
    )


def transition(
    document: Document,
    to_status: DocumentStatus,
    *,
    at: datetime | None = None,
    reason: str | None = None,
) -> Document:
    """
    Move a numbered document along its lifecycle.

    Validation goes through ``mark_validated`` since it needs a number.
    """
    to_status = DocumentStatus(to_status)
    if to_status == DocumentStatus.VALIDATED:
        raise InvalidStatusTransitionError(
            document.provisional_id, document.status.value, to_status.value
        )
    _require_edge(document, to_status)

    if to_status == DocumentStatus.CANCELLED:
        return replace(
            document,
            status=to_status,
            cancelled_at=at,
            cancellation_reason=reason,
        )
    return replace(document, status=to_status)


def status_after_payment(document: Document, total_paid: Any) -> DocumentStatus:
    """
    Status implied by the cumulative amount paid.

    Only sent or partially paid documents accept payments.
    """
    if document.status not in PAYABLE_STATUSES:
        raise PaymentNotAllowedError(document.provisional_id, document.status.value)

    paid = to_decimal(total_paid)
    if paid >= document.total_including_tax:
        return DocumentStatus.PAID
    if paid > 0:
        return DocumentStatus.PARTIAL_PAID
    return document.status


def record_payment(document: Document, total_paid: Any) -> Document:
    new_status = status_after_payment(document, total_paid)
    if new_status == document.status:
        return document
    return transition(document, new_status)


# ---------------------------------------------------------------------------
# Credit notes
# ---------------------------------------------------------------------------


def build_credit_note(
    original: Document,
    lines: Sequence[LineItem],
    *,
    credit_note_id: str,
    reason: str,
    issue_date: date,
    quantities: Mapping[int, Any] | None = None,
) -> tuple[Document, tuple[LineItem, ...]]:
    """
    Draft credit note compensating ``original``.

    ``quantities`` maps line indexes of ``original`` to the quantity to
    credit; when given, only those lines are credited.  Amounts on a credit
    note are positive: its type carries the sign.
    """
    if original.is_credit_note:
        raise CreditNoteNotAllowedError(original.provisional_id, "document is a credit note")
    if original.status not in CREDITABLE_STATUSES or original.permanent_number is None:
        raise CreditNoteNotAllowedError(
            original.provisional_id,
            f"only numbered documents can be credited (status {original.status.value})",
        )

    if quantities:
        credited = []
        for index, quantity in sorted(quantities.items()):
            if not 0 <= index < len(lines):
                raise CreditNoteNotAllowedError(
                    original.provisional_id, f"no line at index {index}"
                )
            line = lines[index]
            quantity = to_decimal(quantity)
            if quantity <= 0 or quantity > line.quantity:
                raise CreditNoteNotAllowedError(
                    original.provisional_id,
                    f"line {index}: credited quantity {quantity} outside (0, {line.quantity}]",
                )
            credited.append(replace(line, quantity=quantity))
    else:
        credited = list(lines)

    credit_lines = tuple(line.with_computed_amounts() for line in credited)
    totals = document_totals(credit_lines)

    credit_note = Document(
        provisional_id=credit_note_id,
        issuer=original.issuer,
        customer=original.customer,
        document_date=issue_date,
        payment_due_date=issue_date,
        operation_type=original.operation_type,
        subtotal_excluding_tax=totals.subtotal_excluding_tax,
        total_tax_amount=totals.total_tax_amount,
        total_including_tax=totals.total_including_tax,
        document_type=DocumentType.CREDIT_NOTE,
        original_document_id=original.provisional_id,
        credit_note_reason=reason,
    )
    return credit_note, credit_lines
