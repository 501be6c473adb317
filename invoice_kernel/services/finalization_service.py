"""
DocumentFinalizer -- validate, number and freeze a draft document.

Responsibility:
    Runs the finalization path of a fiscal document: compute totals,
    check compliance, and only when the document is clean obtain a
    permanent number from the NumberingAuthority and move it to
    ``validated``.  Also issues the compensating credit note that cancels
    a numbered document.

Architecture position:
    Kernel > Services -- imperative shell.
    Calls the pure domain (compliance, documents, money, audit) and the
    NumberingAuthority.  Persisting documents and audit entries is left to
    the caller; the finalizer returns what should be written.

Invariants enforced:
    - A document with validation errors never consumes a number.
    - Only drafts are finalized; a number is set once and never changes.
    - Totals written to the validated document come from the tax
      breakdown of its lines.
    - A numbered document is only voided by a credit note, itself
      numbered from the same organization counter.

Failure modes:
    - InvalidStatusTransitionError: document is not a draft.
    - Everything NumberingAuthority.issue_next raises, unchanged.
    - CreditNoteNotAllowedError / InvalidStatusTransitionError when the
      original cannot be credited or cancelled.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from invoice_kernel.domain.audit import (
    AuditEntry,
    cancelled_entry,
    credit_note_created_entry,
    validated_entry,
    validation_failed_entry,
)
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.compliance import (
    DEFAULT_POLICY,
    CompliancePolicy,
    validate_document,
)
from invoice_kernel.domain.documents import (
    Document,
    DocumentStatus,
    LineItem,
    build_credit_note,
    can_transition,
    mark_validated,
    transition,
)
from invoice_kernel.domain.money import TaxBreakdownEntry, tax_breakdown
from invoice_kernel.domain.validation import ValidationResult
from invoice_kernel.exceptions import InvalidStatusTransitionError
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.services.numbering_service import IssuedNumber, NumberingAuthority

logger = get_logger("services.finalization")


class FinalizationStatus(str, Enum):
    FINALIZED = "finalized"
    VALIDATION_FAILED = "validation_failed"


@dataclass(frozen=True)
class FinalizationResult:
    """
    Outcome of one finalization attempt.

    On VALIDATION_FAILED, ``document`` is the unchanged draft and
    ``issued`` is None.
    """

    status: FinalizationStatus
    document: Document
    lines: tuple[LineItem, ...]
    validation: ValidationResult
    audit_entries: tuple[AuditEntry, ...]
    breakdown: tuple[TaxBreakdownEntry, ...] = field(default_factory=tuple)
    issued: IssuedNumber | None = None

    @property
    def is_success(self) -> bool:
        return self.status == FinalizationStatus.FINALIZED


@dataclass(frozen=True)
class CancellationResult:
    original: Document
    credit_note: FinalizationResult
    audit_entries: tuple[AuditEntry, ...]

    @property
    def is_success(self) -> bool:
        return self.credit_note.is_success


class DocumentFinalizer:
    """
    Turns drafts into numbered, frozen documents.

    Contract:
        ``finalize`` never commits.  The counter increment and the ledger
        row are flushed in the caller's transaction, so the caller persists
        the returned document in that same transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: CompliancePolicy = DEFAULT_POLICY,
    ):
        self._clock = clock or SystemClock()
        self._policy = policy
        self._numbering = NumberingAuthority(session, self._clock)

    def finalize(
        self,
        document: Document,
        lines: Sequence[LineItem],
        organization_id: str,
    ) -> FinalizationResult:
        """
        Validate ``document`` and, when clean, give it its permanent number.

        Lines are priced by the calculator and the document totals are
        recomputed from them before validation, so the stored amounts the
        validator reconciles are the calculator's.
        """
        if document.status != DocumentStatus.DRAFT:
            raise InvalidStatusTransitionError(
                document.provisional_id,
                document.status.value,
                DocumentStatus.VALIDATED.value,
            )

        with LogContext.bind(
            organization_id=organization_id, document_id=document.provisional_id
        ):
            priced = tuple(line.with_computed_amounts() for line in lines)
            draft = document.with_totals(priced)
            validation = validate_document(draft, priced, self._policy)
            now = self._clock.now()

            if not validation.is_valid:
                logger.warning(
                    "document_validation_failed",
                    extra={
                        "error_codes": validation.error_codes(),
                        "warning_codes": validation.warning_codes(),
                    },
                )
                return FinalizationResult(
                    status=FinalizationStatus.VALIDATION_FAILED,
                    document=document,
                    lines=tuple(lines),
                    validation=validation,
                    audit_entries=(validation_failed_entry(document, validation, now),),
                )

            issued = self._numbering.issue_next(organization_id, document.provisional_id)
            validated = mark_validated(draft, issued.document_number, now)

            logger.info(
                "document_finalized",
                extra={
                    "document_number": issued.document_number,
                    "document_type": validated.document_type.value,
                    "total_including_tax": validated.total_including_tax,
                    "warning_codes": validation.warning_codes(),
                },
            )
            return FinalizationResult(
                status=FinalizationStatus.FINALIZED,
                document=validated,
                lines=priced,
                validation=validation,
                audit_entries=(validated_entry(validated, issued.sequence, now),),
                breakdown=tax_breakdown(priced),
                issued=issued,
            )

    def cancel_with_credit_note(
        self,
        original: Document,
        lines: Sequence[LineItem],
        organization_id: str,
        *,
        credit_note_id: str,
        reason: str,
        quantities: Mapping[int, Any] | None = None,
    ) -> CancellationResult:
        """
        Void ``original`` with a numbered credit note.

        The original moves to ``cancelled`` when its lifecycle allows it;
        a paid document keeps its status and is compensated by the credit
        note alone.  When the credit note fails validation nothing is
        numbered and the original is returned unchanged.
        """
        credit_note, credit_lines = build_credit_note(
            original,
            lines,
            credit_note_id=credit_note_id,
            reason=reason,
            issue_date=self._clock.today(),
            quantities=quantities,
        )

        result = self.finalize(credit_note, credit_lines, organization_id)
        if not result.is_success:
            return CancellationResult(
                original=original,
                credit_note=result,
                audit_entries=result.audit_entries,
            )

        now = self._clock.now()
        entries = list(result.audit_entries)
        entries.append(credit_note_created_entry(result.document, original, now))

        updated = original
        if can_transition(original.status, DocumentStatus.CANCELLED):
            updated = transition(original, DocumentStatus.CANCELLED, at=now, reason=reason)
            entries.append(cancelled_entry(updated, now, credit_note=result.document))

        logger.info(
            "document_credited",
            extra={
                "organization_id": organization_id,
                "original_document_id": original.provisional_id,
                "original_number": original.permanent_number,
                "credit_note_number": result.document.permanent_number,
                "original_status": updated.status.value,
            },
        )
        return CancellationResult(
            original=updated,
            credit_note=result,
            audit_entries=tuple(entries),
        )
