"""
Module: invoice_kernel.models.issued_number
Responsibility: Append-only ledger of every permanent document number issued.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A document number is issued at most once per organization
      (UNIQUE organization_id, document_number).
    - A (year, sequence) pair is issued at most once per organization
      (UNIQUE organization_id, year, sequence).
    - Rows are never updated or deleted (ORM listener in db/immutability.py,
      trigger on PostgreSQL).

Audit relevance:
    The ledger is what gap and duplicate audits read.  It is written in the
    same transaction as the counter increment, so a committed counter value
    always has its ledger row.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import TrackedBase


class IssuedDocumentNumber(TrackedBase):
    """One permanent number, as issued."""

    __tablename__ = "issued_document_numbers"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "document_number", name="uq_issued_number_org_number"
        ),
        UniqueConstraint(
            "organization_id", "year", "sequence", name="uq_issued_number_org_sequence"
        ),
        Index("idx_issued_number_org_year", "organization_id", "year"),
    )

    organization_id: Mapped[str] = mapped_column(String(100), nullable=False)

    document_number: Mapped[str] = mapped_column(String(50), nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    sequence: Mapped[int] = mapped_column(nullable=False)

    # Provisional id of the document that received the number, if known
    document_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<IssuedDocumentNumber {self.organization_id} {self.document_number}>"
