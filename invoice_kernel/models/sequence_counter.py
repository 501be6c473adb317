"""
Module: invoice_kernel.models.sequence_counter
Responsibility: ORM persistence for the per-organization document number
    counter.  One row per organization holds the counter year, the next
    sequence to issue and the number layout.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - organization_id is unique: an organization has exactly one counter.
    - next_number >= 1 (CHECK constraint).
    - next_number never decreases within a counter year (ORM listener in
      db/immutability.py).
    - The row is only ever mutated under ``SELECT ... FOR UPDATE`` by
      NumberingAuthority.issue_next().
"""

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import TrackedBase
from invoice_kernel.domain.numbering import NumberFormat, YearFormat


class DocumentSequenceCounter(TrackedBase):
    """
    Sequence counter of one organization.

    Contract:
        ``next_number`` is the sequence the next issued document receives
        in ``current_year``.  The layout columns are read on every issue so
        a format change applies from the next number on.
    """

    __tablename__ = "document_sequence_counters"

    __table_args__ = (
        CheckConstraint("next_number >= 1", name="ck_sequence_counter_next_number"),
        CheckConstraint("sequence_digits >= 1", name="ck_sequence_counter_digits"),
    )

    organization_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_year: Mapped[int] = mapped_column(Integer, nullable=False)

    next_number: Mapped[int] = mapped_column(nullable=False, default=1)

    # Number layout
    prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)
    include_year: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    year_format: Mapped[str] = mapped_column(
        String(10), nullable=False, default=YearFormat.FULL.value
    )
    sequence_digits: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    separator: Mapped[str] = mapped_column(String(5), nullable=False, default="-")

    def number_format(self) -> NumberFormat:
        return NumberFormat(
            prefix=self.prefix,
            include_year=self.include_year,
            year_format=YearFormat(self.year_format),
            sequence_digits=self.sequence_digits,
            separator=self.separator,
        )

    def __repr__(self) -> str:
        return (
            f"<DocumentSequenceCounter {self.organization_id} "
            f"{self.current_year}#{self.next_number}>"
        )
