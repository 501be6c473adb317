"""SQLAlchemy ORM models for the invoice kernel."""

from invoice_kernel.models.issued_number import IssuedDocumentNumber
from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

__all__ = [
    "DocumentSequenceCounter",
    "IssuedDocumentNumber",
]
