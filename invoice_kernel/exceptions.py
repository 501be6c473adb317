"""
Typed Exception Hierarchy for the Invoice Kernel.

===============================================================================
WHAT IS RAISED AND WHAT IS RETURNED
===============================================================================

Two kinds of problems exist in this kernel and they travel differently:

  1. Document content problems (malformed SIRET, bad VAT number, amounts
     that do not reconcile, missing mandatory fields) are RETURNED as
     ValidationIssue entries inside a ValidationResult.  A caller gets the
     complete remediation list in one pass; nothing is raised.

  2. Operational problems (counter row missing, counter lock not acquired,
     illegal lifecycle transition, write to a frozen document) are RAISED
     as the typed exceptions below.

Every exception has a ``code`` class attribute (machine-readable, API-safe)
and stores its context as attributes, never only inside the message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InvoiceKernelError (base)
    |
    +-- NumberingError
    |   +-- CounterNotFoundError
    |   +-- CounterAlreadyExistsError
    |   +-- CounterYearRegressionError
    |   +-- DuplicateDocumentNumberError
    |
    +-- ConcurrencyError
    |   +-- SequenceAllocationError        (retryable)
    |
    +-- DocumentError
    |   +-- InvalidStatusTransitionError
    |   +-- DocumentImmutableError
    |   +-- PaymentNotAllowedError
    |   +-- CreditNoteNotAllowedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- IdentifierError
    |   +-- InvalidSirenError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-------------------------------------------
Numbering     | COUNTER_NOT_FOUND          | No counter row for the organization
              | COUNTER_ALREADY_EXISTS     | Counter provisioned twice
              | COUNTER_YEAR_REGRESSION    | Clock year earlier than the counter year
              | DUPLICATE_DOCUMENT_NUMBER  | Ledger already holds the number
--------------|----------------------------|-------------------------------------------
Concurrency   | SEQUENCE_ALLOCATION_FAILED | Lock/atomic write failed; retry the call
--------------|----------------------------|-------------------------------------------
Document      | INVALID_STATUS_TRANSITION  | Lifecycle edge not allowed
              | DOCUMENT_IMMUTABLE         | Monetary write after validation
              | PAYMENT_NOT_ALLOWED        | Payment on a document not yet sent
              | CREDIT_NOTE_NOT_ALLOWED    | Crediting a draft/cancelled document
--------------|----------------------------|-------------------------------------------
Immutability  | IMMUTABILITY_VIOLATION     | UPDATE/DELETE on an append-only row
--------------|----------------------------|-------------------------------------------
Identifier    | INVALID_SIREN              | VAT derivation from a malformed SIREN
--------------|----------------------------|-------------------------------------------
Configuration | CONFIGURATION_ERROR        | Invalid invoicing configuration set

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        issued = authority.issue_next(organization_id)
    except SequenceAllocationError:
        session.rollback()          # counter unchanged, safe to retry
        ...
    except CounterNotFoundError as e:
        provision_counter(e.organization_id)   # fail closed, never default

Middleware may branch on ``retryable`` instead of the concrete type.
"""


class InvoiceKernelError(Exception):
    """
    Base exception for all invoice kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVOICE_KERNEL_ERROR"
    retryable: bool = False


# Numbering-related exceptions


class NumberingError(InvoiceKernelError):
    """Base exception for document numbering errors."""

    code: str = "NUMBERING_ERROR"


class CounterNotFoundError(NumberingError):
    """No sequence counter is provisioned for the organization."""

    code: str = "COUNTER_NOT_FOUND"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            f"No document sequence counter for organization {organization_id}"
        )


class CounterAlreadyExistsError(NumberingError):
    """A sequence counter already exists for the organization."""

    code: str = "COUNTER_ALREADY_EXISTS"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(
            f"Document sequence counter already exists for organization "
            f"{organization_id}"
        )


class CounterYearRegressionError(NumberingError):
    """
    The clock reports a year earlier than the counter's current year.

    Rolling back to an earlier year would restart a sequence whose numbers
    were already issued.
    """

    code: str = "COUNTER_YEAR_REGRESSION"

    def __init__(self, organization_id: str, counter_year: int, clock_year: int):
        self.organization_id = organization_id
        self.counter_year = counter_year
        self.clock_year = clock_year
        super().__init__(
            f"Counter for organization {organization_id} is at year "
            f"{counter_year}, clock reports {clock_year}"
        )


class DuplicateDocumentNumberError(NumberingError):
    """The issued-number ledger already contains this number."""

    code: str = "DUPLICATE_DOCUMENT_NUMBER"

    def __init__(self, organization_id: str, document_number: str):
        self.organization_id = organization_id
        self.document_number = document_number
        super().__init__(
            f"Document number {document_number} already issued for "
            f"organization {organization_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(InvoiceKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class SequenceAllocationError(ConcurrencyError):
    """
    The counter lock or the atomic counter write failed.

    The transaction that raised this must be rolled back; the counter
    is then unchanged and the allocation may be retried.
    """

    code: str = "SEQUENCE_ALLOCATION_FAILED"

    def __init__(self, organization_id: str, reason: str):
        self.organization_id = organization_id
        self.reason = reason
        super().__init__(
            f"Could not allocate a document number for organization "
            f"{organization_id}: {reason}"
        )


# Document lifecycle exceptions


class DocumentError(InvoiceKernelError):
    """Base exception for document lifecycle errors."""

    code: str = "DOCUMENT_ERROR"


class InvalidStatusTransitionError(DocumentError):
    """Requested lifecycle transition is not allowed."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, document_id: str, from_status: str, to_status: str):
        self.document_id = document_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Document {document_id} cannot move from {from_status} to {to_status}"
        )


class DocumentImmutableError(DocumentError):
    """Monetary fields or lines changed on a validated document."""

    code: str = "DOCUMENT_IMMUTABLE"

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"Document {document_id} is {status}; its amounts and lines are frozen"
        )


class PaymentNotAllowedError(DocumentError):
    """Payment recorded against a document that cannot receive one."""

    code: str = "PAYMENT_NOT_ALLOWED"

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"Document {document_id} in status {status} cannot receive payments"
        )


class CreditNoteNotAllowedError(DocumentError):
    """The document cannot be compensated by a credit note."""

    code: str = "CREDIT_NOTE_NOT_ALLOWED"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot credit document {document_id}: {reason}")


# Immutability-related exceptions


class ImmutabilityError(InvoiceKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Identifier exceptions


class IdentifierError(InvoiceKernelError):
    """Base exception for identifier derivation errors."""

    code: str = "IDENTIFIER_ERROR"


class InvalidSirenError(IdentifierError):
    """SIREN is not exactly nine digits."""

    code: str = "INVALID_SIREN"

    def __init__(self, siren: str):
        self.siren = siren
        super().__init__(f"SIREN must contain exactly 9 digits: {siren!r}")


# Configuration exceptions


class ConfigurationError(InvoiceKernelError):
    """Invoicing configuration failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Invoicing configuration is invalid:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )
