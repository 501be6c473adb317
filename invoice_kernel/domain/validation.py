"""
Validation result types.

Pure values with no I/O.  A ``ValidationResult`` carries every error and
warning found in one pass; errors block permanent numbering, warnings are
advisory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationCode(str, Enum):
    """
    Known validation codes.

    Issues store the code as a plain string, so codes coming from other
    producers pass through untouched.
    """

    # Mandatory mentions
    REQUIRED_DOCUMENT_DATE = "REQUIRED_DOCUMENT_DATE"
    REQUIRED_OPERATION_TYPE = "REQUIRED_OPERATION_TYPE"
    REQUIRED_ISSUER_NAME = "REQUIRED_ISSUER_NAME"
    REQUIRED_ISSUER_ADDRESS = "REQUIRED_ISSUER_ADDRESS"
    REQUIRED_CUSTOMER_NAME = "REQUIRED_CUSTOMER_NAME"
    REQUIRED_CUSTOMER_ADDRESS = "REQUIRED_CUSTOMER_ADDRESS"
    REQUIRED_PAYMENT_DUE_DATE = "REQUIRED_PAYMENT_DUE_DATE"
    INVALID_OPERATION_TYPE = "INVALID_OPERATION_TYPE"

    # Business identifiers
    REQUIRED_ISSUER_SIRET = "REQUIRED_ISSUER_SIRET"
    INVALID_ISSUER_SIRET = "INVALID_ISSUER_SIRET"
    INVALID_CUSTOMER_SIRET = "INVALID_CUSTOMER_SIRET"
    MISSING_CUSTOMER_SIRET = "MISSING_CUSTOMER_SIRET"
    INVALID_ISSUER_VAT = "INVALID_ISSUER_VAT"
    INVALID_CUSTOMER_VAT = "INVALID_CUSTOMER_VAT"

    # Dates
    INVALID_DOCUMENT_DATE = "INVALID_DOCUMENT_DATE"
    INVALID_PAYMENT_DUE_DATE = "INVALID_PAYMENT_DUE_DATE"
    DUE_DATE_BEFORE_DOCUMENT_DATE = "DUE_DATE_BEFORE_DOCUMENT_DATE"

    # Amounts
    NEGATIVE_AMOUNTS = "NEGATIVE_AMOUNTS"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"

    # Lines
    NO_LINES = "NO_LINES"
    REQUIRED_LINE_DESCRIPTION = "REQUIRED_LINE_DESCRIPTION"
    INVALID_LINE_QUANTITY = "INVALID_LINE_QUANTITY"
    INVALID_LINE_UNIT_PRICE = "INVALID_LINE_UNIT_PRICE"
    INVALID_LINE_DISCOUNT_RATE = "INVALID_LINE_DISCOUNT_RATE"
    INVALID_LINE_TAX_RATE = "INVALID_LINE_TAX_RATE"
    NON_STANDARD_VAT_RATE = "NON_STANDARD_VAT_RATE"
    LINE_VAT_MISMATCH = "LINE_VAT_MISMATCH"
    LINE_TOTAL_MISMATCH = "LINE_TOTAL_MISMATCH"
    LINES_TOTAL_MISMATCH = "LINES_TOTAL_MISMATCH"


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single validation finding.

    Contract:
        Carries a machine-readable code, a human-readable message, the
        offending field path and its severity.
    """

    code: str
    message: str
    field: str | None = None
    severity: Severity = Severity.ERROR

    def __post_init__(self) -> None:
        if isinstance(self.code, Enum):
            object.__setattr__(self, "code", self.code.value)


@dataclass(frozen=True)
class ValidationResult:
    """
    Errors and warnings from one validation pass.

    ``is_valid`` is True only when there are no errors; warnings never
    affect it.
    """

    errors: tuple[ValidationIssue, ...] = field(default_factory=tuple)
    warnings: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> ValidationResult:
        return cls(
            errors=tuple(i for i in issues if i.severity == Severity.ERROR),
            warnings=tuple(i for i in issues if i.severity == Severity.WARNING),
        )

    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def codes(self) -> set[str]:
        return set(self.error_codes()) | set(self.warning_codes())

    def merge(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
        )
