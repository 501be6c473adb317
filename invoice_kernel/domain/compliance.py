"""
Compliance -- mandatory-mention and consistency checks for fiscal documents.

Responsibility:
    Checks a document and its lines against the French invoicing rules
    before it may receive a permanent number: mandatory mentions, business
    and tax identifiers, dates, amount reconciliation and per-line VAT.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Results are returned, never raised.  The finalizer refuses to number
    a document whose result carries errors.

Invariants enforced:
    - Every rule runs on every call; a caller gets all issues at once.
    - Errors block numbering; warnings never do.
    - Amounts are reconciled against the calculator in ``money`` with the
      policy tolerance (0.01 by default).
    - Calling twice on the same input returns equal results.

Failure modes:
    None raised for document content.  Non-numeric line values surface
    as TypeError/ValueError from ``to_decimal`` when the line is built.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from invoice_kernel.domain.documents import Document, LineItem, OperationType, Party
from invoice_kernel.domain.identifiers import siret_validation_error
from invoice_kernel.domain.money import (
    AMOUNT_TOLERANCE,
    CANONICAL_VAT_RATES,
    HUNDRED,
    ZERO,
    compute_line,
    is_standard_vat_rate,
    round2,
    tax_breakdown_from_bases,
    totals_from_breakdown,
    within_tolerance,
)
from invoice_kernel.domain.tax_identifiers import vat_validation_error
from invoice_kernel.domain.validation import (
    Severity,
    ValidationCode,
    ValidationIssue,
    ValidationResult,
)

DOCUMENT_NUMBER_MIN_LENGTH = 3
DOCUMENT_NUMBER_MAX_LENGTH = 50

_OPERATION_TYPE_VALUES = frozenset(t.value for t in OperationType)


@dataclass(frozen=True)
class CompliancePolicy:
    """Knobs of the validator that vary by regime."""

    canonical_tax_rates: tuple[Decimal, ...] = CANONICAL_VAT_RATES
    tolerance: Decimal = AMOUNT_TOLERANCE


DEFAULT_POLICY = CompliancePolicy()


def _blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _parse_date(value: date | str) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Rule groups
# ---------------------------------------------------------------------------


_REQUIRED_FIELDS: tuple[tuple[str, ValidationCode, str], ...] = (
    ("document_date", ValidationCode.REQUIRED_DOCUMENT_DATE, "The document date is required"),
    ("operation_type", ValidationCode.REQUIRED_OPERATION_TYPE,
     "The operation type (goods, services, mixed) is required"),
    ("issuer.name", ValidationCode.REQUIRED_ISSUER_NAME, "The issuer name is required"),
    ("issuer.address", ValidationCode.REQUIRED_ISSUER_ADDRESS, "The issuer address is required"),
    ("customer.name", ValidationCode.REQUIRED_CUSTOMER_NAME, "The customer name is required"),
    ("customer.address", ValidationCode.REQUIRED_CUSTOMER_ADDRESS,
     "The customer address is required"),
    ("payment_due_date", ValidationCode.REQUIRED_PAYMENT_DUE_DATE,
     "The payment due date is required"),
)


def _field_value(document: Document, path: str) -> object:
    value: object = document
    for part in path.split("."):
        value = getattr(value, part)
    return value


def _check_required(document: Document, severity: Severity) -> list[ValidationIssue]:
    issues = []
    for path, code, message in _REQUIRED_FIELDS:
        if _blank(_field_value(document, path)):
            issues.append(ValidationIssue(code, message, path, severity))

    op_type = document.operation_type
    known = isinstance(op_type, OperationType) or op_type in _OPERATION_TYPE_VALUES
    if not _blank(op_type) and not known:
        issues.append(ValidationIssue(
            ValidationCode.INVALID_OPERATION_TYPE,
            f"Unknown operation type {op_type!r}",
            "operation_type",
        ))
    return issues


def _check_party_identifiers(
    party: Party,
    role: str,
    invalid_siret: ValidationCode,
    invalid_vat: ValidationCode,
) -> list[ValidationIssue]:
    issues = []
    if not _blank(party.siret):
        message = siret_validation_error(party.siret)
        if message is not None:
            issues.append(ValidationIssue(invalid_siret, message, f"{role}.siret"))
    if not _blank(party.vat_number):
        message = vat_validation_error(party.vat_number)
        if message is not None:
            issues.append(ValidationIssue(invalid_vat, message, f"{role}.vat_number"))
    return issues


def _check_identifiers(document: Document, missing_severity: Severity) -> list[ValidationIssue]:
    issues = []
    if _blank(document.issuer.siret):
        issues.append(ValidationIssue(
            ValidationCode.REQUIRED_ISSUER_SIRET,
            "The issuer SIRET number is required",
            "issuer.siret",
            missing_severity,
        ))
    issues += _check_party_identifiers(
        document.issuer, "issuer",
        ValidationCode.INVALID_ISSUER_SIRET, ValidationCode.INVALID_ISSUER_VAT,
    )

    if _blank(document.customer.siret):
        issues.append(ValidationIssue(
            ValidationCode.MISSING_CUSTOMER_SIRET,
            "The customer SIRET is recommended for business customers",
            "customer.siret",
            Severity.WARNING,
        ))
    issues += _check_party_identifiers(
        document.customer, "customer",
        ValidationCode.INVALID_CUSTOMER_SIRET, ValidationCode.INVALID_CUSTOMER_VAT,
    )
    return issues


def _check_dates(document: Document) -> list[ValidationIssue]:
    issues = []
    issued = due = None

    if not _blank(document.document_date):
        issued = _parse_date(document.document_date)
        if issued is None:
            issues.append(ValidationIssue(
                ValidationCode.INVALID_DOCUMENT_DATE,
                f"The document date {document.document_date!r} is not a valid date",
                "document_date",
            ))
    if not _blank(document.payment_due_date):
        due = _parse_date(document.payment_due_date)
        if due is None:
            issues.append(ValidationIssue(
                ValidationCode.INVALID_PAYMENT_DUE_DATE,
                f"The payment due date {document.payment_due_date!r} is not a valid date",
                "payment_due_date",
            ))

    if issued is not None and due is not None and due < issued:
        issues.append(ValidationIssue(
            ValidationCode.DUE_DATE_BEFORE_DOCUMENT_DATE,
            f"The payment due date {due.isoformat()} is before the document "
            f"date {issued.isoformat()}",
            "payment_due_date",
        ))
    return issues


def _check_amounts(document: Document, policy: CompliancePolicy) -> list[ValidationIssue]:
    issues = []
    subtotal = document.subtotal_excluding_tax
    tax = document.total_tax_amount
    total = document.total_including_tax

    if subtotal < 0 or tax < 0 or total < 0:
        issues.append(ValidationIssue(
            ValidationCode.NEGATIVE_AMOUNTS,
            "Document amounts cannot be negative",
            "amounts",
        ))

    expected = round2(subtotal + tax)
    if not within_tolerance(total, expected, policy.tolerance):
        issues.append(ValidationIssue(
            ValidationCode.AMOUNT_MISMATCH,
            f"Total including tax {total} does not equal subtotal {subtotal} "
            f"+ tax {tax} = {expected}",
            "total_including_tax",
        ))
    return issues


def _check_line(index: int, line: LineItem, policy: CompliancePolicy) -> list[ValidationIssue]:
    issues = []
    prefix = f"lines[{index}]"
    label = f"Line {index + 1}"

    if _blank(line.description):
        issues.append(ValidationIssue(
            ValidationCode.REQUIRED_LINE_DESCRIPTION,
            f"{label}: a description is required",
            f"{prefix}.description",
        ))
    if line.quantity <= 0:
        issues.append(ValidationIssue(
            ValidationCode.INVALID_LINE_QUANTITY,
            f"{label}: the quantity must be greater than zero",
            f"{prefix}.quantity",
        ))
    if line.unit_price_excluding_tax < 0:
        issues.append(ValidationIssue(
            ValidationCode.INVALID_LINE_UNIT_PRICE,
            f"{label}: the unit price cannot be negative",
            f"{prefix}.unit_price_excluding_tax",
        ))
    if not ZERO <= line.discount_rate <= HUNDRED:
        issues.append(ValidationIssue(
            ValidationCode.INVALID_LINE_DISCOUNT_RATE,
            f"{label}: the discount rate must be between 0 and 100",
            f"{prefix}.discount_rate",
        ))

    if line.tax_rate < 0:
        issues.append(ValidationIssue(
            ValidationCode.INVALID_LINE_TAX_RATE,
            f"{label}: the VAT rate cannot be negative",
            f"{prefix}.tax_rate",
        ))
    elif not is_standard_vat_rate(line.tax_rate, policy.canonical_tax_rates):
        issues.append(ValidationIssue(
            ValidationCode.NON_STANDARD_VAT_RATE,
            f"{label}: VAT rate {line.tax_rate}% is not a standard rate",
            f"{prefix}.tax_rate",
            Severity.WARNING,
        ))

    computed = compute_line(line)
    if line.tax_amount is not None and not within_tolerance(
        line.tax_amount, computed.tax_amount, policy.tolerance
    ):
        issues.append(ValidationIssue(
            ValidationCode.LINE_VAT_MISMATCH,
            f"{label}: VAT amount {line.tax_amount} does not match the "
            f"computed {computed.tax_amount}",
            f"{prefix}.tax_amount",
        ))
    if line.total_including_tax is not None and not within_tolerance(
        line.total_including_tax, computed.total_including_tax, policy.tolerance
    ):
        issues.append(ValidationIssue(
            ValidationCode.LINE_TOTAL_MISMATCH,
            f"{label}: total {line.total_including_tax} does not match the "
            f"computed {computed.total_including_tax}",
            f"{prefix}.total_including_tax",
        ))
    return issues


def _line_total(line: LineItem) -> Decimal:
    if line.total_including_tax is not None:
        return line.total_including_tax
    return compute_line(line).total_including_tax


def _line_base(line: LineItem) -> Decimal:
    """Taxable base implied by the stored amounts, or computed when unpriced."""
    if line.total_including_tax is not None and line.tax_amount is not None:
        return line.total_including_tax - line.tax_amount
    return compute_line(line).subtotal_after_discount


def _check_lines(
    document: Document, lines: Sequence[LineItem], policy: CompliancePolicy
) -> list[ValidationIssue]:
    if not lines:
        return [ValidationIssue(
            ValidationCode.NO_LINES,
            "The document has no lines",
            "lines",
            Severity.WARNING,
        )]

    issues = []
    for index, line in enumerate(lines):
        issues += _check_line(index, line, policy)

    # Either pricing is accepted: VAT recomputed per rate group from the
    # summed base, or the plain sum of the line totals.  The two differ by
    # up to one rounding unit per line in a group.
    lines_total = round2(sum((_line_total(line) for line in lines), ZERO))
    breakdown_total = totals_from_breakdown(
        tax_breakdown_from_bases((_line_base(line), line.tax_rate) for line in lines)
    ).total_including_tax
    if not (
        within_tolerance(breakdown_total, document.total_including_tax, policy.tolerance)
        or within_tolerance(lines_total, document.total_including_tax, policy.tolerance)
    ):
        issues.append(ValidationIssue(
            ValidationCode.LINES_TOTAL_MISMATCH,
            f"Line totals {breakdown_total} (per rate) and {lines_total} "
            f"(summed) do not match the document total "
            f"{document.total_including_tax}",
            "lines",
        ))
    return issues


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def validate_document(
    document: Document,
    lines: Sequence[LineItem] | None = None,
    policy: CompliancePolicy = DEFAULT_POLICY,
) -> ValidationResult:
    """
    Full check run before a document receives its permanent number.

    Line rules run only when ``lines`` is supplied; an empty sequence
    yields a NO_LINES warning.
    """
    issues: list[ValidationIssue] = []
    issues += _check_required(document, Severity.ERROR)
    issues += _check_identifiers(document, Severity.ERROR)
    issues += _check_dates(document)
    issues += _check_amounts(document, policy)
    if lines is not None:
        issues += _check_lines(document, lines, policy)
    return ValidationResult.from_issues(issues)


def validate_draft(
    document: Document,
    lines: Sequence[LineItem] | None = None,
    policy: CompliancePolicy = DEFAULT_POLICY,
) -> ValidationResult:
    """
    Lenient check for saving an incomplete draft.

    Identifiers that are present must be well formed; everything missing
    is only a warning.
    """
    issues: list[ValidationIssue] = []
    issues += [
        issue for issue in _check_required(document, Severity.WARNING)
        if issue.code != ValidationCode.INVALID_OPERATION_TYPE
    ]
    issues += _check_identifiers(document, Severity.WARNING)
    if not lines:
        issues.append(ValidationIssue(
            ValidationCode.NO_LINES,
            "The document has no lines",
            "lines",
            Severity.WARNING,
        ))
    return ValidationResult.from_issues(issues)


def validate_document_number(number: str | None) -> str | None:
    """Describe why ``number`` is not an acceptable document number, or None."""
    if not number or not number.strip():
        return "The document number is required"
    if not any(char.isdigit() for char in number):
        return "The document number must contain at least one digit"
    if len(number) < DOCUMENT_NUMBER_MIN_LENGTH:
        return (
            f"The document number must be at least "
            f"{DOCUMENT_NUMBER_MIN_LENGTH} characters long"
        )
    if len(number) > DOCUMENT_NUMBER_MAX_LENGTH:
        return (
            f"The document number must not exceed "
            f"{DOCUMENT_NUMBER_MAX_LENGTH} characters"
        )
    return None
