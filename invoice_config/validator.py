"""
Configuration Validator (``invoice_config.validator``).

Checks an ``InvoicingConfig`` before it is handed to the kernel.  Errors
block the configuration; warnings are logged by the caller and should be
reviewed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal

from invoice_config.schema import InvoicingConfig

# Kernel arithmetic rounds to cents.
SUPPORTED_DECIMAL_PLACES = 2

_CURRENCY_CODE = re.compile(r"[A-Z]{3}")
_KNOWN_PLACEHOLDERS = {"{prefix}", "{year}", "{yy}", "{sequence}"}
_PLACEHOLDER = re.compile(r"\{[^}]*\}")


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _validate_money(config: InvoicingConfig, result: ConfigValidationResult) -> None:
    money = config.money
    if not _CURRENCY_CODE.fullmatch(money.currency or ""):
        result.add_error(f"money.currency must be a 3-letter ISO code, got {money.currency!r}")
    if money.decimal_places != SUPPORTED_DECIMAL_PLACES:
        result.add_error(
            f"money.decimal_places must be {SUPPORTED_DECIMAL_PLACES}, "
            f"got {money.decimal_places}"
        )
    if money.tolerance < 0:
        result.add_error(f"money.tolerance cannot be negative, got {money.tolerance}")
    elif money.tolerance > Decimal("1"):
        result.add_warning(f"money.tolerance {money.tolerance} is unusually large")


def _validate_tax_rates(config: InvoicingConfig, result: ConfigValidationResult) -> None:
    if not config.tax_rates:
        result.add_error("tax_rates must list at least one rate")
        return

    seen: set[Decimal] = set()
    for tax_rate in config.tax_rates:
        if not Decimal("0") <= tax_rate.rate <= Decimal("100"):
            result.add_error(f"tax rate {tax_rate.rate} must be between 0 and 100")
        if tax_rate.rate in seen:
            result.add_error(f"tax rate {tax_rate.rate} is listed twice")
        seen.add(tax_rate.rate)
        if not tax_rate.label:
            result.add_warning(f"tax rate {tax_rate.rate} has no label")


def _validate_numbering(config: InvoicingConfig, result: ConfigValidationResult) -> None:
    numbering = config.numbering
    placeholders = set(_PLACEHOLDER.findall(numbering.template))

    if "{sequence}" not in placeholders:
        result.add_error("numbering.template must contain {sequence}")
    unknown = placeholders - _KNOWN_PLACEHOLDERS
    if unknown:
        result.add_error(
            f"numbering.template has unknown placeholders: {', '.join(sorted(unknown))}"
        )
    if "{year}" in placeholders and "{yy}" in placeholders:
        result.add_error("numbering.template cannot contain both {year} and {yy}")
    if "{prefix}" in placeholders and not numbering.prefix:
        result.add_error("numbering.template uses {prefix} but numbering.prefix is empty")
    if numbering.prefix and "{prefix}" not in placeholders:
        result.add_warning("numbering.prefix is set but the template has no {prefix}")
    if numbering.sequence_digits < 1:
        result.add_error(
            f"numbering.sequence_digits must be at least 1, got {numbering.sequence_digits}"
        )
    if not placeholders & {"{year}", "{yy}"}:
        result.add_warning(
            "numbering.template has no year; the sequence will not restart yearly"
        )


def validate_configuration(config: InvoicingConfig) -> ConfigValidationResult:
    """Run every check and return all errors and warnings."""
    result = ConfigValidationResult()
    _validate_money(config, result)
    _validate_tax_rates(config, result)
    _validate_numbering(config, result)
    return result
