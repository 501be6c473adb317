"""
Identifiers -- SIRET / SIREN checksum validation.

Responsibility:
    Validates and formats French national business identifiers:
    SIRET (14 digits, establishment) and SIREN (9 digits, enterprise,
    the first nine digits of every SIRET).  Both carry a Luhn-style
    check digit.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    None.  Malformed input yields ``False`` or a descriptive message,
    never an exception.
"""

from __future__ import annotations

import re

SIRET_LENGTH = 14
SIREN_LENGTH = 9

_SEPARATORS = re.compile(r"[\s-]")


def clean_identifier(value: str | None) -> str:
    """Strip whitespace and dashes."""
    return _SEPARATORS.sub("", value or "")


def luhn_sum(digits: str) -> int:
    """
    Sum digits, doubling every digit at an even 0-based index.

    A doubled digit above 9 has 9 subtracted.
    """
    total = 0
    for index, char in enumerate(digits):
        digit = int(char)
        if index % 2 == 0:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total


def _is_valid(value: str | None, length: int) -> bool:
    cleaned = clean_identifier(value)
    if len(cleaned) != length or not cleaned.isdigit() or not cleaned.isascii():
        return False
    return luhn_sum(cleaned) % 10 == 0


def validate_siret(value: str | None) -> bool:
    """True when ``value`` is 14 digits with a valid check digit."""
    return _is_valid(value, SIRET_LENGTH)


def validate_siren(value: str | None) -> bool:
    """True when ``value`` is 9 digits with a valid check digit."""
    return _is_valid(value, SIREN_LENGTH)


def _validation_error(value: str | None, length: int, label: str) -> str | None:
    if not value or not value.strip():
        return f"The {label} number is required"

    cleaned = clean_identifier(value)
    if not cleaned.isdigit() or not cleaned.isascii():
        return f"The {label} must contain digits only"
    if len(cleaned) != length:
        return (
            f"The {label} must contain exactly {length} digits "
            f"({len(cleaned)} given)"
        )
    if luhn_sum(cleaned) % 10 != 0:
        return f"The {label} number is invalid (check digit mismatch)"
    return None


def siret_validation_error(value: str | None) -> str | None:
    """Describe why ``value`` is not a valid SIRET, or None when it is."""
    return _validation_error(value, SIRET_LENGTH, "SIRET")


def siren_validation_error(value: str | None) -> str | None:
    """Describe why ``value`` is not a valid SIREN, or None when it is."""
    return _validation_error(value, SIREN_LENGTH, "SIREN")


def extract_siren(siret: str | None) -> str | None:
    """First nine digits of a well-formed SIRET (checksum not verified)."""
    cleaned = clean_identifier(siret)
    if len(cleaned) != SIRET_LENGTH or not cleaned.isdigit():
        return None
    return cleaned[:SIREN_LENGTH]


def format_siret(value: str) -> str:
    """``XXX XXX XXX XXXXX``; malformed input is returned unchanged."""
    cleaned = clean_identifier(value)
    if len(cleaned) != SIRET_LENGTH or not cleaned.isdigit():
        return value
    return f"{cleaned[0:3]} {cleaned[3:6]} {cleaned[6:9]} {cleaned[9:14]}"


def format_siren(value: str) -> str:
    """``XXX XXX XXX``; malformed input is returned unchanged."""
    cleaned = clean_identifier(value)
    if len(cleaned) != SIREN_LENGTH or not cleaned.isdigit():
        return value
    return f"{cleaned[0:3]} {cleaned[3:6]} {cleaned[6:9]}"
