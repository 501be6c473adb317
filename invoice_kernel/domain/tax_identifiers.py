"""
Tax identifiers -- intra-community VAT number validation.

Responsibility:
    Validates intra-community VAT numbers against per-country format rules
    and derives the French VAT number from a SIREN.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ``derive_french_vat`` raises InvalidSirenError when the SIREN is not
      exactly nine digits.  Every other function reports problems through
      its return value.

Notes:
    Only the format is checked.  Whether a number is actually registered
    is a question for the VIES service and out of scope here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType

from invoice_kernel.domain.identifiers import SIREN_LENGTH, clean_identifier
from invoice_kernel.exceptions import InvalidSirenError


@dataclass(frozen=True, slots=True)
class VatCountryFormat:
    """Format rule for one country; ``pattern`` matches what follows the code."""

    code: str
    name: str
    pattern: re.Pattern[str]
    example: str

    def matches(self, normalized: str) -> bool:
        return self.pattern.fullmatch(normalized[2:]) is not None


def _fmt(code: str, name: str, pattern: str, example: str) -> tuple[str, VatCountryFormat]:
    return code, VatCountryFormat(code, name, re.compile(pattern), example)


VAT_FORMATS: MappingProxyType[str, VatCountryFormat] = MappingProxyType(dict([
    _fmt("FR", "France", r"[A-Z0-9]{2}\d{9}", "FR12345678901"),
    _fmt("BE", "Belgium", r"0\d{9}", "BE0123456789"),
    _fmt("DE", "Germany", r"\d{9}", "DE123456789"),
    _fmt("ES", "Spain", r"[A-Z0-9]\d{7}[A-Z0-9]", "ESX1234567X"),
    _fmt("IT", "Italy", r"\d{11}", "IT12345678901"),
    _fmt("LU", "Luxembourg", r"\d{8}", "LU12345678"),
    _fmt("NL", "Netherlands", r"\d{9}B\d{2}", "NL123456789B01"),
    _fmt("PT", "Portugal", r"\d{9}", "PT123456789"),
    _fmt("GB", "United Kingdom", r"\d{9}|\d{12}|GD\d{3}|HA\d{3}", "GB123456789"),
    _fmt("IE", "Ireland", r"\d[A-Z0-9]\d{5}[A-Z]", "IE1234567A"),
    _fmt("AT", "Austria", r"U\d{8}", "ATU12345678"),
    _fmt("DK", "Denmark", r"\d{8}", "DK12345678"),
    _fmt("FI", "Finland", r"\d{8}", "FI12345678"),
    _fmt("SE", "Sweden", r"\d{12}", "SE123456789012"),
    _fmt("PL", "Poland", r"\d{10}", "PL1234567890"),
    _fmt("CZ", "Czech Republic", r"\d{8,10}", "CZ12345678"),
    _fmt("RO", "Romania", r"\d{2,10}", "RO1234567"),
    _fmt("GR", "Greece", r"\d{9}", "GR123456789"),
    _fmt("HU", "Hungary", r"\d{8}", "HU12345678"),
]))

_VAT_SEPARATORS = re.compile(r"[\s.-]")
_COUNTRY_CODE = re.compile(r"[A-Z]{2}")


def normalize_vat(value: str | None) -> str:
    """Uppercase and strip spaces, dots and dashes."""
    return _VAT_SEPARATORS.sub("", value or "").upper()


def validate_vat(value: str | None) -> bool:
    """True when ``value`` matches the format of its country."""
    normalized = normalize_vat(value)
    fmt = VAT_FORMATS.get(normalized[:2])
    if fmt is None:
        return False
    return fmt.matches(normalized)


def vat_validation_error(value: str | None) -> str | None:
    """Describe why ``value`` is not a valid VAT number, or None when it is."""
    if not value or not value.strip():
        return "The VAT number is required"

    normalized = normalize_vat(value)
    if len(normalized) < 4:
        return "The VAT number is too short"

    country = normalized[:2]
    if not _COUNTRY_CODE.fullmatch(country):
        return (
            "The VAT number must start with a 2-letter country code "
            "(e.g. FR, BE, DE)"
        )

    fmt = VAT_FORMATS.get(country)
    if fmt is None:
        return f'Country code "{country}" is not recognized or not supported'

    if not fmt.matches(normalized):
        return (
            f"The VAT number does not match the expected {fmt.name} format "
            f"(e.g. {fmt.example})"
        )
    return None


def extract_vat_country(value: str | None) -> str | None:
    """The supported country code a VAT number starts with, if any."""
    if not value or len(value) < 2:
        return None
    country = value[:2].upper()
    return country if country in VAT_FORMATS else None


def is_french_vat(value: str | None) -> bool:
    return normalize_vat(value).startswith("FR")


def supported_vat_countries() -> list[VatCountryFormat]:
    return list(VAT_FORMATS.values())


def french_vat_key(siren: str) -> str:
    """Two-digit French VAT key: ``(12 + 3 * (siren mod 97)) mod 97``."""
    cleaned = clean_identifier(siren)
    if len(cleaned) != SIREN_LENGTH or not cleaned.isdigit() or not cleaned.isascii():
        raise InvalidSirenError(siren)
    key = (12 + 3 * (int(cleaned) % 97)) % 97
    return f"{key:02d}"


def derive_french_vat(siren: str) -> str:
    """French intra-community VAT number for a SIREN: ``FR`` + key + SIREN."""
    key = french_vat_key(siren)
    return f"FR{key}{clean_identifier(siren)}"


def format_vat(value: str | None) -> str:
    """
    Display form of a VAT number.

    French numbers become ``FR XX XXX XXX XXX``; other supported countries
    get the country code followed by groups of four.  Unsupported input is
    returned unchanged.  Formatting never affects validity.
    """
    if not value:
        return ""

    normalized = normalize_vat(value)
    country = normalized[:2]
    if country not in VAT_FORMATS:
        return value

    if country == "FR" and len(normalized) == 13:
        return (
            f"{normalized[0:2]} {normalized[2:4]} {normalized[4:7]} "
            f"{normalized[7:10]} {normalized[10:13]}"
        )

    number = normalized[2:]
    groups = [number[i:i + 4] for i in range(0, len(number), 4)]
    return f"{country} {' '.join(groups)}".rstrip()
