"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``invoice_config.schema``.  Runtime callers go through
``invoice_config.get_active_config()`` instead.

Invariants enforced
-------------------
* No silent defaults for required keys: a missing key raises ``KeyError``.
* Decimal values are read through their string form, never as binary
  floats.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric decimals  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import (
    InvoicingConfig,
    MoneyPolicy,
    NumberingDefaults,
    TaxRateDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file gives an empty dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Decimal from a YAML scalar, going through ``str`` for numbers."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def parse_money(data: dict[str, Any]) -> MoneyPolicy:
    return MoneyPolicy(
        currency=data["currency"],
        decimal_places=int(data["decimal_places"]),
        tolerance=parse_decimal(data["tolerance"]),
    )


def parse_tax_rate(data: dict[str, Any]) -> TaxRateDef:
    return TaxRateDef(rate=parse_decimal(data["rate"]), label=data.get("label", ""))


def parse_numbering(data: dict[str, Any]) -> NumberingDefaults:
    return NumberingDefaults(
        template=data["template"],
        prefix=data.get("prefix"),
        sequence_digits=int(data.get("sequence_digits", 5)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> InvoicingConfig:
    """Parse a raw configuration dict; the checksum covers the raw data."""
    return InvoicingConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        jurisdiction=data["jurisdiction"],
        money=parse_money(data["money"]),
        tax_rates=tuple(parse_tax_rate(item) for item in data.get("tax_rates") or ()),
        numbering=parse_numbering(data["numbering"]),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> InvoicingConfig:
    return parse_config(load_yaml_file(path))
