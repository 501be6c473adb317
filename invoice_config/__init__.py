"""
invoice_config -- single public entrypoint for invoicing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen
    ``InvoicingConfig``.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package
    sits above ``invoice_kernel``.  The kernel MUST NEVER import from
    ``invoice_config``; bridges in this package translate the config into
    kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- required keys missing or malformed.
    - ``ConfigurationError`` -- the configuration failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INVOICE_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying validated documents to the rules that checked them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from invoice_config.loader import load_config
from invoice_config.schema import InvoicingConfig
from invoice_config.validator import validate_configuration
from invoice_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("invoice_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> InvoicingConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: YAML configuration set to load.  Defaults to the
            bundled French regime, ``invoice_config/sets/default.yaml``.

    Raises:
        ConfigurationError: If validation reports errors.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigurationError(validation.errors)
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_id": config.config_id, "warning": warning},
        )

    _logger.info(
        "INVOICE_CONFIG_TRACE",
        extra={
            "trace_type": "INVOICE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "jurisdiction": config.jurisdiction,
            "currency": config.money.currency,
            "tax_rate_count": len(config.tax_rates),
            "source": str(path),
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "InvoicingConfig", "get_active_config"]
