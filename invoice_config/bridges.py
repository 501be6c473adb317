"""
Config -> Kernel Bridges.

Turn an ``InvoicingConfig`` into kernel inputs.  These live in
invoice_config (the producer) because the kernel must NEVER import
invoice_config.

Usage:
    config = get_active_config()
    finalizer = DocumentFinalizer(session, clock, compliance_policy_from_config(config))
    authority.create_counter(org_id, number_format_from_config(config))
"""

from __future__ import annotations

from invoice_config.schema import InvoicingConfig
from invoice_kernel.domain.compliance import CompliancePolicy
from invoice_kernel.domain.numbering import NumberFormat, parse_number_template


def compliance_policy_from_config(config: InvoicingConfig) -> CompliancePolicy:
    return CompliancePolicy(
        canonical_tax_rates=config.canonical_rates,
        tolerance=config.money.tolerance,
    )


def number_format_from_config(
    config: InvoicingConfig, prefix: str | None = None
) -> NumberFormat:
    """
    Default number layout of the configuration.

    ``prefix`` overrides the configured prefix, e.g. per organization.
    """
    numbering = config.numbering
    return parse_number_template(
        numbering.template,
        prefix=prefix if prefix is not None else numbering.prefix,
        sequence_digits=numbering.sequence_digits,
    )
