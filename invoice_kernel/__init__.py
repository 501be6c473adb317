"""
Invoice Kernel

Numbering and compliance core for fiscal documents:
- Gapless, duplicate-free permanent document numbers
- SIRET/SIREN checksum and intra-community VAT number validation
- Decimal-exact VAT computation and per-rate breakdowns
- Compliance validation before a document becomes immutable
"""

__version__ = "0.1.0"
