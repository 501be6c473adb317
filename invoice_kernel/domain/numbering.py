"""
Numbering -- document number format and sequence audit helpers.

Responsibility:
    Formats a permanent document number from a sequence integer and a
    year, parses number templates from configuration, and reads the
    sequence back out of issued numbers for gap and duplicate audits.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    The stateful part of numbering (the per-organization counter) lives
    in ``services.numbering_service``.

Invariants enforced:
    - A formatted number is ``[prefix<sep>][year<sep>]sequence`` with the
      sequence zero-padded to ``sequence_digits``.
    - The sequence of an issued number is its last run of digits.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

_DIGIT_RUN = re.compile(r"\d+")
_TEMPLATE_SEPARATORS = ("/", "_", "-")


class YearFormat(str, Enum):
    FULL = "full"
    SHORT = "short"


@dataclass(frozen=True)
class NumberFormat:
    """How an organization's document numbers are laid out."""

    prefix: str | None = None
    include_year: bool = True
    year_format: YearFormat = YearFormat.FULL
    sequence_digits: int = 5
    separator: str = "-"

    def __post_init__(self) -> None:
        object.__setattr__(self, "year_format", YearFormat(self.year_format))
        if self.sequence_digits < 1:
            raise ValueError(
                f"sequence_digits must be at least 1, got {self.sequence_digits}"
            )


DEFAULT_NUMBER_FORMAT = NumberFormat()


def format_document_number(
    sequence: int,
    year: int,
    number_format: NumberFormat = DEFAULT_NUMBER_FORMAT,
) -> str:
    """
    Lay out a document number.

    ``format_document_number(7, 2026, NumberFormat(prefix="FA"))`` gives
    ``FA-2026-00007``.  A sequence wider than ``sequence_digits`` is kept
    whole, never truncated.
    """
    if sequence < 1:
        raise ValueError(f"Sequence numbers start at 1, got {sequence}")

    parts = []
    if number_format.prefix:
        parts.append(number_format.prefix)
    if number_format.include_year:
        year_text = str(year)
        if number_format.year_format == YearFormat.SHORT:
            year_text = year_text[-2:]
        parts.append(year_text)
    parts.append(str(sequence).zfill(number_format.sequence_digits))
    return number_format.separator.join(parts)


def parse_number_template(
    template: str,
    prefix: str | None = None,
    sequence_digits: int = DEFAULT_NUMBER_FORMAT.sequence_digits,
) -> NumberFormat:
    """
    Build a NumberFormat from a template such as ``{prefix}-{year}-{sequence}``.

    Placeholders: ``{prefix}``, ``{year}`` (four digits), ``{yy}`` (two
    digits) and ``{sequence}``.  The separator is the first of ``/``,
    ``_`` or ``-`` found in the template, ``-`` when none is.
    ``prefix`` is only kept when the template has a ``{prefix}`` slot.
    """
    separator = "-"
    for candidate in _TEMPLATE_SEPARATORS:
        if candidate in template:
            separator = candidate
            break

    if "{yy}" in template:
        include_year, year_format = True, YearFormat.SHORT
    else:
        include_year, year_format = "{year}" in template, YearFormat.FULL

    return NumberFormat(
        prefix=prefix if "{prefix}" in template else None,
        include_year=include_year,
        year_format=year_format,
        sequence_digits=sequence_digits,
        separator=separator,
    )


def extract_sequence(number: str | None) -> int | None:
    """The last run of digits in ``number``, or None when there is none."""
    if not number:
        return None
    runs = _DIGIT_RUN.findall(number)
    if not runs:
        return None
    return int(runs[-1])


def _sequences(numbers: Iterable[str]) -> list[int]:
    found = (extract_sequence(n) for n in numbers)
    return sorted(s for s in found if s is not None)


def find_gaps(
    numbers: Iterable[str],
    range_start: int | None = None,
    range_end: int | None = None,
) -> list[int]:
    """
    Sequence integers in range with no matching issued number.

    Missing bounds default to the lowest and highest extracted sequence.
    With nothing extracted, the whole explicit range is a gap; without an
    explicit range there is nothing to report.
    """
    sequences = _sequences(numbers)
    if not sequences:
        if range_start is None or range_end is None:
            return []
        return list(range(range_start, range_end + 1))

    low = sequences[0] if range_start is None else range_start
    high = sequences[-1] if range_end is None else range_end
    seen = set(sequences)
    return [n for n in range(low, high + 1) if n not in seen]


def find_duplicates(numbers: Iterable[str]) -> list[int]:
    """Sequence integers that appear more than once, ascending."""
    counts = Counter(_sequences(numbers))
    return sorted(n for n, count in counts.items() if count > 1)
