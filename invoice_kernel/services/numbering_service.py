"""
NumberingAuthority -- gapless permanent document numbers via a locked counter row.

Responsibility:
    Issues the permanent number of a fiscal document.  Each organization
    owns one counter row; issuing is a read-increment-write of that row
    under a row lock, with a yearly restart of the sequence.  Every issued
    number is also appended to a ledger that gap and duplicate audits read.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by DocumentFinalizer, or directly by an orchestrator through
    ``allocate_document_number``.

Invariants enforced:
    - For a fixed year, issued sequences are contiguous, strictly
      increasing, duplicate-free and start at 1.  The locked counter row
      is the sole source of truth; max(sequence)+1 over the ledger is
      never used.
    - Year rollover only moves forward.  A clock year behind the counter
      year is refused.  A format without the year keeps counting across
      years instead of restarting, so its numbers never repeat.
    - The counter is re-read under ``SELECT ... FOR UPDATE`` on every call;
      no counter state is cached between calls.
    - The increment is only visible once the caller's transaction commits.
      A rollback leaves the counter and the ledger unchanged.
    - An issued number is never reissued, reused or retracted.
    - Concurrent calls for different organizations lock different rows
      and do not wait on each other (PostgreSQL).

Failure modes:
    - CounterNotFoundError: no counter provisioned.  Fatal for the call;
      the authority never invents a starting sequence.
    - SequenceAllocationError (retryable): lock or write failure.  The
      caller rolls back and retries.
    - CounterYearRegressionError: the clock is behind the counter year.
    - DuplicateDocumentNumberError: the ledger already holds the number
      (format changed into a collision).  The transaction must be rolled
      back.

Audit relevance:
    Every issued number and every year rollover is logged at INFO with
    organization_id, document_number and sequence.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.numbering import (
    DEFAULT_NUMBER_FORMAT,
    NumberFormat,
    find_duplicates,
    find_gaps,
    format_document_number,
)
from invoice_kernel.exceptions import (
    CounterAlreadyExistsError,
    CounterNotFoundError,
    CounterYearRegressionError,
    DuplicateDocumentNumberError,
    SequenceAllocationError,
)
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.issued_number import IssuedDocumentNumber
from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

logger = get_logger("services.numbering")


@dataclass(frozen=True)
class IssuedNumber:
    """A permanent number and the raw sequence integer it was built from."""

    organization_id: str
    document_number: str
    sequence: int
    year: int
    issued_at: datetime
    document_id: str | None = None
    rolled_over: bool = False


@dataclass(frozen=True)
class CounterSnapshot:
    """
    Read-only view of a counter.

    ``next_document_number`` is what ``issue_next`` would return at the
    time of the snapshot, rollover included.
    """

    organization_id: str
    current_year: int
    next_number: int
    number_format: NumberFormat
    next_document_number: str


@dataclass(frozen=True)
class SequenceAuditReport:
    organization_id: str
    year: int
    count: int
    gaps: tuple[int, ...]
    duplicates: tuple[int, ...]
    last_number: str | None

    @property
    def has_gaps(self) -> bool:
        return bool(self.gaps)

    @property
    def is_clean(self) -> bool:
        return not self.gaps and not self.duplicates


def _issued_from_row(row: IssuedDocumentNumber) -> IssuedNumber:
    return IssuedNumber(
        organization_id=row.organization_id,
        document_number=row.document_number,
        sequence=row.sequence,
        year=row.year,
        issued_at=row.issued_at,
        document_id=row.document_id,
    )


def _restarts_yearly(number_format: NumberFormat) -> bool:
    # Without the year in the number, a restart would reissue last year's numbers.
    return number_format.include_year


class NumberingAuthority:
    """
    Sole issuer of permanent document numbers.

    Contract:
        ``issue_next`` returns the next number of an organization's
        sequence.  The caller owns the transaction: the authority flushes
        but never commits.

    Non-goals:
        - Does NOT create counters on demand (``create_counter`` is an
          explicit provisioning step).
        - Does NOT offer a reset; counters only move forward.

    Usage:
        # Once at startup, before any number is issued.  Without the
        # listeners the ORM can update or delete issued rows and rewind
        # counters; create_tables() installs SQL triggers on PostgreSQL only.
        init_engine_from_url(url)
        create_tables()
        register_immutability_listeners()

        with session_scope() as session:
            issued = NumberingAuthority(session, clock).issue_next("org-1")
            # issued.document_number == "2026-00001"
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_counter(
        self,
        organization_id: str,
        number_format: NumberFormat = DEFAULT_NUMBER_FORMAT,
        *,
        year: int | None = None,
        next_number: int = 1,
    ) -> CounterSnapshot:
        """
        Provision the counter of an organization.

        ``next_number`` above 1 continues a sequence started elsewhere
        (migration from another tool).
        """
        if next_number < 1:
            raise ValueError(f"next_number must be at least 1, got {next_number}")

        existing = self._session.execute(
            select(DocumentSequenceCounter.id)
            .where(DocumentSequenceCounter.organization_id == organization_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise CounterAlreadyExistsError(organization_id)

        counter = DocumentSequenceCounter(
            organization_id=organization_id,
            current_year=year if year is not None else self._clock.current_year(),
            next_number=next_number,
            prefix=number_format.prefix,
            include_year=number_format.include_year,
            year_format=number_format.year_format.value,
            sequence_digits=number_format.sequence_digits,
            separator=number_format.separator,
        )

        # Savepoint so a concurrent provisioning race does not roll back
        # the caller's other work.
        savepoint = self._session.begin_nested()
        try:
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise CounterAlreadyExistsError(organization_id) from exc

        logger.info(
            "sequence_counter_created",
            extra={
                "organization_id": organization_id,
                "current_year": counter.current_year,
                "next_number": next_number,
            },
        )
        return self._snapshot(counter)

    # ------------------------------------------------------------------
    # Issuing
    # ------------------------------------------------------------------

    def _lock_counter(self, organization_id: str) -> DocumentSequenceCounter:
        try:
            counter = self._session.execute(
                select(DocumentSequenceCounter)
                .where(DocumentSequenceCounter.organization_id == organization_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            logger.warning(
                "sequence_counter_lock_failed",
                extra={"organization_id": organization_id},
            )
            raise SequenceAllocationError(
                organization_id, "counter lock not acquired"
            ) from exc

        if counter is None:
            raise CounterNotFoundError(organization_id)
        return counter

    def issue_next(
        self, organization_id: str, document_id: str | None = None
    ) -> IssuedNumber:
        """
        Issue the next permanent number of ``organization_id``.

        Preconditions:
            - A counter was provisioned with ``create_counter``.
            - The caller is inside a transaction it will commit or roll back.

        Postconditions:
            - The counter row stays locked until the caller's transaction
              ends; ``next_number`` is one past the returned sequence.
            - A ledger row for the number is flushed.
        """
        with LogContext.bind(organization_id=organization_id, document_id=document_id):
            counter = self._lock_counter(organization_id)

            now = self._clock.now()
            clock_year = now.year
            number_format = counter.number_format()
            rolled_over = False

            if clock_year < counter.current_year:
                raise CounterYearRegressionError(
                    organization_id, counter.current_year, clock_year
                )
            if clock_year > counter.current_year:
                logger.info(
                    "sequence_year_rollover",
                    extra={
                        "previous_year": counter.current_year,
                        "new_year": clock_year,
                        "previous_next_number": counter.next_number,
                        "restarts": _restarts_yearly(number_format),
                    },
                )
                counter.current_year = clock_year
                if _restarts_yearly(number_format):
                    counter.next_number = 1
                rolled_over = True

            sequence = counter.next_number
            document_number = format_document_number(
                sequence, counter.current_year, number_format
            )
            counter.next_number = sequence + 1

            self._session.add(
                IssuedDocumentNumber(
                    organization_id=organization_id,
                    document_number=document_number,
                    year=counter.current_year,
                    sequence=sequence,
                    document_id=document_id,
                    issued_at=now,
                )
            )

            try:
                self._session.flush()
            except IntegrityError as exc:
                logger.error(
                    "document_number_collision",
                    extra={"document_number": document_number, "sequence": sequence},
                )
                raise DuplicateDocumentNumberError(organization_id, document_number) from exc
            except OperationalError as exc:
                raise SequenceAllocationError(
                    organization_id, "counter write failed"
                ) from exc

            logger.info(
                "document_number_issued",
                extra={
                    "document_number": document_number,
                    "sequence": sequence,
                    "year": counter.current_year,
                },
            )
            return IssuedNumber(
                organization_id=organization_id,
                document_number=document_number,
                sequence=sequence,
                year=counter.current_year,
                issued_at=now,
                document_id=document_id,
                rolled_over=rolled_over,
            )

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def _snapshot(self, counter: DocumentSequenceCounter) -> CounterSnapshot:
        number_format = counter.number_format()
        year = max(counter.current_year, self._clock.current_year())
        next_number = counter.next_number
        if year > counter.current_year and _restarts_yearly(number_format):
            next_number = 1
        return CounterSnapshot(
            organization_id=counter.organization_id,
            current_year=counter.current_year,
            next_number=counter.next_number,
            number_format=number_format,
            next_document_number=format_document_number(next_number, year, number_format),
        )

    def peek(self, organization_id: str) -> CounterSnapshot:
        """Current counter state without locking or changing it."""
        counter = self._session.execute(
            select(DocumentSequenceCounter)
            .where(DocumentSequenceCounter.organization_id == organization_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counter is None:
            raise CounterNotFoundError(organization_id)
        return self._snapshot(counter)

    def issued_numbers(
        self, organization_id: str, year: int | None = None
    ) -> list[IssuedNumber]:
        """Ledger entries of an organization, in issue order."""
        query = select(IssuedDocumentNumber).where(
            IssuedDocumentNumber.organization_id == organization_id
        )
        if year is not None:
            query = query.where(IssuedDocumentNumber.year == year)
        query = query.order_by(IssuedDocumentNumber.year, IssuedDocumentNumber.sequence)
        rows = self._session.execute(query).scalars().all()
        return [_issued_from_row(row) for row in rows]

    def number_exists(self, organization_id: str, document_number: str) -> bool:
        found = self._session.execute(
            select(IssuedDocumentNumber.id)
            .where(IssuedDocumentNumber.organization_id == organization_id)
            .where(IssuedDocumentNumber.document_number == document_number)
            .limit(1)
        ).first()
        return found is not None

    def audit_sequence(
        self,
        organization_id: str,
        year: int | None = None,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> SequenceAuditReport:
        """
        Gap and duplicate audit of one year of an organization's numbers.

        ``year`` defaults to the counter year.  Used for compliance audits,
        never on the issuing path.
        """
        if year is None:
            year = self.peek(organization_id).current_year

        issued = self.issued_numbers(organization_id, year)
        numbers = [entry.document_number for entry in issued]
        report = SequenceAuditReport(
            organization_id=organization_id,
            year=year,
            count=len(numbers),
            gaps=tuple(find_gaps(numbers, range_start, range_end)),
            duplicates=tuple(find_duplicates(numbers)),
            last_number=issued[-1].document_number if issued else None,
        )

        log = logger.warning if not report.is_clean else logger.info
        log(
            "sequence_audited",
            extra={
                "organization_id": organization_id,
                "year": year,
                "count": report.count,
                "gap_count": len(report.gaps),
                "duplicate_count": len(report.duplicates),
            },
        )
        return report


def allocate_document_number(
    session_factory: sessionmaker[Session],
    organization_id: str,
    *,
    document_id: str | None = None,
    clock: Clock | None = None,
    max_attempts: int = 5,
    backoff_seconds: float = 0.05,
) -> IssuedNumber:
    """
    Issue a number in its own transaction, retrying retryable failures.

    Each attempt opens a fresh session, issues and commits.  A
    SequenceAllocationError (or a driver failure on commit) rolls the
    attempt back and retries with linear backoff; any other error is
    raised at once.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            issued = NumberingAuthority(session, clock).issue_next(
                organization_id, document_id
            )
            try:
                session.commit()
            except OperationalError as exc:
                raise SequenceAllocationError(
                    organization_id, "commit of counter increment failed"
                ) from exc
            return issued
        except SequenceAllocationError:
            session.rollback()
            if attempt == max_attempts:
                logger.error(
                    "sequence_allocation_exhausted",
                    extra={"organization_id": organization_id, "attempts": attempt},
                )
                raise
            logger.warning(
                "sequence_allocation_retry",
                extra={
                    "organization_id": organization_id,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                },
            )
            time.sleep(backoff_seconds * attempt)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise AssertionError("unreachable")
