"""
NumberingAuthority tests.

Verifies:
- Counters are provisioned explicitly and missing counters fail closed
- Numbers are contiguous, formatted from the counter layout and ledgered
- Yearly rollover restarts the sequence; a backward clock is refused
- A rolled-back issue leaves the counter unchanged
- Gap and duplicate audits over the ledger
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.domain.numbering import NumberFormat, YearFormat
from invoice_kernel.exceptions import (
    CounterAlreadyExistsError,
    CounterNotFoundError,
    CounterYearRegressionError,
    DuplicateDocumentNumberError,
    SequenceAllocationError,
)
from invoice_kernel.models.issued_number import IssuedDocumentNumber
from invoice_kernel.models.sequence_counter import DocumentSequenceCounter
from invoice_kernel.services import numbering_service
from invoice_kernel.services.numbering_service import (
    NumberingAuthority,
    allocate_document_number,
)

ORG = "org-acme"


@pytest.fixture
def authority(session, clock):
    return NumberingAuthority(session, clock)


class TestCreateCounter:

    def test_create(self, authority):
        snapshot = authority.create_counter(ORG)
        assert snapshot.organization_id == ORG
        assert snapshot.current_year == 2026
        assert snapshot.next_number == 1
        assert snapshot.next_document_number == "2026-00001"

    def test_create_with_layout(self, authority):
        fmt = NumberFormat(prefix="FAC", year_format=YearFormat.SHORT, sequence_digits=4, separator="/")
        snapshot = authority.create_counter(ORG, fmt, next_number=120)
        assert snapshot.number_format == fmt
        assert snapshot.next_document_number == "FAC/26/0120"

    def test_duplicate_counter_refused(self, authority):
        authority.create_counter(ORG)
        with pytest.raises(CounterAlreadyExistsError) as exc_info:
            authority.create_counter(ORG)
        assert exc_info.value.code == "COUNTER_ALREADY_EXISTS"

    def test_next_number_must_be_positive(self, authority):
        with pytest.raises(ValueError):
            authority.create_counter(ORG, next_number=0)

    def test_logged(self, authority, captured_logs):
        authority.create_counter(ORG)
        records = [r for r in captured_logs() if r["message"] == "sequence_counter_created"]
        assert len(records) == 1
        assert records[0]["organization_id"] == ORG


class TestIssueNext:

    def test_first_numbers(self, authority):
        authority.create_counter(ORG)
        first = authority.issue_next(ORG)
        second = authority.issue_next(ORG)

        assert first.document_number == "2026-00001"
        assert first.sequence == 1
        assert first.year == 2026
        assert second.document_number == "2026-00002"
        assert second.sequence == 2
        assert not first.rolled_over

    def test_prefixed_format(self, authority):
        fmt = NumberFormat(prefix="FA", include_year=True, sequence_digits=5, separator="-")
        authority.create_counter(ORG, fmt, next_number=7)

        issued = authority.issue_next(ORG)

        assert issued.document_number == "FA-2026-00007"
        assert authority.peek(ORG).next_number == 8

    def test_missing_counter_fails_closed(self, authority):
        with pytest.raises(CounterNotFoundError) as exc_info:
            authority.issue_next("org-unknown")
        assert exc_info.value.organization_id == "org-unknown"
        assert not exc_info.value.retryable

    def test_counters_are_per_organization(self, authority):
        authority.create_counter("org-a")
        authority.create_counter("org-b")

        assert authority.issue_next("org-a").sequence == 1
        assert authority.issue_next("org-a").sequence == 2
        assert authority.issue_next("org-b").sequence == 1

    def test_ledger_row_written(self, authority, session):
        authority.create_counter(ORG)
        authority.issue_next(ORG, document_id="draft-42")

        row = session.execute(select(IssuedDocumentNumber)).scalar_one()
        assert row.organization_id == ORG
        assert row.document_number == "2026-00001"
        assert row.sequence == 1
        assert row.year == 2026
        assert row.document_id == "draft-42"

    def test_format_change_applies_to_next_number(self, authority, session):
        authority.create_counter(ORG)
        authority.issue_next(ORG)

        counter = session.execute(select(DocumentSequenceCounter)).scalar_one()
        counter.prefix = "FA"
        session.flush()

        assert authority.issue_next(ORG).document_number == "FA-2026-00002"

    def test_logged_with_context(self, authority, captured_logs):
        authority.create_counter(ORG)
        authority.issue_next(ORG, document_id="draft-1")

        records = [r for r in captured_logs() if r["message"] == "document_number_issued"]
        assert len(records) == 1
        assert records[0]["organization_id"] == ORG
        assert records[0]["document_id"] == "draft-1"
        assert records[0]["document_number"] == "2026-00001"
        assert records[0]["sequence"] == 1


class TestRollback:

    def test_rolled_back_issue_leaves_counter_unchanged(self, authority, session):
        authority.create_counter(ORG)

        savepoint = session.begin_nested()
        authority.issue_next(ORG)
        savepoint.rollback()

        assert authority.peek(ORG).next_number == 1
        assert authority.issued_numbers(ORG) == []
        assert authority.issue_next(ORG).document_number == "2026-00001"


class TestYearRollover:

    def test_restart_at_one(self, authority):
        """Counter at Y-1 with next 42, issued in Y: 1 then 2."""
        authority.create_counter(ORG, year=2025, next_number=42)

        first = authority.issue_next(ORG)
        second = authority.issue_next(ORG)

        assert first.sequence == 1
        assert first.year == 2026
        assert first.document_number == "2026-00001"
        assert first.rolled_over
        assert second.sequence == 2
        assert not second.rolled_over

        snapshot = authority.peek(ORG)
        assert snapshot.current_year == 2026
        assert snapshot.next_number == 3

    def test_several_years_skipped(self, authority):
        authority.create_counter(ORG, year=2022, next_number=9)
        issued = authority.issue_next(ORG)
        assert (issued.year, issued.sequence) == (2026, 1)

    def test_year_less_format_continues(self, authority):
        """Without the year in the number, restarting would reissue numbers."""
        authority.create_counter(
            ORG, NumberFormat(prefix="F", include_year=False), year=2025, next_number=42
        )
        issued = authority.issue_next(ORG)
        assert issued.sequence == 42
        assert issued.year == 2026
        assert issued.document_number == "F-00042"

    def test_year_less_format_never_repeats(self, session):
        clock = DeterministicClock(datetime(2025, 12, 31, 23, 59, 59, tzinfo=timezone.utc))
        authority = NumberingAuthority(session, clock)
        authority.create_counter(ORG, NumberFormat(prefix="F", include_year=False))

        numbers = [authority.issue_next(ORG).document_number]
        clock.advance(1)
        numbers.append(authority.issue_next(ORG).document_number)
        clock.set_time(datetime(2027, 6, 1, tzinfo=timezone.utc))
        numbers.append(authority.issue_next(ORG).document_number)

        assert numbers == ["F-00001", "F-00002", "F-00003"]
        assert authority.peek(ORG).current_year == 2027

    def test_rollover_crossing_midnight(self, session):
        clock = DeterministicClock(datetime(2025, 12, 31, 23, 59, 59, tzinfo=timezone.utc))
        authority = NumberingAuthority(session, clock)
        authority.create_counter(ORG)

        assert authority.issue_next(ORG).document_number == "2025-00001"
        clock.advance(1)
        assert authority.issue_next(ORG).document_number == "2026-00001"

    def test_rollover_logged(self, authority, captured_logs):
        authority.create_counter(ORG, year=2025, next_number=42)
        authority.issue_next(ORG)

        records = [r for r in captured_logs() if r["message"] == "sequence_year_rollover"]
        assert len(records) == 1
        assert records[0]["previous_year"] == 2025
        assert records[0]["new_year"] == 2026
        assert records[0]["previous_next_number"] == 42

    def test_backward_clock_refused(self, authority):
        authority.create_counter(ORG, year=2027, next_number=5)

        with pytest.raises(CounterYearRegressionError) as exc_info:
            authority.issue_next(ORG)

        assert exc_info.value.counter_year == 2027
        assert exc_info.value.clock_year == 2026
        snapshot = authority.peek(ORG)
        assert (snapshot.current_year, snapshot.next_number) == (2027, 5)


class TestPeek:

    def test_peek_does_not_advance(self, authority):
        authority.create_counter(ORG)
        authority.peek(ORG)
        authority.peek(ORG)
        assert authority.issue_next(ORG).sequence == 1

    def test_peek_shows_pending_rollover(self, authority):
        authority.create_counter(ORG, year=2025, next_number=42)
        snapshot = authority.peek(ORG)
        assert snapshot.current_year == 2025
        assert snapshot.next_number == 42
        assert snapshot.next_document_number == "2026-00001"

    def test_peek_missing_counter(self, authority):
        with pytest.raises(CounterNotFoundError):
            authority.peek("org-unknown")


class TestLedgerQueries:

    def test_issued_numbers_in_order(self, authority, clock):
        authority.create_counter(ORG, year=2025)
        clock.set_time(datetime(2025, 6, 1, tzinfo=timezone.utc))
        authority.issue_next(ORG)
        clock.set_time(datetime(2026, 2, 1, tzinfo=timezone.utc))
        authority.issue_next(ORG)
        authority.issue_next(ORG)

        assert [n.document_number for n in authority.issued_numbers(ORG)] == [
            "2025-00001", "2026-00001", "2026-00002",
        ]
        assert [n.document_number for n in authority.issued_numbers(ORG, 2026)] == [
            "2026-00001", "2026-00002",
        ]

    def test_number_exists(self, authority):
        authority.create_counter(ORG)
        authority.issue_next(ORG)
        assert authority.number_exists(ORG, "2026-00001")
        assert not authority.number_exists(ORG, "2026-00002")
        assert not authority.number_exists("org-other", "2026-00001")


class TestAuditSequence:

    def test_clean_sequence(self, authority):
        authority.create_counter(ORG)
        for _ in range(3):
            authority.issue_next(ORG)

        report = authority.audit_sequence(ORG)

        assert report.year == 2026
        assert report.count == 3
        assert report.gaps == ()
        assert report.duplicates == ()
        assert report.last_number == "2026-00003"
        assert report.is_clean

    def test_expected_range(self, authority):
        authority.create_counter(ORG)
        for _ in range(3):
            authority.issue_next(ORG)

        report = authority.audit_sequence(ORG, range_start=1, range_end=5)
        assert report.gaps == (4, 5)
        assert report.has_gaps

    def test_migrated_counter_shows_leading_gap(self, authority, captured_logs):
        authority.create_counter(ORG, next_number=3)
        authority.issue_next(ORG)

        report = authority.audit_sequence(ORG, range_start=1)
        assert report.gaps == (1, 2)

        records = [r for r in captured_logs() if r["message"] == "sequence_audited"]
        assert records[-1]["level"] == "WARNING"
        assert records[-1]["gap_count"] == 2

    def test_empty_year(self, authority):
        authority.create_counter(ORG)
        report = authority.audit_sequence(ORG)
        assert report.count == 0
        assert report.last_number is None
        assert report.is_clean


class TestDuplicateBackstop:

    def test_collision_with_imported_number(self, authority, session):
        """A number already in the ledger is never issued a second time."""
        authority.create_counter(ORG)
        session.add(
            IssuedDocumentNumber(
                organization_id=ORG,
                document_number="2026-00001",
                year=2025,
                sequence=999,
                issued_at=datetime(2025, 12, 1, tzinfo=timezone.utc),
            )
        )
        session.flush()

        with pytest.raises(DuplicateDocumentNumberError) as exc_info:
            authority.issue_next(ORG)
        assert exc_info.value.document_number == "2026-00001"


class _StubSession:

    def __init__(self, log):
        self._log = log

    def commit(self):
        self._log.append("commit")

    def rollback(self):
        self._log.append("rollback")

    def close(self):
        self._log.append("close")


class _FlakyAuthority:
    """Fails with a retryable error a set number of times."""

    failures = 0
    calls = 0

    def __init__(self, session, clock=None):
        pass

    def issue_next(self, organization_id, document_id=None):
        type(self).calls += 1
        if type(self).calls <= type(self).failures:
            raise SequenceAllocationError(organization_id, "lock timeout")
        return numbering_service.IssuedNumber(
            organization_id=organization_id,
            document_number="2026-00001",
            sequence=1,
            year=2026,
            issued_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )


class TestAllocateRetries:

    @pytest.fixture
    def flaky(self, monkeypatch):
        _FlakyAuthority.calls = 0
        monkeypatch.setattr(numbering_service, "NumberingAuthority", _FlakyAuthority)
        return _FlakyAuthority

    def test_retries_then_commits(self, flaky, captured_logs):
        flaky.failures = 2
        log = []

        issued = allocate_document_number(
            lambda: _StubSession(log), ORG, backoff_seconds=0
        )

        assert issued.document_number == "2026-00001"
        assert flaky.calls == 3
        assert log == ["rollback", "close", "rollback", "close", "commit", "close"]
        retries = [r for r in captured_logs() if r["message"] == "sequence_allocation_retry"]
        assert [r["attempt"] for r in retries] == [1, 2]

    def test_exhausted(self, flaky, captured_logs):
        flaky.failures = 10
        log = []

        with pytest.raises(SequenceAllocationError) as exc_info:
            allocate_document_number(
                lambda: _StubSession(log), ORG, max_attempts=3, backoff_seconds=0
            )

        assert exc_info.value.retryable
        assert flaky.calls == 3
        assert log.count("commit") == 0
        assert any(r["message"] == "sequence_allocation_exhausted" for r in captured_logs())

    def test_non_retryable_raised_at_once(self, monkeypatch):
        class _Missing:
            def __init__(self, session, clock=None):
                pass

            def issue_next(self, organization_id, document_id=None):
                raise CounterNotFoundError(organization_id)

        monkeypatch.setattr(numbering_service, "NumberingAuthority", _Missing)
        log = []

        with pytest.raises(CounterNotFoundError):
            allocate_document_number(lambda: _StubSession(log), ORG, backoff_seconds=0)
        assert log == ["rollback", "close"]

    def test_max_attempts_validated(self):
        with pytest.raises(ValueError):
            allocate_document_number(lambda: None, ORG, max_attempts=0)
