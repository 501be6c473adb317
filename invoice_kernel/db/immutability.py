"""
ORM-Level Immutability Enforcement for the numbering tables (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

A permanent document number, once issued, is never reissued, reused or
retracted.  The remedy for a wrong document is a compensating credit note,
never deletion or renumbering.  Two tables carry that guarantee:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers, see db/triggers.py)
    - Catches raw SQL and bulk UPDATE statements
    - Fires AT the database level, independent of application code

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                   | Rule
-------------------------|----------------------------------------------------
IssuedDocumentNumber     | ALWAYS immutable: no UPDATE, no DELETE
DocumentSequenceCounter  | next_number never decreases within a year;
                         | current_year never moves backwards;
                         | organization_id never changes;
                         | no DELETE once numbers were issued

updated_at is metadata and may change on any row.

===============================================================================
USAGE
===============================================================================

    from invoice_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from invoice_kernel.exceptions import ImmutabilityViolationError
from invoice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **extra,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _old_and_new(target, key: str):
    hist = get_history(target, key)
    if not hist.has_changes():
        return None
    old = hist.deleted[0] if hist.deleted else None
    new = hist.added[0] if hist.added else None
    return old, new


# =============================================================================
# Issued number ledger
# =============================================================================


def _check_issued_number_immutability(mapper, connection, target):
    """Issued numbers are never modified."""
    from invoice_kernel.models.issued_number import IssuedDocumentNumber

    if not isinstance(target, IssuedDocumentNumber):
        return

    for attr in inspect(target).attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "IssuedDocumentNumber",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' of an issued document number",
                field=attr.key,
            )


def _check_issued_number_delete(mapper, connection, target):
    """Issued numbers are never deleted."""
    from invoice_kernel.models.issued_number import IssuedDocumentNumber

    if not isinstance(target, IssuedDocumentNumber):
        return

    raise _blocked(
        "IssuedDocumentNumber",
        str(target.id),
        "DELETE",
        f"Issued document number {target.document_number} cannot be deleted",
    )


# =============================================================================
# Sequence counter
# =============================================================================


def _check_counter_update(mapper, connection, target):
    """
    Counters only move forward.

    Within a year next_number may only grow.  A year change must go to a
    later year; that is the rollover, where next_number restarts.
    """
    from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

    if not isinstance(target, DocumentSequenceCounter):
        return

    entity_id = str(target.id)

    if _old_and_new(target, "organization_id") is not None:
        raise _blocked(
            "DocumentSequenceCounter", entity_id, "UPDATE",
            "The organization of a sequence counter cannot change",
            field="organization_id",
        )

    year_change = _old_and_new(target, "current_year")
    if year_change is not None:
        old_year, new_year = year_change
        if old_year is not None and new_year is not None and new_year < old_year:
            raise _blocked(
                "DocumentSequenceCounter", entity_id, "UPDATE",
                f"Counter year cannot move backwards ({old_year} -> {new_year})",
                field="current_year",
            )
        return

    number_change = _old_and_new(target, "next_number")
    if number_change is not None:
        old_number, new_number = number_change
        if old_number is not None and new_number is not None and new_number < old_number:
            raise _blocked(
                "DocumentSequenceCounter", entity_id, "UPDATE",
                f"next_number cannot decrease within a year "
                f"({old_number} -> {new_number})",
                field="next_number",
            )


def _check_counter_deletion_before_flush(session, flush_context, instances):
    """
    A counter that has issued numbers cannot be deleted.

    Runs in before_flush: mapper-level delete events fire after the flush
    plan is fixed.
    """
    from invoice_kernel.models.issued_number import IssuedDocumentNumber
    from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

    for obj in list(session.deleted):
        if not isinstance(obj, DocumentSequenceCounter):
            continue

        with session.no_autoflush:
            issued = session.execute(
                select(func.count())
                .select_from(IssuedDocumentNumber)
                .where(IssuedDocumentNumber.organization_id == obj.organization_id)
            ).scalar_one()

        if issued:
            raise _blocked(
                "DocumentSequenceCounter", str(obj.id), "DELETE",
                f"Counter of {obj.organization_id} has issued {issued} number(s) "
                f"and cannot be deleted",
                organization_id=obj.organization_id,
            )


# =============================================================================
# Registration
# =============================================================================


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent; call after the models are importable and before any
    database operations begin.
    """
    from invoice_kernel.models.issued_number import IssuedDocumentNumber
    from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

    _safe_add_listener(Session, "before_flush", _check_counter_deletion_before_flush)

    _safe_add_listener(IssuedDocumentNumber, "before_update", _check_issued_number_immutability)
    _safe_add_listener(IssuedDocumentNumber, "before_delete", _check_issued_number_delete)

    _safe_add_listener(DocumentSequenceCounter, "before_update", _check_counter_update)


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    from invoice_kernel.models.issued_number import IssuedDocumentNumber
    from invoice_kernel.models.sequence_counter import DocumentSequenceCounter

    _safe_remove_listener(Session, "before_flush", _check_counter_deletion_before_flush)

    _safe_remove_listener(IssuedDocumentNumber, "before_update", _check_issued_number_immutability)
    _safe_remove_listener(IssuedDocumentNumber, "before_delete", _check_issued_number_delete)

    _safe_remove_listener(DocumentSequenceCounter, "before_update", _check_counter_update)
