"""
Module: invoice_kernel.db.triggers
Responsibility: Loading, installing and verifying the PostgreSQL triggers
    that back the numbering guarantees (Layer 2 of 2).  This is the
    database-level complement to the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (via PostgreSQL triggers in db/sql/):
    - issued_document_numbers rows: no UPDATE, no DELETE.
    - document_sequence_counters: next_number never decreases within a
      year, the year never moves backwards, no DELETE once numbers exist.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaces as
      InternalError/IntegrityError through SQLAlchemy).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_issued_number.sql",
    "02_sequence_counter.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_issued_number_immutability_update",
    "trg_issued_number_immutability_delete",
    "trg_sequence_counter_forward_update",
    "trg_sequence_counter_delete",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the database-level triggers.

    Preconditions: tables exist and the engine is connected to PostgreSQL.
    Trigger functions use CREATE OR REPLACE, so installing twice is safe.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_all_trigger_sql()))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the triggers and their functions."""
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
