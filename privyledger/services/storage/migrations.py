"""
Versioned schema migrations.

Applied migrations are tracked in schema_migrations. Pending migrations run
in ascending version order, each inside its own transaction together with
its bookkeeping row, so a failure leaves the schema at the last good version.

Migrations are never skipped: a database whose history has a gap, or that
was written by a newer build, is refused.
"""

import sqlite3
from typing import Callable

import structlog

from privyledger.models.records import utc_now
from privyledger.services.storage.interface import StorageError
from privyledger.services.storage.tables import Table, index_statements, table_spec

logger = structlog.get_logger(__name__)

# (version, name, apply_function)
Migration = tuple[int, str, Callable[[sqlite3.Connection], None]]


def _create_record_table(conn: sqlite3.Connection, table: Table) -> None:
    spec = table_spec(table)
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {spec.name} (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL
        )
        """
    )
    for statement in index_statements(spec):
        conn.execute(statement)


def _migration_001_core_tables(conn: sqlite3.Connection) -> None:
    """Accounts, transactions, loans, subscriptions, budgets, goals, rules."""
    for table in (
        Table.ACCOUNTS,
        Table.TRANSACTIONS,
        Table.LOANS,
        Table.SUBSCRIPTIONS,
        Table.BUDGETS,
        Table.GOALS,
        Table.RECURRING_RULES,
    ):
        _create_record_table(conn, table)


def _migration_002_credit_cards(conn: sqlite3.Connection) -> None:
    _create_record_table(conn, Table.CREDIT_CARDS)


def _migration_003_settings(conn: sqlite3.Connection) -> None:
    """Key-value settings (display preferences, passphrase verifier)."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


MIGRATIONS: list[Migration] = [
    (1, "core_tables", _migration_001_core_tables),
    (2, "credit_cards", _migration_002_credit_cards),
    (3, "settings", _migration_003_settings),
]


def _ensure_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at_utc TEXT NOT NULL
        )
        """
    )


def applied_versions(conn: sqlite3.Connection) -> list[int]:
    """Versions already recorded, ascending."""
    _ensure_migrations_table(conn)
    rows = conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()
    return [row[0] for row in rows]


def run_migrations(
    conn: sqlite3.Connection,
    migrations: list[Migration] = MIGRATIONS,
) -> list[tuple[int, str]]:
    """
    Apply pending migrations in order.

    The connection must be in autocommit mode (isolation_level=None) so the
    explicit BEGIN/COMMIT here are the only transaction boundaries.

    Returns the (version, name) pairs applied by this call.

    Raises:
        StorageError: history gap, unknown (newer) version, or a failing
            migration. A failing migration is rolled back; later ones are
            not attempted.
    """
    try:
        applied = set(applied_versions(conn))
    except sqlite3.Error as e:
        raise StorageError(f"Failed to read migration history: {e}") from e

    ordered = sorted(migrations, key=lambda m: m[0])
    known = {version for version, _, _ in ordered}

    unknown = applied - known
    if unknown:
        raise StorageError(
            f"Database schema version {max(unknown)} is newer than this build supports"
        )

    if applied:
        newest = max(applied)
        gaps = [version for version in sorted(known) if version < newest and version not in applied]
        if gaps:
            raise StorageError(f"Migration history has gaps: {gaps}")

    done: list[tuple[int, str]] = []
    for version, name, apply in ordered:
        if version in applied:
            continue
        try:
            conn.execute("BEGIN IMMEDIATE")
            apply(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, name, applied_at_utc) VALUES (?, ?, ?)",
                (version, name, utc_now().isoformat()),
            )
            conn.execute("COMMIT")
        except Exception as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Migration {version} ({name}) failed: {e}") from e
        logger.debug("migration_applied", version=version, name=name)
        done.append((version, name))

    return done
