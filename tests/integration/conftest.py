"""Integration test fixtures.

Applies migrations/0001_portal_core.sql against an ephemeral PostgreSQL
database provided by pytest-postgresql before any integration test runs.
"""

from __future__ import annotations

from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_portal_core.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return a psycopg connection with schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            sql = migration.read_text(encoding="utf-8")
            conn.execute(sql)
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def seeded(db_conn):
    """Two teams, three people, one doubles pair (Ann has a partner, Bo does not)."""
    conn, dsn = db_conn
    conn.execute(
        "INSERT INTO teams (tnmt_id, team_name) VALUES ('T1', 'Team Alpha'), ('T2', 'Team Beta')"
    )
    conn.execute(
        """
        INSERT INTO doubles_pairs (did, pid, partner_pid, partner_first_name, partner_last_name)
        VALUES ('D1', '100', '300', 'Cy', 'Young'),
               ('D2', '200', NULL, NULL, NULL)
        """
    )
    conn.execute(
        """
        INSERT INTO people (pid, first_name, last_name, nickname, email, tnmt_id, did)
        VALUES ('100', 'Ann', 'Lee', 'Annie', 'ann@example.com', 'T1', 'D1'),
               ('200', 'Bo', 'Diaz', NULL, NULL, 'T2', 'D2'),
               ('300', 'Cy', 'Young', NULL, NULL, 'T1', 'D1')
        """
    )
    conn.execute(
        """
        INSERT INTO scores (id, pid, event_type, lane, game1, entering_avg, handicap)
        VALUES (gen_random_uuid(), '100', 'team', '12', 190, 180.00, 40)
        """
    )
    conn.commit()
    return conn, dsn
