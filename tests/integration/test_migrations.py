import os
import sqlite3
from pathlib import Path

import pytest

import veilstat
from veilstat.adapters.sqlite.migrator import DEFAULT_MIGRATIONS_DIR, SQLiteMigrator


@pytest.fixture
def temp_db_path(tmp_path):
    return str(tmp_path / "data" / "test_db.sqlite")


@pytest.fixture
def migrations_dir():
    # Shipped directory, so the SQL itself is exercised
    return DEFAULT_MIGRATIONS_DIR


def _tables(db_path: str) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    finally:
        conn.close()
    return {r[0] for r in rows}


def test_migrator_creates_parent_dir_and_tables(temp_db_path, migrations_dir):
    applied = SQLiteMigrator(temp_db_path, migrations_dir).run_migrations()

    assert applied == ["0001_events.sql", "0002_alerts.sql"]
    assert {"_migrations", "events", "alert_state", "alert_history"} <= _tables(temp_db_path)


def test_migrator_is_idempotent(temp_db_path, migrations_dir):
    migrator = SQLiteMigrator(temp_db_path, migrations_dir)

    migrator.run_migrations()
    assert migrator.run_migrations() == []

    conn = sqlite3.connect(temp_db_path)
    cursor = conn.execute("SELECT count(*) FROM _migrations")
    assert cursor.fetchone()[0] == 2
    conn.close()


def test_down_section_is_not_applied(tmp_path, temp_db_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "0001_t.sql").write_text(
        "-- Up\nCREATE TABLE t (id INTEGER);\n\n-- Down\nDROP TABLE t;\n"
    )

    SQLiteMigrator(temp_db_path, str(migrations)).run_migrations()

    assert "t" in _tables(temp_db_path)


def test_failed_migration_raises(tmp_path, temp_db_path):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "0001_bad.sql").write_text("CREATE TABLE (;\n")

    with pytest.raises(RuntimeError, match="0001_bad.sql"):
        SQLiteMigrator(temp_db_path, str(migrations)).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    assert conn.execute("SELECT count(*) FROM _migrations").fetchone()[0] == 0
    conn.close()


def test_default_dir_holds_shipped_migrations():
    assert sorted(p for p in os.listdir(DEFAULT_MIGRATIONS_DIR) if p.endswith(".sql")) == [
        "0001_events.sql",
        "0002_alerts.sql",
    ]


def test_default_dir_ships_inside_package():
    package_dir = Path(veilstat.__file__).resolve().parent
    assert Path(DEFAULT_MIGRATIONS_DIR).parent == package_dir
