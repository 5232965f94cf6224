import sqlite3
from pathlib import Path

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator
from tests.fakes import T0

MIGRATIONS_DIR = str(Path(__file__).parent.parent.parent / "migrations")


@pytest.fixture
def temp_db_path(tmp_path):
    return str(tmp_path / "test_db.sqlite")


def test_migrator_creates_migration_table(temp_db_path):
    SQLiteMigrator(temp_db_path, MIGRATIONS_DIR).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='_migrations'"
    )
    assert cursor.fetchone() is not None
    conn.close()


def test_migrator_creates_queue_table(temp_db_path):
    applied = SQLiteMigrator(temp_db_path, MIGRATIONS_DIR).run_migrations()
    assert applied == ["0001_publishing_queue.sql"]

    conn = sqlite3.connect(temp_db_path)
    columns = {row[1] for row in conn.execute("PRAGMA table_info(publishing_queue)")}
    indexes = {
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='index' AND tbl_name='publishing_queue'"
        )
    }
    conn.close()

    assert {"status", "priority", "scheduled_for", "retry_after", "deleted_at"} <= columns
    assert "idx_publishing_queue_priority" in indexes
    assert "idx_publishing_queue_retry" in indexes


def test_migrator_is_idempotent(temp_db_path):
    migrator = SQLiteMigrator(temp_db_path, MIGRATIONS_DIR)

    migrator.run_migrations()
    assert migrator.run_migrations() == []
    assert migrator.pending_migrations() == []

    conn = sqlite3.connect(temp_db_path)
    count = conn.execute("SELECT COUNT(*) FROM _migrations").fetchone()[0]
    conn.close()
    assert count == 1


def test_down_section_is_not_applied(temp_db_path):
    SQLiteMigrator(temp_db_path, MIGRATIONS_DIR).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='publishing_queue'"
    ).fetchone()
    conn.close()
    assert row is not None


def test_status_check_constraint(temp_db_path):
    SQLiteMigrator(temp_db_path, MIGRATIONS_DIR).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            """
            INSERT INTO publishing_queue
                (id, organization_id, article_id, platform, status, created_at, updated_at)
            VALUES ('x', 'o', 'a', 'wordpress', 'archived', ?, ?)
            """,
            (T0.isoformat(), T0.isoformat()),
        )
    conn.close()


def test_failed_migration_rolls_back(tmp_path, temp_db_path):
    bad_dir = tmp_path / "migrations"
    bad_dir.mkdir()
    (bad_dir / "0001_bad.sql").write_text("CREATE TABLE broken (;")

    with pytest.raises(RuntimeError, match="0001_bad.sql"):
        SQLiteMigrator(temp_db_path, str(bad_dir)).run_migrations()

    assert SQLiteMigrator(temp_db_path, str(bad_dir)).pending_migrations() == ["0001_bad.sql"]
