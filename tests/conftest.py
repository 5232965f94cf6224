from pathlib import Path

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.queue_store import SQLitePublishingQueueRepo
from tests.fakes import T0, FakeExecutor, InMemoryQueueStore

PROJECT_ROOT = Path(__file__).parent.parent
MIGRATIONS_DIR = str(PROJECT_ROOT / "migrations")
RULES_PATH = PROJECT_ROOT / "rules.yaml"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def store() -> InMemoryQueueStore:
    return InMemoryQueueStore()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """A migrated SQLite database in a temporary directory."""
    path = str(tmp_path / "data" / "queue.db")
    SQLiteMigrator(path, MIGRATIONS_DIR).run_migrations()
    return path


@pytest.fixture
def sqlite_repo(db_path: str) -> SQLitePublishingQueueRepo:
    return SQLitePublishingQueueRepo(db_path)
