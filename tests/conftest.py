from pathlib import Path

import pytest

from src.server.auth.database import AuthDatabase
from src.server.auth.settings import AuthSettings
from src.server.auth.store import SQLiteAuthStore


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def database(data_dir: Path):
    db = AuthDatabase(data_dir).init()
    yield db
    db.close()


@pytest.fixture
def store(database: AuthDatabase) -> SQLiteAuthStore:
    return SQLiteAuthStore(database)


@pytest.fixture
def auth_settings(data_dir: Path) -> AuthSettings:
    return AuthSettings(data_dir=data_dir, cleanup_enabled=False)
