import os

import pytest

from library_ledger.circulation import CirculationService
from library_ledger.config import settings
from library_ledger.database import get_db_connection


@pytest.fixture
def db_file(tmp_path):
    # tmp_path is unique per test, so is the database
    return str(tmp_path / "library.db")


@pytest.fixture
def service(db_file, monkeypatch):
    # Generous lock wait so thread races in tests never hit the busy timeout
    monkeypatch.setattr(settings, "db_busy_timeout", 30.0)
    svc = CirculationService(db_file=db_file)
    yield svc
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_file + suffix):
            try:
                os.remove(db_file + suffix)
            except OSError:
                pass


@pytest.fixture
def conn(service):
    """Autocommit connection to the test database, for exercising the stores directly."""
    connection = get_db_connection(service.db_file)
    yield connection
    connection.close()
