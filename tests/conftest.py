import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker


# taskseries.db builds its engine from settings at import time, so the
# settings file has to exist before any test module imports the package.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="taskseries-tests-"))
_SESSION_SETTINGS = _SESSION_DIR / "settings.yml"

SETTINGS_TEMPLATE = """
app:
  name: "TaskSeries"
security:
  jwt_secret: "test-jwt-secret"
  jwt_algorithm: "HS256"
  token_minutes: 60
database:
  path: "{db}"
recurrence:
  max_occurrences: {max_occurrences}
reconcile:
  interval_minutes: 0
rate_limit:
  enabled: true
logging:
  level: "INFO"
  dir: "{logs}"
"""


def write_settings(path: Path, *, db: Path, logs: Path, max_occurrences: int = 200) -> Path:
    path.write_text(
        SETTINGS_TEMPLATE.format(db=str(db), logs=str(logs), max_occurrences=max_occurrences).lstrip(),
        encoding="utf-8",
    )
    return path


write_settings(_SESSION_SETTINGS, db=_SESSION_DIR / "session.db", logs=_SESSION_DIR / "logs")
os.environ["TASKSERIES_SETTINGS"] = str(_SESSION_SETTINGS)


from taskseries.config import get_settings  # noqa: E402
from taskseries.crud import get_or_create_user  # noqa: E402
from taskseries.db import Base  # noqa: E402


@pytest.fixture
def settings_tmp(tmp_path, monkeypatch):
    """Isolate settings per test run."""
    path = write_settings(tmp_path / "settings.yml", db=tmp_path / "test.db", logs=tmp_path / "logs")
    monkeypatch.setenv("TASKSERIES_SETTINGS", str(path))
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


def make_engine(db_path: str):
    engine = create_engine(
        f"sqlite+pysqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def make_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    return Session()


@pytest.fixture
def engine(settings_tmp, tmp_path):
    eng = make_engine(str(tmp_path / "engine.db"))
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = make_session(engine)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    return get_or_create_user(db, auth_uid="user-1", name="User One", email="one@example.com")


@pytest.fixture
def other_user(db):
    return get_or_create_user(db, auth_uid="user-2", name="User Two")
