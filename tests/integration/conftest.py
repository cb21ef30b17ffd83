"""
Integration test fixtures: an LMS schema in a temporary SQLite file.
"""

import pytest

from lms.backup_server.db.sqlite import SqliteDatabase

from .lms_schema import LMS_SCHEMA, SEED


@pytest.fixture
def empty_database(tmp_path):
    """LMS schema with no rows."""
    database = SqliteDatabase(str(tmp_path / "lms.db"))
    database.execute_script(LMS_SCHEMA)
    return database


@pytest.fixture
def seeded_database(empty_database):
    """LMS schema with a small course catalogue."""
    empty_database.execute_script(SEED)
    return empty_database


@pytest.fixture
def target_database(tmp_path):
    """Second database to restore into, with unrelated existing rows."""
    database = SqliteDatabase(str(tmp_path / "target.db"))
    database.execute_script(LMS_SCHEMA)
    database.execute_script(
        "INSERT INTO users (id, email) VALUES (77, 'stale@example.com');"
        "INSERT INTO courses (id, title) VALUES (177, 'Stale');"
    )
    return database
