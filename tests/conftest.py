import csv
import os

# Must be set before app.core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import init_db

# --- Shared Fixtures ---

@pytest.fixture
def engine():
    """
    Goal: A fresh in-memory SQLite database per test, with the full destination schema.
    StaticPool keeps the single in-memory connection alive across sessions.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture
def csv_dir(tmp_path):
    """
    Goal: A directory the importer reads its CSV files from.
    """
    directory = tmp_path / "csv"
    directory.mkdir()
    return directory

def write_csv(directory, filename, header, rows, bom=False):
    """
    Writes a small CSV file and returns its path.
    """
    path = directory / filename
    with open(path, "w", encoding="utf-8-sig" if bom else "utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path

@pytest.fixture
def make_csv(csv_dir):
    """
    Goal: Let tests drop CSV files into csv_dir with one call.
    Usage: make_csv("participants_table_v3.csv", header, rows)
    """
    def _make(filename, header, rows, bom=False):
        return write_csv(csv_dir, filename, header, rows, bom=bom)
    return _make
