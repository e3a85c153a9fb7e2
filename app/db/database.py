import logging

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from app.core.config import settings
from app.models.errors import DatabaseUnavailableError

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.database_url,
    connect_args=settings.connect_args,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Tables whose serial ids may be supplied by CSV: table -> id column
SERIAL_ID_COLUMNS = {
    "participants": "id",
    "event_occurrence": "event_occurrence_id",
    "attendance": "attendance_id",
    "registration": "registration_id",
    "milestone": "milestone_id",
    "donations": "donation_id",
    "programs": "id",
    "program_enrollments": "id",
}

def init_db(bind=None):
    # Register the ORM models on Base before creating them
    from app.db import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

def check_connection(session: Session) -> None:
    """
    Runs a trivial query so a bad host/credential fails before any row is read.
    """
    try:
        session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise DatabaseUnavailableError(f"Cannot connect to database: {e}") from e

def reset_sequences(session: Session) -> None:
    """
    Moves PostgreSQL serial sequences past ids inserted explicitly from CSV,
    so the web app's own inserts do not collide with imported rows.
    """
    if session.get_bind().dialect.name != "postgresql":
        return

    for table, column in SERIAL_ID_COLUMNS.items():
        session.execute(
            text(
                f"SELECT setval(pg_get_serial_sequence('{table}', '{column}'), "
                f"COALESCE((SELECT MAX({column}) FROM {table}), 1), true)"
            )
        )
    session.commit()
    logger.info("Reset serial sequences for %d tables", len(SERIAL_ID_COLUMNS))
