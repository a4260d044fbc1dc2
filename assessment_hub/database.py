"""Database configuration and session dependency."""

from typing import Iterator

from sqlmodel import Session, SQLModel, create_engine

from assessment_hub.config import get_settings

settings = get_settings()

_connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

engine = create_engine(
    settings.database_url, echo=settings.sql_echo, connect_args=_connect_args
)


def create_db_and_tables() -> None:
    """Create database tables based on SQLModel metadata."""
    # Import models so their tables are registered on the metadata
    from assessment_hub import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    with Session(engine) as session:
        yield session
