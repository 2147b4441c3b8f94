"""SQLite database engine and session management."""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# Default database path (can be overridden via environment variable)
DEFAULT_DB_PATH = Path.home() / ".fly_pattern_db" / "fly_pattern_db.db"

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Get the SQLite database URL.

    Args:
        db_path: Optional path to the database file. If None, uses
                 DATABASE_URL env var or default path.

    Returns:
        SQLite connection URL.
    """
    if db_path is not None:
        path = Path(db_path)
    elif os.environ.get("DATABASE_URL"):
        # Support full URL or just path
        url = os.environ["DATABASE_URL"]
        if url.startswith("sqlite"):
            return url
        path = Path(url)
    else:
        path = DEFAULT_DB_PATH

    path.parent.mkdir(parents=True, exist_ok=True)

    return f"sqlite:///{path}"


def create_db_engine(db_path: Path | str | None = None, echo: bool = False):
    """
    Create a SQLAlchemy engine for SQLite.

    pysqlite's implicit transaction handling breaks SAVEPOINTs, so the driver
    is put in autocommit mode and SQLAlchemy emits BEGIN itself. Without this,
    session.begin_nested() cannot roll back a failed insert on its own.

    Args:
        db_path: Optional path to the database file.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = get_database_url(db_path)
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# Global engine and session factory (initialized lazily)
_engine = None
_SessionLocal = None


def get_engine(db_path: Path | str | None = None, echo: bool = False):
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None):
    """Get or create the global session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine(db_path)
        _SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
    return _SessionLocal


def reset_engine() -> None:
    """Reset the global engine and session factory (useful for testing)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            repo = StagedSourceRepository(session)
            ...
            session.commit()

    Yields:
        SQLAlchemy Session instance. Uncommitted work is rolled back on close.
    """
    session_factory = get_session_factory(db_path)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """
    Initialize the database by creating all tables.

    Tables that already exist are left untouched. Use run_migrations() to
    bring an existing database up to the latest schema revision.
    """
    from fly_pattern_db.db import models_catalog  # noqa: F401
    from fly_pattern_db.db.models import Base

    engine = get_engine(db_path)
    Base.metadata.create_all(bind=engine)


def run_migrations(db_path: Path | str | None = None, revision: str = "head") -> None:
    """
    Run Alembic migrations up to the given revision.

    Args:
        db_path: Optional path to the database file.
        revision: Target revision (default: latest).
    """
    if not MIGRATIONS_DIR.exists():
        raise FileNotFoundError(f"Migrations directory not found: {MIGRATIONS_DIR}")

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", get_database_url(db_path))
    command.upgrade(config, revision)
