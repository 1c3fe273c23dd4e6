"""
Database configuration and session management.
Supports SQLite (default) and PostgreSQL (optional override).
"""
import logging
import os

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from app.core.config import settings, PROJECT_ROOT
from app.core.logging_config import _sanitize_data
from app.middleware.request_logging import request_id_ctx, request_path_ctx

logger = logging.getLogger(__name__)

database_url = settings.effective_database_url
database_type = settings.database_type

logger.info(f"Using {database_type} database: {_sanitize_data(database_url)}")


def build_engine(url: str) -> Engine:
    """Create an engine tuned for the dialect in ``url``."""
    parsed = make_url(url)

    if parsed.drivername.startswith("sqlite"):
        is_sqlite_memory = parsed.database in (None, "", ":memory:")
        sqlite_engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if is_sqlite_memory else None,
        )

        @event.listens_for(sqlite_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not is_sqlite_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        logger.info(f"Configured SQLite engine ({'in-memory' if is_sqlite_memory else 'file-based'})")
        return sqlite_engine

    if parsed.drivername.startswith("postgres"):
        logger.info("Configured PostgreSQL engine with connection pooling")
        return create_engine(
            url,
            echo=False,
            pool_pre_ping=True,
            pool_size=20,
            max_overflow=10,
            pool_recycle=3600,
        )

    logger.warning(
        f"Using unsupported database type '{parsed.drivername}'. "
        "Install the appropriate DB driver for production use."
    )
    return create_engine(url, echo=False, pool_pre_ping=True)


engine = build_engine(database_url)


@event.listens_for(engine, "before_cursor_execute")
def _log_sql_statement(conn, cursor, statement, parameters, context, executemany):
    if not settings.log_sql_requests:
        return
    compact = " ".join(statement.split())
    if len(compact) > 800:
        compact = f"{compact[:800]}..."
    logger.info(
        "SQL statement path=%s request_id=%s",
        request_path_ctx.get(),
        request_id_ctx.get(),
        extra={"statement": compact},
    )


def create_db_and_tables():
    """Create database tables using Alembic migrations."""
    skip_db_init = os.getenv("SKIP_DB_INIT", "true").lower() in ("true", "1", "yes")
    if skip_db_init:
        logger.info("Skipping database initialization (performed by entrypoint script)")
        return

    # Register every table on the shared metadata before create_all
    import app.models  # noqa: F401

    try:
        logger.info("Running database migrations...")
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
        alembic_cfg.set_main_option("sqlalchemy.url", database_url)
        command.upgrade(alembic_cfg, "head")
        logger.info("Database migrations completed successfully")
    except Exception as exc:
        logger.error(exc)
        logger.info("Falling back to SQLModel create_all...")
        SQLModel.metadata.create_all(engine)
        logger.info("Database tables created successfully (fallback)")


def dialect_insert(session: Session, model):
    """
    Return an ``INSERT`` construct supporting ``on_conflict_do_update`` for the session's dialect.

    Core inserts bypass SQLModel default factories, so callers must pass
    ``id``, ``created_at`` and ``updated_at`` explicitly.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")
    return insert(model)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session


def get_session_context():
    """
    Get database session as context manager.

    Use this for Celery tasks and CLI commands.

    Example:
        with get_session_context() as session:
            ...
    """
    return Session(engine)


def init_db():
    """Initialize database tables."""
    logger.info("Initializing database...")
    create_db_and_tables()
    logger.info("Database initialization completed")
