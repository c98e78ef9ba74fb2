import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from app.shared.core.config import settings
from app.shared.core.constants import DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_RECYCLE

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    logger.error("DATABASE_URL is missing in .env file")
    raise ValueError("DATABASE_URL is required")


def build_engine_kwargs(database_url: str) -> dict:
    """
    Engine options per backend.

    PostgreSQL runs behind PgBouncer/transaction pooler, so prepared statement
    caches are disabled. SQLite (local dev, tests) takes no pool sizing.
    """
    if database_url.startswith("sqlite"):
        return {"echo": False}

    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_recycle": DB_POOL_RECYCLE,
        "connect_args": {
            "statement_cache_size": 0,      # Disable prepared statement cache
            "prepared_statement_cache_size": 0
        },
    }


def configure_sqlite_engine(async_engine: AsyncEngine) -> AsyncEngine:
    """
    Make SQLite behave like PostgreSQL where the app relies on it:
    - foreign keys enforced (messages cascade with their contact)
    - SQLAlchemy emits BEGIN itself, so begin_nested() SAVEPOINTs work
    """
    sync_engine = async_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return async_engine


engine = create_async_engine(DATABASE_URL, **build_engine_kwargs(DATABASE_URL))

if DATABASE_URL.startswith("sqlite"):
    configure_sqlite_engine(engine)

# Session Factory
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

logger.info("Database engine initialized")


async def get_db():
    """Dependency for FastAPI routes to get a DB session"""
    async with AsyncSessionLocal() as session:
        yield session
