"""
Database configuration and session management.

SQLite vs PostgreSQL Compatibility Notes:
-----------------------------------------
This module supports both SQLite (development) and PostgreSQL (production).
All SQL features used are compatible with both databases:

1. func.now() - Works on both (SQLite: datetime('now'), PostgreSQL: NOW())
2. ForeignKey with ondelete - Works on both (SQLite requires PRAGMA foreign_keys=ON)
3. ENUM types - Use SQLAlchemy's Enum() which creates VARCHAR on SQLite
4. Index creation - Syntax is compatible with both databases

Sharing grants reference credentials WITHOUT a storage-level cascade.
The application removes grants explicitly before deleting a credential
(see services/credentials.py), so the foreign key must be enforced on
SQLite as well for a missed grant to surface as an error.

For production, always use PostgreSQL with proper connection pooling.
"""

import logging

from config import get_settings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

settings = get_settings()
logger = logging.getLogger(__name__)

# Convert URL for async drivers
database_url = settings.DATABASE_URL
if database_url.startswith("postgres://"):
    database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
elif database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {
    "echo": False,
}

if not is_sqlite:
    # pool_pre_ping: Verify connections are alive before using them.
    # pool_size + max_overflow must stay below PostgreSQL's max_connections.
    engine_kwargs["pool_pre_ping"] = True
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 10

engine = create_async_engine(database_url, **engine_kwargs)


def enable_sqlite_foreign_keys(sync_engine) -> None:
    """SQLite does not enforce foreign keys by default - must be enabled per connection."""
    from sqlalchemy import event as sa_event

    @sa_event.listens_for(sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if is_sqlite:
    enable_sqlite_foreign_keys(engine.sync_engine)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Dependency that yields a database session.

    Routes are expected to call db.commit() explicitly when they want to
    persist changes. The rollback on exception is kept as a safety net.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create all tables that do not exist yet."""
    from sqlalchemy import text

    # Import models so they register with the metadata
    from models import activity_log, credential, sharing, user  # noqa: F401

    async with engine.begin() as conn:
        # For PostgreSQL: use advisory lock to prevent race conditions
        # when multiple workers start simultaneously
        if not is_sqlite:
            await conn.execute(text("SELECT pg_advisory_xact_lock(1)"))
            logger.info("Acquired database migration lock")

        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    logger.info("Database initialized successfully")
