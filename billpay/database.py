"""
Database engine, session factory and the per-request session dependency.

  - engine: async engine for DATABASE_URL
  - AsyncSessionLocal: session factory shared by requests and the webhook
    dispatcher (expire_on_commit=False, which the dispatcher's per-row
    commits depend on)
  - Base: declarative base for every ORM model
  - get_db(): one session per request, committed once at the end

Unit of work:
  A request's debit, ledger row and outbox row are all written through the
  same session and become durable together, by the single commit in
  get_db(). Any exception escaping the route rolls all of them back.

SQLite:
  SQLite is the development/test database. Foreign keys are switched on
  per connection (SQLite ignores them otherwise), and writers wait up to
  SQLITE_BUSY_TIMEOUT_SECONDS for the database lock instead of failing
  immediately when payments overlap.
"""

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from billpay.config import settings

logger = structlog.get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 15

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=not _is_sqlite,
    connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS} if _is_sqlite else {},
)

if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield a session for one request.

    Commits when the route returns normally; rolls back and re-raises on
    any exception, including HTTPExceptions raised by dependencies.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            logger.debug("request_rolled_back", error_type=exc.__class__.__name__)
            raise
