"""Async engine and session plumbing for the PropDesk database."""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
import structlog

from propdesk.config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    pass


def _engine_options() -> tuple[str, dict]:
    """
    asyncpg rejects libpq's ``sslmode`` query parameter; hosted Postgres
    URLs often carry one, so it is moved into ``connect_args``.
    """
    url = make_url(settings.DATABASE_URL)
    sslmode = url.query.get("sslmode")
    url = url.difference_update_query(["sslmode"])
    use_ssl = settings.DB_SSL or sslmode in ("require", "verify-ca", "verify-full")
    return (
        url.render_as_string(hide_password=False),
        {"ssl": "require"} if use_ssl else {},
    )


_db_url, _connect_args = _engine_options()

engine: AsyncEngine = create_async_engine(
    _db_url,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    connect_args=_connect_args,
)

# expire_on_commit=False: route handlers build responses from rows after commit
async_session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db():
    """Request-scoped session; commits when the handler returns, rolls back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("db_connected", ssl=bool(_connect_args))


async def close_db():
    await engine.dispose()
    logger.info("db_disconnected")
