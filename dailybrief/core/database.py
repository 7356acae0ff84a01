import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dailybrief.config import Settings
from dailybrief.core.logging import get_logger

logger = get_logger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1", "db")


def prepare_database_url(url: str) -> tuple[str, dict]:
    """
    Fix a Postgres connection URL for asyncpg compatibility.

    Hosted Postgres URLs carry params like sslmode and channel_binding that
    asyncpg doesn't accept. We strip them and handle SSL via connect_args.

    - For remote hosts: Use SSL with default context
    - For local dev (localhost/127.0.0.1/db) and SQLite: No SSL
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)

    # Remove unsupported asyncpg params
    for param in ["sslmode", "channel_binding", "options"]:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    hostname = parsed.hostname or ""
    if hostname in LOCAL_HOSTS:
        return clean_url, {}
    return clean_url, {"ssl": ssl.create_default_context()}


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for one process (job run, CLI call or scheduler)."""
    url, connect_args = prepare_database_url(settings.database_url)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.debug, connect_args=connect_args)

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=280,  # Recycle before hosted Postgres idle timeouts
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory that entry points hand to the services."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session that commits on success and rolls back on error."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise


def dialect_insert(session: AsyncSession, table):
    """Dialect-specific INSERT supporting ``on_conflict_do_*`` (Postgres or SQLite)."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise ValueError(f"Upserts are not supported on dialect {dialect!r}")
