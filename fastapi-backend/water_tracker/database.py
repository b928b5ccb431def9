from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

# Registers the kv_entries table on SQLModel.metadata
from . import models  # noqa: F401


def normalize_database_url(database_url: str) -> str:
    """Ensure we use the async drivers for postgres and sqlite."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://")
    if database_url.startswith("postgresql+psycopg2://"):
        return database_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://")
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def build_engine(database_url: str) -> AsyncEngine:
    database_url = normalize_database_url(database_url)
    engine_kwargs = {"echo": False, "future": True}
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}

        if (
            ":memory:" in database_url
            or "mode=memory" in database_url
            or database_url == "sqlite+aiosqlite://"
        ):
            # In-memory DBs must share one connection or the data vanishes with it
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["poolclass"] = NullPool
    elif "asyncpg" in database_url:
        engine_kwargs["poolclass"] = NullPool

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    # The key-value table is tiny and schema-stable, so create_all is enough
    # for both SQLite and Postgres.
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
