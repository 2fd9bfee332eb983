import os
from typing import AsyncIterator, Callable, Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from craftsync_server.models import CloudInventoryItem, CloudProject

# Loads variables from the .env file
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./craftsync_server.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

SERVER_TABLES = [CloudProject.__table__, CloudInventoryItem.__table__]


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    url = database_url or DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL is not set")
    return create_async_engine(url, echo=SQL_ECHO, future=True)


async def init_db(engine: AsyncEngine):
    """Creates the remote tables on startup (only the server's own tables)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all, tables=SERVER_TABLES)


def session_dependency(engine: AsyncEngine) -> Callable[[], AsyncIterator[AsyncSession]]:
    """Builds the FastAPI dependency that yields one session per request"""
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def get_session() -> AsyncIterator[AsyncSession]:
        async with async_session() as session:
            yield session

    return get_session
