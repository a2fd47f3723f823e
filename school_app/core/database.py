from typing import Any, AsyncGenerator

from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncAttrs
from sqlalchemy.orm import DeclarativeBase

from school_app.core.config import settings
from school_app.core.logger import logger

engine_options = {"echo": False}
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options.update(pool_size=5, max_overflow=10)

engine = create_async_engine(url=settings.DATABASE_URL, **engine_options)
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

class Base(AsyncAttrs, DeclarativeBase):
    pass

# SQLite only autoincrements INTEGER primary keys
BigIntId = BigInteger().with_variant(Integer, "sqlite")

async def get_db() -> AsyncGenerator[AsyncSession | Any, Any]:
    async with AsyncSessionLocal() as session:
        logger.debug("Database session opened")
        try:
            yield session
        finally:
            logger.debug("Database session closed")

def get_session_factory() -> async_sessionmaker:
    return AsyncSessionLocal
