from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.settings import get_settings

settings = get_settings()

engine = create_async_engine(settings.database_url, echo=settings.DATABASE_ECHO)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for collaborators that write outside the request transaction (audit, notifications)."""
    return AsyncSessionLocal
