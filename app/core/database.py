from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from .config import settings
from typing import AsyncGenerator, Optional

# Engine and session factory exist only when DATABASE_URL is set.
# Tables are created by the alembic migrations.
engine: Optional[AsyncEngine] = None
if settings.database_url:
    engine = create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_recycle=300,
    )

AsyncSessionLocal: Optional[async_sessionmaker] = None
if engine:
    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_session_factory() -> async_sessionmaker:
    """Session factory for code running outside a request (scheduled sync, CLI)"""
    if not AsyncSessionLocal:
        raise RuntimeError(
            "Database not configured. Please set DATABASE_URL in your .env file."
        )
    return AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with get_session_factory()() as session:
        yield session
