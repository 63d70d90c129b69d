"""
SQLAlchemy async session setup for the conversation monitor.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from conversation_monitor.config import DATABASE_URL as _CONFIGURED_DATABASE_URL, DB_ECHO


def normalize_database_url(url: str) -> str:
    """Map sync driver URLs onto their async drivers (asyncpg / aiosqlite)."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


DATABASE_URL = normalize_database_url(_CONFIGURED_DATABASE_URL)

# Create async engine
async_engine = create_async_engine(
    DATABASE_URL,
    echo=DB_ECHO,  # Set DB_ECHO=true for SQL query logging
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session():
    """
    Dependency function to get database session.

    Usage in FastAPI endpoints:
        @router.post("/endpoint")
        async def my_endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

