from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..models import Base


def to_async_url(database_url: str) -> str:
    """For SQLite, we need to use the aiosqlite driver."""
    return database_url.replace("sqlite:///", "sqlite+aiosqlite:///")


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async SQLAlchemy engine for a database URL."""
    return create_async_engine(to_async_url(database_url), echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables asynchronously."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
