from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cloudres.config import Settings, get_settings
from cloudres.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: Settings | None = None) -> None:
    """Initialise SQLAlchemy engine lazily with connection pooling."""

    global _engine, _session_factory

    cfg = settings or get_settings()
    if _engine is not None:
        return

    options: dict = {"echo": cfg.debug, "pool_pre_ping": True}
    if not cfg.database_url.startswith("sqlite"):
        options.update(
            pool_size=cfg.db_pool_size,
            max_overflow=cfg.db_max_overflow,
            pool_timeout=cfg.db_pool_timeout,
            pool_recycle=cfg.db_pool_recycle,
        )
    _engine = create_async_engine(cfg.database_url, **options)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        init_engine()
        assert _session_factory is not None
    return _session_factory


async def create_schema() -> None:
    """Create the record table if it does not exist yet."""
    get_session_factory()
    assert _engine is not None
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
