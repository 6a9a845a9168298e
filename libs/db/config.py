from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import Settings, get_settings


class Database:
    """Connection pool plus session factory, built once per process.

    The API builds one in its lifespan handler and the worker in its
    startup hook; both hand sessions to the service layer explicitly.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Database":
        settings = settings or get_settings()
        engine_kwargs = {
            # echo=True for local dev to see SQL queries
            "echo": settings.ENVIRONMENT == "local",
            "future": True,
            "pool_pre_ping": True,
        }
        if not settings.DATABASE_URL.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
            )
        return cls(create_async_engine(settings.DATABASE_URL, **engine_kwargs))

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def dispose(self) -> None:
        await self.engine.dispose()
