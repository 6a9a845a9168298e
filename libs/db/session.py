from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import Database


def get_database(request: Request) -> Database:
    """Return the Database the app built at startup."""
    return request.app.state.database


async def get_async_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.
    """
    async with get_database(request).session() as session:
        try:
            yield session
        finally:
            await session.close()
