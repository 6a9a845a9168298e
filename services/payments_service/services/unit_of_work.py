"""Transaction boundary shared by every mutating payments operation."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from libs.common.logging import get_logger
from services.payments_service.errors import ConcurrentModificationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit the block's writes together or not at all.

    Any exception (cancellation included) rolls the session back before
    propagating. A version mismatch on a payment record, or a concurrent
    insert of the same (player, division) record, surfaces as
    ``ConcurrentModificationError`` so callers can retry with fresh state.
    """
    try:
        yield db
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("Rolled back concurrent payment write: %s", exc)
        raise ConcurrentModificationError(
            "Payment record was modified by another request; reload and retry"
        ) from exc
    except BaseException:
        await db.rollback()
        raise
