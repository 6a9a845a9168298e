"""Unit tests for the shared transaction boundary."""

import pytest
from services.payments_service.errors import ConcurrentModificationError
from services.payments_service.models import (
    PaymentRecord,
    PaymentType,
    Player,
    PricingTier,
)
from services.payments_service.services.records import get_division, new_record
from services.payments_service.services.unit_of_work import atomic
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError
from tests.factories import seed_league


async def _record_count(db) -> int:
    return (await db.execute(select(func.count(PaymentRecord.id)))).scalar_one()


async def _unsaved_record(db, league):
    player = await db.get(Player, league["player_ids"][0])
    division = await get_division(db, league["division_id"])
    return new_record(
        player=player,
        division=division,
        payment_type=PaymentType.CASH,
        pricing_tier=PricingTier.REGULAR,
        original_price_cents=12000,
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_atomic_commits_on_success(db_session):
    league = await seed_league(db_session)

    async with atomic(db_session):
        db_session.add(await _unsaved_record(db_session, league))

    assert await _record_count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_atomic_rolls_back_and_reraises(db_session):
    league = await seed_league(db_session)

    with pytest.raises(RuntimeError):
        async with atomic(db_session):
            db_session.add(await _unsaved_record(db_session, league))
            await db_session.flush()
            raise RuntimeError("boom")

    assert await _record_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_duplicate_record_is_a_concurrent_modification(db_session):
    """Two writers creating the same player's record: the second loses."""
    league = await seed_league(db_session)
    async with atomic(db_session):
        db_session.add(await _unsaved_record(db_session, league))

    with pytest.raises(ConcurrentModificationError):
        async with atomic(db_session):
            db_session.add(await _unsaved_record(db_session, league))

    assert await _record_count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_stale_version_is_a_concurrent_modification(db_session):
    with pytest.raises(ConcurrentModificationError) as excinfo:
        async with atomic(db_session):
            raise StaleDataError("version mismatch")

    assert isinstance(excinfo.value.__cause__, StaleDataError)
    assert excinfo.value.status_code == 409
