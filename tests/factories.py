"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    division = DivisionFactory.create(regular_price_cents=12000)
    db_session.add(division)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timezone

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _unique_email() -> str:
    return f"player-{uuid.uuid4().hex[:8]}@test.com"


# ---------------------------------------------------------------------------
# League
# ---------------------------------------------------------------------------


class CityFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import City

        defaults = {
            "id": _uuid(),
            "name": "Toronto",
            "region": "ON",
            "etransfer_email": "payments-to@example.com",
            "is_active": True,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return City(**defaults)


class DivisionFactory:
    @staticmethod
    def create(**overrides):
        from services.payments_service.models import Division

        defaults = {
            "id": _uuid(),
            "name": "Tuesday Co-ed",
            "season": "Fall 2026",
            "city_id": None,
            "early_bird_price_cents": 10000,
            "regular_price_cents": 12000,
            "early_bird_open": False,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Division(**defaults)


class TeamFactory:
    @staticmethod
    def create(division_id, **overrides):
        from services.payments_service.models import Team

        defaults = {
            "id": _uuid(),
            "name": "Net Gains",
            "division_id": division_id,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Team(**defaults)


class PlayerFactory:
    @staticmethod
    def create(division_id=None, team_id=None, **overrides):
        from services.payments_service.models import Player

        defaults = {
            "id": _uuid(),
            "first_name": "Test",
            "last_name": "Player",
            "email": _unique_email(),
            "user_id": _uuid(),
            "division_id": division_id,
            "team_id": team_id,
            "is_team_captain": False,
            "is_free_agent": False,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Player(**defaults)


async def seed_league(db, *, players=1, city=True, **division_overrides):
    """Insert a city, division, team and ``players`` players on that team.

    Returns plain ids so tests never touch ORM instances that a rolled
    back operation may have expired.
    """
    city_obj = CityFactory.create() if city else None
    division = DivisionFactory.create(
        city_id=city_obj.id if city_obj else None, **division_overrides
    )
    team = TeamFactory.create(division_id=division.id)
    roster = [
        PlayerFactory.create(
            division_id=division.id,
            team_id=team.id,
            first_name=f"Player{index}",
            last_name=f"Number{index}",
            is_team_captain=index == 0,
        )
        for index in range(players)
    ]
    if city_obj is not None:
        db.add(city_obj)
    db.add_all([division, team, *roster])
    await db.commit()
    return {
        "city_id": city_obj.id if city_obj else None,
        "division_id": division.id,
        "team_id": team.id,
        "player_ids": [player.id for player in roster],
    }
