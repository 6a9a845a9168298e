"""League reference tables the payments engine reads.

Cities, divisions, teams and players are maintained by league admin
tooling; payments only needs their pricing, membership and location
fields, so that is all that is mapped here.
"""

import uuid
from datetime import datetime

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.payments_service.models.enums import PricingTier
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class City(Base):
    __tablename__ = "cities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    region: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Where players send Interac e-transfers for this city's divisions.
    etransfer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<City {self.name}>"


class Division(Base):
    __tablename__ = "divisions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    season: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Divisions created before cities existed have no city; analytics skips them.
    city_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("cities.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Prices in cents
    early_bird_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    regular_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    early_bird_open: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    city: Mapped[City | None] = relationship(lazy="selectin")

    def current_tier(self) -> PricingTier:
        if self.early_bird_open and self.early_bird_price_cents:
            return PricingTier.EARLY_BIRD
        return PricingTier.REGULAR

    def price_for(self, tier: PricingTier) -> int | None:
        if tier == PricingTier.EARLY_BIRD:
            return self.early_bird_price_cents
        return self.regular_price_cents

    def __repr__(self):
        return f"<Division {self.name}>"


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    division_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("divisions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    division: Mapped[Division] = relationship(lazy="selectin")

    def __repr__(self):
        return f"<Team {self.name}>"


class Player(Base):
    __tablename__ = "players"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Account reference (cross-service - references the identity service's users).
    # Null for players registered by an admin who never created an account.
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    division_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("divisions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_team_captain: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    is_free_agent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Player {self.full_name}>"
