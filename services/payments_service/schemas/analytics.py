"""Versioned shape of the payments analytics report.

Reporting consumers pin ``schema_version``; bump it whenever a field is
renamed or removed.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from services.payments_service.models import PaymentType, PricingTier, RecordStatus

ANALYTICS_SCHEMA_VERSION = 1


class PaymentTypeStats(BaseModel):
    count: int = 0
    paid: Decimal = Decimal("0.00")
    with_user_account: int = 0


class TierStats(BaseModel):
    count: int = 0
    paid: Decimal = Decimal("0.00")


class StatusStats(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0.00")


class Linkage(BaseModel):
    with_user_account: int = 0
    without_user_account: int = 0
    # Percentage of resolvable players with an account; None when there are none.
    rate: Optional[float] = None


class CityBreakdown(BaseModel):
    city_id: uuid.UUID
    city_name: str
    count: int
    paid: Decimal


class DailyPoint(BaseModel):
    date: date
    count: int
    paid: Decimal


class SkippedReferences(BaseModel):
    """Records left out of a sub-metric because a reference did not resolve."""

    missing_city: int = 0
    missing_player: int = 0


class PeriodComparison(BaseModel):
    start: date
    end: date
    total_count: int
    total_paid: Decimal
    count_change_pct: Optional[float] = None
    paid_change_pct: Optional[float] = None
    cities_breakdown: list[CityBreakdown] = Field(default_factory=list)
    daily_trend: list[DailyPoint] = Field(default_factory=list)


class AnalyticsReport(BaseModel):
    schema_version: int = ANALYTICS_SCHEMA_VERSION
    total_count: int
    total_paid: Decimal
    by_payment_type: dict[PaymentType, PaymentTypeStats]
    by_pricing_tier: dict[PricingTier, TierStats]
    by_status: dict[RecordStatus, StatusStats]
    linkage: Linkage
    cities_breakdown: list[CityBreakdown]
    daily_trend: list[DailyPoint]
    skipped: SkippedReferences = Field(default_factory=SkippedReferences)
    previous_period: Optional[PeriodComparison] = None
