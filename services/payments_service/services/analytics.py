"""Roll payment records up into the dashboard analytics report.

``build_report`` is a pure reducer over already-loaded records: the same
records in always give the same report out. ``aggregate`` does the
querying (and the optional previous-period comparison) around it.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from libs.common.currency import cents_to_dollars
from libs.common.datetime_utils import as_utc
from libs.common.logging import get_logger
from services.payments_service.models import (
    Division,
    PaymentRecord,
    PaymentType,
    PricingTier,
    RecordStatus,
)
from services.payments_service.schemas.analytics import (
    AnalyticsReport,
    CityBreakdown,
    DailyPoint,
    Linkage,
    PaymentTypeStats,
    PeriodComparison,
    SkippedReferences,
    StatusStats,
    TierStats,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnalyticsFilters:
    city_id: Optional[uuid.UUID] = None
    # Inclusive calendar dates (UTC)
    start: Optional[date] = None
    end: Optional[date] = None

    def previous_period(self) -> Optional["AnalyticsFilters"]:
        """Window of the same length ending the day before ``start``."""
        if self.start is None or self.end is None:
            return None
        length = self.end - self.start
        previous_end = self.start - timedelta(days=1)
        return AnalyticsFilters(
            city_id=self.city_id,
            start=previous_end - length,
            end=previous_end,
        )


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _city_of(record: PaymentRecord):
    division = record.division
    return division.city if division is not None else None


def build_report(records: Iterable[PaymentRecord]) -> AnalyticsReport:
    """Summarize records in one pass. Reads only; never mutates a record."""
    total_count = 0
    total_paid = 0
    by_type = {t: {"count": 0, "paid": 0, "with_user": 0} for t in PaymentType}
    by_tier = {t: {"count": 0, "paid": 0} for t in PricingTier}
    by_status = {s: {"count": 0, "amount": 0} for s in RecordStatus}
    with_user = without_user = 0
    cities: dict[uuid.UUID, dict] = {}
    daily: dict[date, dict] = defaultdict(lambda: {"count": 0, "paid": 0})
    skipped = SkippedReferences()

    for record in records:
        paid = record.amount_paid_cents or 0
        total_count += 1
        total_paid += paid

        type_bucket = by_type[record.payment_type]
        type_bucket["count"] += 1
        type_bucket["paid"] += paid

        by_tier[record.pricing_tier]["count"] += 1
        by_tier[record.pricing_tier]["paid"] += paid
        by_status[record.status]["count"] += 1
        by_status[record.status]["amount"] += paid

        player = record.player
        if player is None:
            skipped.missing_player += 1
            logger.warning(
                "Analytics: record %s has no resolvable player; excluded from linkage",
                record.id,
            )
        elif player.user_id is not None:
            with_user += 1
            type_bucket["with_user"] += 1
        else:
            without_user += 1

        city = _city_of(record)
        if city is None:
            skipped.missing_city += 1
            logger.warning(
                "Analytics: record %s has no resolvable city; excluded from cities",
                record.id,
            )
        else:
            bucket = cities.setdefault(
                city.id, {"name": city.name, "count": 0, "paid": 0}
            )
            bucket["count"] += 1
            bucket["paid"] += paid

        created = as_utc(record.created_at)
        if created is not None:
            day = daily[created.date()]
            day["count"] += 1
            day["paid"] += paid

    resolvable = with_user + without_user
    return AnalyticsReport(
        total_count=total_count,
        total_paid=cents_to_dollars(total_paid),
        by_payment_type={
            t: PaymentTypeStats(
                count=v["count"],
                paid=cents_to_dollars(v["paid"]),
                with_user_account=v["with_user"],
            )
            for t, v in by_type.items()
        },
        by_pricing_tier={
            t: TierStats(count=v["count"], paid=cents_to_dollars(v["paid"]))
            for t, v in by_tier.items()
        },
        by_status={
            s: StatusStats(count=v["count"], amount=cents_to_dollars(v["amount"]))
            for s, v in by_status.items()
        },
        linkage=Linkage(
            with_user_account=with_user,
            without_user_account=without_user,
            rate=round(with_user / resolvable * 100, 2) if resolvable else None,
        ),
        cities_breakdown=[
            CityBreakdown(
                city_id=city_id,
                city_name=v["name"],
                count=v["count"],
                paid=cents_to_dollars(v["paid"]),
            )
            for city_id, v in sorted(
                cities.items(),
                key=lambda item: (item[1]["name"].lower(), str(item[0])),
            )
        ],
        daily_trend=[
            DailyPoint(date=day, count=v["count"], paid=cents_to_dollars(v["paid"]))
            for day, v in sorted(daily.items())
        ],
        skipped=skipped,
    )


def _change_pct(current, previous) -> Optional[float]:
    if not previous:
        return None
    return round((float(current) - float(previous)) / float(previous) * 100, 2)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _start_of_day(day: Optional[date]) -> Optional[datetime]:
    if day is None:
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _day_bounds(filters: AnalyticsFilters):
    """Half-open UTC datetime range covering the inclusive date filters."""
    end = filters.end + timedelta(days=1) if filters.end else None
    return _start_of_day(filters.start), _start_of_day(end)


async def fetch_records(
    db: AsyncSession, filters: AnalyticsFilters
) -> list[PaymentRecord]:
    query = select(PaymentRecord)
    if filters.city_id:
        query = query.join(Division, PaymentRecord.division_id == Division.id).where(
            Division.city_id == filters.city_id
        )
    start, end = _day_bounds(filters)
    if start is not None:
        query = query.where(PaymentRecord.created_at >= start)
    if end is not None:
        query = query.where(PaymentRecord.created_at < end)
    result = await db.execute(query.order_by(PaymentRecord.created_at))
    return list(result.scalars().all())


async def aggregate(
    db: AsyncSession,
    filters: Optional[AnalyticsFilters] = None,
    *,
    compare_previous: bool = False,
) -> AnalyticsReport:
    filters = filters or AnalyticsFilters()
    report = build_report(await fetch_records(db, filters))

    previous = filters.previous_period() if compare_previous else None
    if previous is not None:
        previous_report = build_report(await fetch_records(db, previous))
        report.previous_period = PeriodComparison(
            start=previous.start,
            end=previous.end,
            total_count=previous_report.total_count,
            total_paid=previous_report.total_paid,
            count_change_pct=_change_pct(
                report.total_count, previous_report.total_count
            ),
            paid_change_pct=_change_pct(report.total_paid, previous_report.total_paid),
            cities_breakdown=previous_report.cities_breakdown,
            daily_trend=previous_report.daily_trend,
        )

    logger.info(
        "Built analytics report: %d records, %s paid (city=%s, %s..%s)",
        report.total_count,
        report.total_paid,
        filters.city_id,
        filters.start,
        filters.end,
    )
    return report
