"""Reporting endpoints: analytics report and CSV export."""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now
from libs.db.session import get_async_db
from services.payments_service.models import PlayerPaymentState
from services.payments_service.schemas import AnalyticsReport
from services.payments_service.services.analytics import AnalyticsFilters, aggregate
from services.payments_service.services.listing import (
    PlayerFilters,
    export_csv,
    list_players_with_payment_state,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/analytics", response_model=AnalyticsReport)
async def get_analytics(
    city_id: Optional[uuid.UUID] = Query(None),
    start: Optional[date] = Query(None, description="First day (UTC), inclusive"),
    end: Optional[date] = Query(None, description="Last day (UTC), inclusive"),
    compare_previous: bool = Query(False),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Payment totals by type, tier, status, city and day.
    With ``compare_previous`` and a full date range, the same-length window
    before ``start`` is reported alongside.
    """
    if start and end and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must be on or before end",
        )
    return await aggregate(
        db,
        AnalyticsFilters(city_id=city_id, start=start, end=end),
        compare_previous=compare_previous,
    )


@router.get("/export")
async def export_players_csv(
    city_id: Optional[uuid.UUID] = Query(None),
    division_id: Optional[uuid.UUID] = Query(None),
    team_id: Optional[uuid.UUID] = Query(None),
    state: Optional[PlayerPaymentState] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Download the filtered player payments list as CSV.
    """
    rows = await list_players_with_payment_state(
        db,
        PlayerFilters(
            city_id=city_id,
            division_id=division_id,
            team_id=team_id,
            state=state,
            search=search,
        ),
    )
    filename = f"player-payments-{utc_now().date().isoformat()}.csv"
    return Response(
        content=export_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
