"""Routers package."""

from services.payments_service.routers.admin import router as admin_router
from services.payments_service.routers.analytics import router as analytics_router
from services.payments_service.routers.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "analytics_router",
    "webhooks_router",
]
