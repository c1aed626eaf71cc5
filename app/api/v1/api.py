"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from app.api.v1.endpoints import (
    bookings,
    payment,
    inventory,
    reports,
    health
)
from app.schemas.response import ErrorResponse

# Error envelope documented for every authenticated router
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 403, 404, 409, 503)
}

api_router = APIRouter()

# Include all routers
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"], responses=ERROR_RESPONSES)
api_router.include_router(payment.router, prefix="/payments", tags=["Payments"], responses=ERROR_RESPONSES)
api_router.include_router(inventory.router, prefix="/inventory", tags=["Inventory"], responses=ERROR_RESPONSES)
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"], responses=ERROR_RESPONSES)
api_router.include_router(health.router, prefix="/health", tags=["Health"])
