"""
Report endpoints for admins and agents
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_report_service
from app.core.database import get_session
from app.core.security import CurrentUser, require_staff
from app.models.booking import BookingStatus
from app.models.payment import PaymentMethod, PaymentStatus
from app.models.tour import TourStatus
from app.schemas.report import BookingsSummary, PaymentsSummary, TopTours
from app.schemas.response import SuccessResponse
from app.services.report_service import ReportPeriod, ReportService

router = APIRouter()


def report_period(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate")
) -> ReportPeriod:
    return ReportPeriod.resolve(year=year, month=month, start_date=start_date, end_date=end_date)


@router.get("/bookings-summary", response_model=SuccessResponse[BookingsSummary])
async def bookings_summary(
    period: ReportPeriod = Depends(report_period),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    tour_id: Optional[UUID] = Query(None, alias="tourId"),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
    service: ReportService = Depends(get_report_service)
) -> Any:
    """Booking count and revenue by month and by status"""
    summary = await service.bookings_summary(
        db, period, status=status_filter, tour_id=tour_id, user_id=user_id
    )
    return SuccessResponse(data=summary, message="Bookings summary retrieved successfully")


@router.get("/payments-summary", response_model=SuccessResponse[PaymentsSummary])
async def payments_summary(
    period: ReportPeriod = Depends(report_period),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
    service: ReportService = Depends(get_report_service)
) -> Any:
    summary = await service.payments_summary(
        db,
        period,
        status=status_filter,
        payment_method=payment_method,
        user_id=user_id,
        currency=currency,
    )
    return SuccessResponse(data=summary, message="Payments summary retrieved successfully")


@router.get("/top-tours", response_model=SuccessResponse[TopTours])
async def top_tours(
    period: ReportPeriod = Depends(report_period),
    limit: int = Query(5, ge=1, le=20),
    min_bookings: int = Query(1, ge=0, alias="minBookings"),
    tour_status: Optional[TourStatus] = Query(None, alias="tourStatus"),
    current_user: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
    service: ReportService = Depends(get_report_service)
) -> Any:
    ranking = await service.top_tours(
        db, period, limit=limit, min_bookings=min_bookings, tour_status=tour_status
    )
    return SuccessResponse(
        data=ranking,
        message=f"Top {len(ranking.tours)} tours by booking count retrieved successfully"
    )
