"""
Booking endpoints
"""

from typing import Any, Optional
from uuid import UUID
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_booking_service
from app.config import settings
from app.core.database import get_session
from app.core.security import CurrentUser, get_current_user
from app.models.booking import BookingStatus
from app.schemas.booking import BookingCreate, BookingUpdate, BookingResponse, BookingDeleteResponse
from app.schemas.response import SuccessResponse, PaginatedResponse, PaginationMeta
from app.services.booking_service import BookingService, format_booking_response

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=SuccessResponse[BookingResponse], status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: BookingService = Depends(get_booking_service)
) -> Any:
    """
    Book one tour, room or flight. Customers can only book for themselves.
    """
    booking = await service.create_booking(db, current_user, booking_data)
    return SuccessResponse(data=format_booking_response(booking), message="Booking created successfully")


@router.get("", response_model=PaginatedResponse[BookingResponse])
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.BOOKING_PAGE_SIZE_DEFAULT, ge=1, le=settings.BOOKING_PAGE_SIZE_MAX),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: BookingService = Depends(get_booking_service)
) -> Any:
    bookings, total = await service.list_bookings(
        db, current_user, page=page, limit=limit, status=status_filter, search=search
    )
    return PaginatedResponse(
        data=[format_booking_response(booking) for booking in bookings],
        pagination=PaginationMeta.build(total, page, limit),
    )


@router.get("/{booking_id}", response_model=SuccessResponse[BookingResponse])
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: BookingService = Depends(get_booking_service)
) -> Any:
    booking = await service.get_booking(db, current_user, booking_id)
    return SuccessResponse(data=format_booking_response(booking))


@router.put("/{booking_id}", response_model=SuccessResponse[BookingResponse])
async def update_booking(
    booking_id: UUID,
    booking_data: BookingUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: BookingService = Depends(get_booking_service)
) -> Any:
    """
    Change status, price, user or booked item (admins and agents)
    """
    booking = await service.update_booking(db, current_user, booking_id, booking_data)
    return SuccessResponse(data=format_booking_response(booking), message="Booking updated successfully")


@router.delete("/{booking_id}", response_model=SuccessResponse[BookingDeleteResponse])
async def delete_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: BookingService = Depends(get_booking_service)
) -> Any:
    """Staff only; `restored` lists the resource types that got a unit back"""
    deletion = await service.delete_booking(db, current_user, booking_id)
    return SuccessResponse(
        data=BookingDeleteResponse(id=deletion.id, restored=deletion.restored),
        message="Booking deleted successfully"
    )
