"""
Payment API Endpoints
Checkout, gateway callback and webhook, and admin reconciliation
"""

from typing import Any, Optional
from uuid import UUID
import logging
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_payment_service
from app.config import settings
from app.core.database import get_session
from app.core.security import CurrentUser, get_current_user, require_admin
from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.schemas.payment import (
    BookedItem,
    PaymentCreate,
    PaymentDeleteResponse,
    PaymentInitResponse,
    PaymentResponse,
    PaymentStatusChangeResponse,
    PaymentStatusUpdate,
    PaymentVerificationData,
    PaymentVerificationResponse,
    RefundRequest
)
from app.schemas.response import MessageResponse, PaginatedResponse, PaginationMeta, SuccessResponse
from app.services.booking_target import BookingTarget, ResourceType
from app.services.payment_service import PaymentReconciliationService, VerificationResult

logger = logging.getLogger(__name__)
router = APIRouter()

SIGNATURE_HEADER = "x-paystack-signature"


def _booked_item(payment: Payment) -> Optional[BookedItem]:
    booking = payment.booking
    if booking is None:
        return None
    target = BookingTarget.of(booking)
    if target.resource_type is ResourceType.TOUR:
        name, description = booking.tour.name, booking.tour.description
    elif target.resource_type is ResourceType.ROOM:
        name, description = booking.room.room_type, booking.room.description
    else:
        flight = booking.flight
        name = f"{flight.airline} {flight.flight_number}"
        description = f"{flight.origin} to {flight.destination}"
    return BookedItem(id=target.resource_id, type=target.resource_type, name=name, description=description)


def _format_payment_response(payment: Payment) -> PaymentResponse:
    response = PaymentResponse.model_validate(payment)
    response.booked_item = _booked_item(payment)
    return response


def _verification_response(result: VerificationResult) -> PaymentVerificationResponse:
    return PaymentVerificationResponse(
        success=result.success,
        message=result.message,
        data=PaymentVerificationData(
            reference=result.reference,
            booking_id=result.booking_id,
            payment_status=result.payment_status,
            amount=result.amount,
        ),
    )


@router.post("", response_model=PaymentInitResponse)
async def initiate_payment(
    payment_data: PaymentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    """Open a gateway checkout for a pending booking, or return the one still pending"""
    initiated = await service.initiate(db, current_user, payment_data.booking_id, payment_data.payment_method)
    return PaymentInitResponse(
        authorization_url=initiated.authorization_url,
        payment_id=initiated.payment_id,
        transaction_reference=initiated.transaction_reference,
    )


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.BOOKING_PAGE_SIZE_DEFAULT, ge=1, le=settings.BOOKING_PAGE_SIZE_MAX),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    search: Optional[str] = Query(None, max_length=100),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    payments, total = await service.list_payments(
        db,
        current_user,
        page=page,
        limit=limit,
        status=status_filter,
        payment_method=payment_method,
        user_id=user_id,
        search=search,
    )
    return PaginatedResponse(
        data=[_format_payment_response(payment) for payment in payments],
        pagination=PaginationMeta.build(total, page, limit),
    )


@router.get("/callback", response_model=PaymentVerificationResponse)
async def payment_callback(
    reference: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    """Gateway redirect target; verifies the transaction by reference"""
    result = await service.verify(db, reference, source="callback")
    return _verification_response(result)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    """Signed gateway events; the signature covers the raw body"""
    payload = await request.body()
    result = await service.handle_webhook(db, payload, request.headers.get(SIGNATURE_HEADER))
    if result is None:
        return MessageResponse(message="Event received")
    return _verification_response(result)


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    payment = await service.get_payment(db, current_user, payment_id)
    return SuccessResponse(data=_format_payment_response(payment))


@router.patch("/{payment_id}", response_model=SuccessResponse[PaymentStatusChangeResponse])
async def update_payment_status(
    payment_id: UUID,
    update: PaymentStatusUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    change = await service.update_status(db, payment_id, update.status)
    return SuccessResponse(
        data=PaymentStatusChangeResponse(
            payment_id=change.payment_id,
            status=change.status,
            booking_status=change.booking_status,
            updated_at=change.updated_at,
        ),
        message="Payment status updated successfully"
    )


@router.post("/{payment_id}/refund", response_model=SuccessResponse[PaymentStatusChangeResponse])
async def refund_payment(
    payment_id: UUID,
    refund_request: Optional[RefundRequest] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    reason = refund_request.reason if refund_request is not None else None
    change = await service.refund(db, payment_id, reason)
    return SuccessResponse(
        data=PaymentStatusChangeResponse(
            payment_id=change.payment_id,
            status=change.status,
            booking_status=change.booking_status,
            updated_at=change.updated_at,
            refund_amount=change.refund_amount,
            reason=change.reason,
        ),
        message="Payment refunded successfully"
    )


@router.delete("/{payment_id}", response_model=SuccessResponse[PaymentDeleteResponse])
async def delete_payment(
    payment_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    service: PaymentReconciliationService = Depends(get_payment_service)
) -> Any:
    booking_id = await service.delete(db, payment_id)
    return SuccessResponse(
        data=PaymentDeleteResponse(payment_id=payment_id, booking_id=booking_id),
        message="Payment deleted successfully"
    )
