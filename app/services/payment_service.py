"""
Payment reconciliation against the Paystack gateway

A payment moves PENDING -> COMPLETED | FAILED, COMPLETED -> REFUNDED.
Every payment status change drives its booking's status in the same
transaction, and the inventory ledger follows the booking into and out of
CANCELLED.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple
import json
import logging
import time
import uuid

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.database import db_manager
from app.core.exceptions import WayfarerError
from app.core.metrics import metrics_collector
from app.core.security import CurrentUser
from app.models.base import utcnow
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.models.user import User
from app.services.booking_state import BookingStateMachine
from app.services.booking_target import BookingTarget
from app.services.inventory_ledger import InventoryLedger
from app.services.payment_gateway import PAYMENT_CHANNELS, from_minor_units, to_minor_units

logger = logging.getLogger(__name__)

# Booking status implied by each payment status
BOOKING_STATUS_FOR_PAYMENT = {
    PaymentStatus.PENDING: BookingStatus.PENDING,
    PaymentStatus.COMPLETED: BookingStatus.CONFIRMED,
    PaymentStatus.FAILED: BookingStatus.CANCELLED,
    PaymentStatus.REFUNDED: BookingStatus.CANCELLED,
}

SETTLED_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)

WEBHOOK_CHARGE_SUCCESS = "charge.success"


def validate_payment_transition(current: PaymentStatus, new: PaymentStatus) -> None:
    if current == PaymentStatus.REFUNDED and new != PaymentStatus.REFUNDED:
        raise WayfarerError.bad_request("Cannot change status of refunded payment")
    if current == PaymentStatus.COMPLETED and new == PaymentStatus.PENDING:
        raise WayfarerError.bad_request("Cannot change completed payment back to pending")


@dataclass
class InitiatedPayment:
    payment_id: uuid.UUID
    authorization_url: str
    transaction_reference: str
    created: bool = True


@dataclass
class VerificationResult:
    success: bool
    message: str
    reference: str
    booking_id: uuid.UUID
    payment_status: PaymentStatus
    amount: Decimal


@dataclass
class PaymentStatusChange:
    payment_id: uuid.UUID
    status: PaymentStatus
    booking_status: BookingStatus
    updated_at: object
    refund_amount: Optional[Decimal] = None
    reason: Optional[str] = None


class PaymentReconciliationService:
    """Keeps payments, bookings and inventory consistent with the gateway"""

    def __init__(
        self,
        gateway,
        ledger: Optional[InventoryLedger] = None,
        state_machine: Optional[BookingStateMachine] = None,
        currency: Optional[str] = None,
        callback_url: Optional[str] = None
    ):
        self.gateway = gateway
        self.ledger = ledger or InventoryLedger()
        self.state_machine = state_machine or BookingStateMachine()
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.callback_url = callback_url or settings.PAYSTACK_CALLBACK_URL
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

    async def initiate(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_id: uuid.UUID,
        payment_method
    ) -> InitiatedPayment:
        """
        Open a gateway checkout for a PENDING booking.
        A second call while the first payment is still PENDING returns the
        same checkout instead of creating another payment.

        The gateway is called between two short transactions so no row lock
        is held across the network call. The booking is re-checked before the
        payment row is written, and the unique booking_id on payments rejects
        a concurrent duplicate.
        """
        async with self.db_manager.transaction(db):
            booking = await self._payable_booking(db, current_user, booking_id)

            try:
                method = PaymentMethod(payment_method)
            except ValueError:
                raise WayfarerError.bad_request("Invalid payment method")

            existing = self._existing_checkout(booking)
            if existing is not None:
                return existing

            email = booking.user.email
            user_id = booking.user_id
            amount = Decimal(booking.total_price)

        reference = f"booking_{booking_id.hex}_{int(time.time() * 1000)}"
        checkout = await self.gateway.initialize_transaction(
            email=email,
            amount=to_minor_units(amount),
            currency=self.currency,
            reference=reference,
            channels=[PAYMENT_CHANNELS[method]],
            callback_url=self.callback_url,
            metadata={"bookingId": str(booking_id), "userId": str(user_id)},
        )

        try:
            async with self.db_manager.transaction(db):
                booking = await self._payable_booking(db, current_user, booking_id)
                existing = self._existing_checkout(booking)
                if existing is not None:
                    return existing
                if Decimal(booking.total_price) != amount:
                    raise WayfarerError.conflict("Booking total changed while the checkout was opened")

                payment = Payment(
                    booking_id=booking_id,
                    user_id=user_id,
                    amount=amount,
                    currency=self.currency,
                    payment_method=method,
                    status=PaymentStatus.PENDING,
                    transaction_reference=checkout.reference,
                    authorization_url=checkout.authorization_url,
                )
                db.add(payment)
                await db.flush()
                payment_id = payment.id
        except IntegrityError:
            raise WayfarerError.conflict("A payment already exists for this booking")

        self.logger.info(
            f"Payment initiated for booking {booking_id}",
            extra={"booking_id": str(booking_id), "reference": checkout.reference}
        )
        return InitiatedPayment(
            payment_id=payment_id,
            authorization_url=checkout.authorization_url,
            transaction_reference=checkout.reference,
        )

    async def verify(
        self,
        db: AsyncSession,
        reference: str,
        source: str = "callback"
    ) -> VerificationResult:
        """
        Reconcile a payment with the gateway's record of the transaction.
        Idempotent: settled payments are reported as they are without
        contacting the gateway again.
        """
        payment = await self._payment_by_reference(db, reference)
        if payment.status in SETTLED_STATUSES:
            metrics_collector.record_payment_verification(source, "already_settled")
            return self._settled_result(payment)

        # Outside the write transaction so no row lock is held across the network call
        verification = await self.gateway.verify_transaction(reference)
        paid_amount = from_minor_units(verification.amount)

        async with self.db_manager.transaction(db):
            payment = await self._payment_by_reference(db, reference, lock=True)
            if payment.status in SETTLED_STATUSES:
                metrics_collector.record_payment_verification(source, "already_settled")
                return self._settled_result(payment)

            booking = await self._lock_booking(db, payment.booking_id)

            failure = None
            if not verification.succeeded:
                failure = "Payment verification failed"
            elif paid_amount != Decimal(booking.total_price):
                failure = "Payment amount does not match booking total price"
            elif verification.currency and verification.currency.upper() != payment.currency.upper():
                failure = "Payment currency does not match booking currency"

            if failure:
                payment.status = PaymentStatus.FAILED
                self.logger.warning(
                    f"{failure} for reference {reference}",
                    extra={
                        "reference": reference,
                        "gateway_status": verification.status,
                        "paid_amount": str(paid_amount),
                        "expected_amount": str(booking.total_price),
                        "source": source,
                    }
                )
                metrics_collector.record_payment_verification(source, "failed")
                return VerificationResult(
                    success=False,
                    message=failure,
                    reference=reference,
                    booking_id=booking.id,
                    payment_status=PaymentStatus.FAILED,
                    amount=paid_amount,
                )

            payment.status = PaymentStatus.COMPLETED
            payment.payment_date = utcnow()

            if self.state_machine.can_transition(booking.status, BookingStatus.CONFIRMED):
                booking.status = BookingStatus.CONFIRMED
            elif booking.status == BookingStatus.CANCELLED:
                # The money was captured; record it so the payment can be refunded
                self.logger.warning(
                    f"Payment {reference} captured for booking {booking.id} in status {booking.status.value}",
                    extra={"reference": reference, "booking_id": str(booking.id), "source": source}
                )
                metrics_collector.record_payment_verification(source, "booking_not_payable")
                return VerificationResult(
                    success=False,
                    message="Payment received but the booking is no longer payable. Refund the payment.",
                    reference=reference,
                    booking_id=booking.id,
                    payment_status=PaymentStatus.COMPLETED,
                    amount=paid_amount,
                )

            self.logger.info(
                f"Payment {reference} verified, booking {booking.id} confirmed",
                extra={"reference": reference, "booking_id": str(booking.id), "source": source}
            )
            metrics_collector.record_payment_verification(source, "completed")
            return VerificationResult(
                success=True,
                message="Payment verified successfully",
                reference=reference,
                booking_id=booking.id,
                payment_status=PaymentStatus.COMPLETED,
                amount=paid_amount,
            )

    async def handle_webhook(
        self,
        db: AsyncSession,
        payload: bytes,
        signature: Optional[str]
    ) -> Optional[VerificationResult]:
        """
        Authenticate a gateway event and reconcile charge.success events.
        Returns None for events that are acknowledged but not acted on.
        """
        if not self.gateway.verify_signature(payload, signature):
            self.logger.warning("Rejected webhook with an invalid signature")
            metrics_collector.record_payment_verification("webhook", "invalid_signature")
            raise WayfarerError.bad_request("Invalid signature")

        try:
            event = json.loads(payload)
        except ValueError:
            raise WayfarerError.bad_request("Malformed webhook payload")

        if not isinstance(event, dict):
            raise WayfarerError.bad_request("Malformed webhook payload")

        event_type = event.get("event")
        if event_type != WEBHOOK_CHARGE_SUCCESS:
            self.logger.info(f"Ignoring webhook event {event_type}")
            return None

        data = event.get("data") or {}
        if not isinstance(data, dict):
            raise WayfarerError.bad_request("Malformed webhook payload")
        reference = data.get("reference")
        if not reference:
            raise WayfarerError.bad_request("Webhook event has no transaction reference")
        return await self.verify(db, reference, source="webhook")

    async def update_status(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        new_status: PaymentStatus
    ) -> PaymentStatusChange:
        """Administrative status change; the booking follows the payment"""
        async with self.db_manager.transaction(db):
            payment = await self._lock_payment(db, payment_id)
            validate_payment_transition(payment.status, new_status)

            booking = await self._lock_booking(db, payment.booking_id)
            booking_status = BOOKING_STATUS_FOR_PAYMENT[new_status]
            await self.ledger.sync_booking_status(
                db, BookingTarget.of(booking), booking.status, booking_status
            )

            previous = payment.status
            payment.status = new_status
            if new_status == PaymentStatus.COMPLETED and payment.payment_date is None:
                payment.payment_date = utcnow()
            booking.status = booking_status
            await db.flush()

            self.logger.info(
                f"Payment {payment.id} changed from {previous.value} to {new_status.value}",
                extra={"payment_id": str(payment.id), "booking_status": booking_status.value}
            )
            return PaymentStatusChange(
                payment_id=payment.id,
                status=payment.status,
                booking_status=booking.status,
                updated_at=payment.updated_at,
            )

    async def refund(
        self,
        db: AsyncSession,
        payment_id: uuid.UUID,
        reason: Optional[str] = None
    ) -> PaymentStatusChange:
        """
        Record a refund and cancel the booking.
        No refund is requested from the gateway.
        """
        async with self.db_manager.transaction(db):
            payment = await self._lock_payment(db, payment_id)
            if payment.status != PaymentStatus.COMPLETED:
                raise WayfarerError.bad_request("Only completed payments can be refunded")

            booking = await self._lock_booking(db, payment.booking_id)
            await self.ledger.sync_booking_status(
                db, BookingTarget.of(booking), booking.status, BookingStatus.CANCELLED
            )

            payment.status = PaymentStatus.REFUNDED
            payment.refund_reason = reason or "No reason provided"
            payment.refunded_at = utcnow()
            booking.status = BookingStatus.CANCELLED
            await db.flush()

            self.logger.info(
                f"Refund recorded for payment {payment.id}",
                extra={"payment_id": str(payment.id), "amount": str(payment.amount)}
            )
            return PaymentStatusChange(
                payment_id=payment.id,
                status=payment.status,
                booking_status=booking.status,
                updated_at=payment.updated_at,
                refund_amount=payment.amount,
                reason=payment.refund_reason,
            )

    async def delete(self, db: AsyncSession, payment_id: uuid.UUID) -> uuid.UUID:
        """Remove a non-completed payment; its booking goes back to PENDING"""
        async with self.db_manager.transaction(db):
            payment = await self._lock_payment(db, payment_id)
            if payment.status == PaymentStatus.COMPLETED:
                raise WayfarerError.bad_request("Cannot delete completed payments. Consider refunding instead.")

            booking = await self._lock_booking(db, payment.booking_id)
            await self.ledger.sync_booking_status(
                db, BookingTarget.of(booking), booking.status, BookingStatus.PENDING
            )
            booking.status = BookingStatus.PENDING
            await db.delete(payment)

            self.logger.info(f"Payment {payment_id} deleted, booking {booking.id} reset to PENDING")
            return booking.id

    async def get_payment(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        payment_id: uuid.UUID
    ) -> Payment:
        result = await db.execute(
            select(Payment)
            .options(*self._detail_options())
            .where(Payment.id == payment_id)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise WayfarerError.not_found("Payment", payment_id)
        if current_user.is_customer and payment.user_id != current_user.id:
            raise WayfarerError.forbidden("You can only view your own payments")
        return payment

    async def list_payments(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
        payment_method: Optional[PaymentMethod] = None,
        user_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Payment], int]:
        query = select(Payment).join(User, Payment.user_id == User.id)

        if current_user.is_customer:
            query = query.where(Payment.user_id == current_user.id)
        elif user_id is not None:
            query = query.where(Payment.user_id == user_id)
        if status is not None:
            query = query.where(Payment.status == status)
        if payment_method is not None:
            query = query.where(Payment.payment_method == payment_method)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Payment.transaction_reference.ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
            ))

        total = await db.scalar(select(func.count()).select_from(query.subquery()))
        result = await db.execute(
            query.options(*self._detail_options())
            .order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def _payable_booking(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_id: uuid.UUID
    ) -> Booking:
        result = await db.execute(
            select(Booking)
            .options(selectinload(Booking.user), selectinload(Booking.payment))
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise WayfarerError.not_found("Booking", booking_id)

        if current_user.is_customer and booking.user_id != current_user.id:
            raise WayfarerError.forbidden("You can only pay for your own bookings")

        if booking.status != BookingStatus.PENDING:
            raise WayfarerError.bad_request("Only PENDING bookings can be paid for")
        return booking

    def _existing_checkout(self, booking: Booking) -> Optional[InitiatedPayment]:
        existing = booking.payment
        if existing is None:
            return None
        if existing.status == PaymentStatus.PENDING and existing.authorization_url:
            self.logger.info(f"Returning existing checkout for booking {booking.id}")
            return InitiatedPayment(
                payment_id=existing.id,
                authorization_url=existing.authorization_url,
                transaction_reference=existing.transaction_reference,
                created=False,
            )
        raise WayfarerError.conflict("A payment already exists for this booking")

    async def _payment_by_reference(self, db: AsyncSession, reference: str, lock: bool = False) -> Payment:
        query = (
            select(Payment)
            .where(Payment.transaction_reference == reference)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        payment = (await db.execute(query)).scalar_one_or_none()
        if payment is None:
            raise WayfarerError.not_found("Payment", reference)
        return payment

    async def _lock_payment(self, db: AsyncSession, payment_id: uuid.UUID) -> Payment:
        result = await db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if payment is None:
            raise WayfarerError.not_found("Payment", payment_id)
        return payment

    async def _lock_booking(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise WayfarerError.not_found("Booking", booking_id)
        return booking

    @staticmethod
    def _detail_options():
        return (
            selectinload(Payment.user),
            selectinload(Payment.booking).selectinload(Booking.tour),
            selectinload(Payment.booking).selectinload(Booking.room),
            selectinload(Payment.booking).selectinload(Booking.flight),
        )

    @staticmethod
    def _settled_result(payment: Payment) -> VerificationResult:
        completed = payment.status == PaymentStatus.COMPLETED
        return VerificationResult(
            success=completed,
            message="Payment already verified" if completed else "Payment has been refunded",
            reference=payment.transaction_reference,
            booking_id=payment.booking_id,
            payment_status=payment.status,
            amount=Decimal(payment.amount),
        )
