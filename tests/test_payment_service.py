"""
Payment reconciliation tests with an in-memory gateway
"""

import json
import pytest
from decimal import Decimal

from app.core.exceptions import ErrorKind, WayfarerError
from app.models.booking import BookingStatus
from app.models.payment import PaymentMethod, PaymentStatus
from app.schemas.booking import BookingCreate, BookingUpdate
from app.services.booking_service import BookingService
from app.services.booking_target import ResourceType
from app.services.payment_gateway import compute_signature
from app.services.payment_service import PaymentReconciliationService
from app.config import settings
from tests.conftest import FakeGateway, principal


async def pending_booking(db_session, user, **target):
    data = BookingCreate(user_id=user.id, total_price=Decimal("150.00"), **target)
    booking = await BookingService().create_booking(db_session, principal(user), data)
    return booking.id


async def booking_status(db_session, admin, booking_id):
    booking = await BookingService().get_booking(db_session, principal(admin), booking_id)
    return booking.status


def signed(event):
    payload = json.dumps(event).encode()
    return payload, compute_signature(settings.PAYSTACK_SECRET_KEY, payload)


@pytest.fixture
def payments(fake_gateway):
    return PaymentReconciliationService(gateway=fake_gateway, currency="GHS")


@pytest.mark.asyncio
class TestInitiate:

    async def test_initiate_records_pending_payment(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)

        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.MOBILE_MONEY)

        assert initiated.created is True
        assert initiated.authorization_url.endswith(initiated.transaction_reference)
        sent = fake_gateway.transactions[initiated.transaction_reference]
        assert sent["amount"] == 15000
        assert sent["currency"] == "GHS"
        assert sent["channels"] == ["mobile_money"]
        assert sent["metadata"]["bookingId"] == str(booking_id)

        payment = await payments.get_payment(db_session, principal(customer), initiated.payment_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == Decimal("150.00")

    async def test_second_initiate_returns_the_same_checkout(self, db_session, payments, fake_gateway, customer, room):
        booking_id = await pending_booking(db_session, customer, room_id=room.id)

        first = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        second = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        assert second.created is False
        assert second.payment_id == first.payment_id
        assert second.authorization_url == first.authorization_url
        assert len(fake_gateway.transactions) == 1

    async def test_customer_cannot_pay_for_another_booking(self, db_session, payments, customer, other_customer, tour):
        booking_id = await pending_booking(db_session, other_customer, tour_id=tour.id)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        assert exc_info.value.kind == ErrorKind.FORBIDDEN

    async def test_only_pending_bookings_can_be_paid(self, db_session, payments, admin, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        await BookingService().update_booking(
            db_session, principal(admin), booking_id, BookingUpdate(status=BookingStatus.CANCELLED)
        )

        with pytest.raises(WayfarerError) as exc_info:
            await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        assert exc_info.value.message == "Only PENDING bookings can be paid for"

    async def test_gateway_failure_creates_no_payment(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        who = principal(customer)
        fake_gateway.error = WayfarerError.external_service("paystack", "Payment gateway timed out")

        with pytest.raises(WayfarerError) as exc_info:
            await payments.initiate(db_session, who, booking_id, PaymentMethod.CREDIT_CARD)

        assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
        _, total = await payments.list_payments(db_session, who)
        assert total == 0

    async def test_gateway_is_called_outside_a_transaction(self, db_session, customer, tour):
        seen = []

        class RecordingGateway(FakeGateway):
            async def initialize_transaction(self, **kwargs):
                seen.append(db_session.in_transaction())
                return await super().initialize_transaction(**kwargs)

        payments = PaymentReconciliationService(gateway=RecordingGateway(), currency="GHS")
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)

        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        assert seen == [False]
        assert initiated.created is True

    async def test_booking_cancelled_during_checkout_gets_no_payment(
        self, db_session, session_factory, admin, customer, tour
    ):
        staff = principal(admin)
        who = principal(customer)

        class CancellingGateway(FakeGateway):
            async def initialize_transaction(self, **kwargs):
                checkout = await super().initialize_transaction(**kwargs)
                async with session_factory() as other:
                    await BookingService().update_booking(
                        other, staff, booking_id, BookingUpdate(status=BookingStatus.CANCELLED)
                    )
                return checkout

        payments = PaymentReconciliationService(gateway=CancellingGateway(), currency="GHS")
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.initiate(db_session, who, booking_id, PaymentMethod.CREDIT_CARD)

        assert exc_info.value.message == "Only PENDING bookings can be paid for"
        _, total = await payments.list_payments(db_session, staff)
        assert total == 0


@pytest.mark.asyncio
class TestVerify:

    async def test_successful_verification_confirms_booking(self, db_session, payments, admin, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        result = await payments.verify(db_session, initiated.transaction_reference)

        assert result.success is True
        assert result.payment_status == PaymentStatus.COMPLETED
        assert result.amount == Decimal("150.00")
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.CONFIRMED
        payment = await payments.get_payment(db_session, principal(admin), initiated.payment_id)
        assert payment.payment_date is not None

    async def test_amount_mismatch_fails_payment_only(self, db_session, payments, fake_gateway, admin, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        fake_gateway.settle(initiated.transaction_reference, amount=10000)

        result = await payments.verify(db_session, initiated.transaction_reference)

        assert result.success is False
        assert result.message == "Payment amount does not match booking total price"
        assert result.payment_status == PaymentStatus.FAILED
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.PENDING

    async def test_currency_mismatch_fails_payment(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        fake_gateway.settle(initiated.transaction_reference, currency="NGN")

        result = await payments.verify(db_session, initiated.transaction_reference)

        assert result.message == "Payment currency does not match booking currency"

    async def test_declined_transaction_fails_payment(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        fake_gateway.settle(initiated.transaction_reference, status="abandoned")

        result = await payments.verify(db_session, initiated.transaction_reference)

        assert result.success is False
        assert result.message == "Payment verification failed"

    async def test_failed_payment_can_be_verified_again(self, db_session, payments, fake_gateway, admin, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        reference = initiated.transaction_reference
        fake_gateway.settle(reference, status="failed")
        await payments.verify(db_session, reference)

        fake_gateway.settle(reference, status="success")
        result = await payments.verify(db_session, reference)

        assert result.success is True
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.CONFIRMED

    async def test_repeat_verification_skips_the_gateway(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        reference = initiated.transaction_reference
        await payments.verify(db_session, reference)

        again = await payments.verify(db_session, reference)

        assert again.success is True
        assert again.message == "Payment already verified"
        assert fake_gateway.verify_calls == [reference]

    async def test_gateway_error_leaves_payment_pending(self, db_session, payments, fake_gateway, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        fake_gateway.error = WayfarerError.external_service("paystack", "Payment gateway timed out")

        with pytest.raises(WayfarerError) as exc_info:
            await payments.verify(db_session, initiated.transaction_reference)

        assert exc_info.value.kind == ErrorKind.EXTERNAL_SERVICE
        payment = await payments.get_payment(db_session, principal(customer), initiated.payment_id)
        assert payment.status == PaymentStatus.PENDING

    async def test_capture_after_cancellation_is_recorded_for_refund(self, db_session, payments, admin, customer, tour):
        tour_id = tour.id
        staff = principal(admin)
        booking_id = await pending_booking(db_session, customer, tour_id=tour_id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        await BookingService().update_booking(
            db_session, staff, booking_id, BookingUpdate(status=BookingStatus.CANCELLED)
        )

        result = await payments.verify(db_session, initiated.transaction_reference, source="webhook")

        assert result.success is False
        assert result.payment_status == PaymentStatus.COMPLETED
        assert "Refund the payment" in result.message
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.CANCELLED
        assert (await payments.ledger.check_availability(db_session, ResourceType.TOUR, tour_id)).used == 0

        change = await payments.refund(db_session, initiated.payment_id, "Booking was cancelled before capture")

        assert change.status == PaymentStatus.REFUNDED
        assert change.booking_status == BookingStatus.CANCELLED
        assert (await payments.ledger.check_availability(db_session, ResourceType.TOUR, tour_id)).used == 0

    async def test_unknown_reference_is_not_found(self, db_session, payments):
        with pytest.raises(WayfarerError) as exc_info:
            await payments.verify(db_session, "booking_unknown_0")

        assert exc_info.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
class TestWebhook:

    async def test_invalid_signature_is_rejected(self, db_session, payments):
        payload = json.dumps({"event": "charge.success", "data": {"reference": "x"}}).encode()

        with pytest.raises(WayfarerError) as exc_info:
            await payments.handle_webhook(db_session, payload, "not-a-signature")

        assert exc_info.value.message == "Invalid signature"

    async def test_charge_success_verifies_payment(self, db_session, payments, admin, customer, flight):
        booking_id = await pending_booking(db_session, customer, flight_id=flight.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.BANK_TRANSFER)
        payload, signature = signed({
            "event": "charge.success",
            "data": {"reference": initiated.transaction_reference},
        })

        result = await payments.handle_webhook(db_session, payload, signature)

        assert result.success is True
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.CONFIRMED

    async def test_other_events_are_acknowledged_only(self, db_session, payments, fake_gateway):
        payload, signature = signed({"event": "transfer.success", "data": {"reference": "booking_x_1"}})

        result = await payments.handle_webhook(db_session, payload, signature)

        assert result is None
        assert fake_gateway.verify_calls == []

    @pytest.mark.parametrize("event", [
        [1, 2],
        "charge.success",
        {"event": "charge.success", "data": ["booking_x_1"]},
    ])
    async def test_signed_body_that_is_not_an_event_is_rejected(self, db_session, payments, fake_gateway, event):
        payload, signature = signed(event)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.handle_webhook(db_session, payload, signature)

        assert exc_info.value.kind == ErrorKind.BAD_REQUEST
        assert exc_info.value.message == "Malformed webhook payload"
        assert fake_gateway.verify_calls == []


@pytest.mark.asyncio
class TestAdministration:

    async def paid_booking(self, db_session, payments, customer, **target):
        booking_id = await pending_booking(db_session, customer, **target)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        await payments.verify(db_session, initiated.transaction_reference)
        return booking_id, initiated.payment_id

    async def test_refund_cancels_booking_and_restores_inventory(self, db_session, payments, admin, customer, tour):
        tour_id = tour.id
        booking_id, payment_id = await self.paid_booking(db_session, payments, customer, tour_id=tour_id)

        change = await payments.refund(db_session, payment_id, "Trip cancelled by guest")

        assert change.status == PaymentStatus.REFUNDED
        assert change.booking_status == BookingStatus.CANCELLED
        assert change.refund_amount == Decimal("150.00")
        assert change.reason == "Trip cancelled by guest"
        availability = await payments.ledger.check_availability(db_session, ResourceType.TOUR, tour_id)
        assert availability.used == 0

    async def test_refund_without_reason(self, db_session, payments, customer, room):
        _, payment_id = await self.paid_booking(db_session, payments, customer, room_id=room.id)

        change = await payments.refund(db_session, payment_id)

        assert change.reason == "No reason provided"

    async def test_pending_payment_cannot_be_refunded(self, db_session, payments, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.refund(db_session, initiated.payment_id)

        assert exc_info.value.message == "Only completed payments can be refunded"

    async def test_refunded_payment_is_frozen(self, db_session, payments, customer, tour):
        _, payment_id = await self.paid_booking(db_session, payments, customer, tour_id=tour.id)
        await payments.refund(db_session, payment_id)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.update_status(db_session, payment_id, PaymentStatus.COMPLETED)

        assert exc_info.value.message == "Cannot change status of refunded payment"

    async def test_completed_payment_cannot_go_back_to_pending(self, db_session, payments, customer, tour):
        _, payment_id = await self.paid_booking(db_session, payments, customer, tour_id=tour.id)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.update_status(db_session, payment_id, PaymentStatus.PENDING)

        assert exc_info.value.message == "Cannot change completed payment back to pending"

    async def test_status_override_drives_booking_and_inventory(self, db_session, payments, customer, flight):
        flight_id = flight.id
        booking_id = await pending_booking(db_session, customer, flight_id=flight_id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        ledger = payments.ledger

        failed = await payments.update_status(db_session, initiated.payment_id, PaymentStatus.FAILED)
        assert failed.booking_status == BookingStatus.CANCELLED
        assert (await ledger.check_availability(db_session, ResourceType.FLIGHT, flight_id)).used == 0

        pending = await payments.update_status(db_session, initiated.payment_id, PaymentStatus.PENDING)
        assert pending.booking_status == BookingStatus.PENDING
        assert (await ledger.check_availability(db_session, ResourceType.FLIGHT, flight_id)).used == 1

    async def test_delete_resets_booking_to_pending(self, db_session, payments, admin, customer, tour):
        booking_id = await pending_booking(db_session, customer, tour_id=tour.id)
        initiated = await payments.initiate(db_session, principal(customer), booking_id, PaymentMethod.CREDIT_CARD)
        await payments.update_status(db_session, initiated.payment_id, PaymentStatus.FAILED)

        deleted_for = await payments.delete(db_session, initiated.payment_id)

        assert deleted_for == booking_id
        assert await booking_status(db_session, admin, booking_id) == BookingStatus.PENDING
        _, total = await payments.list_payments(db_session, principal(admin))
        assert total == 0

    async def test_completed_payment_cannot_be_deleted(self, db_session, payments, customer, tour):
        _, payment_id = await self.paid_booking(db_session, payments, customer, tour_id=tour.id)

        with pytest.raises(WayfarerError) as exc_info:
            await payments.delete(db_session, payment_id)

        assert "Consider refunding instead" in exc_info.value.message


@pytest.mark.asyncio
class TestReadPayments:

    async def test_customer_sees_only_own_payments(self, db_session, payments, customer, other_customer, tour):
        own_booking = await pending_booking(db_session, customer, tour_id=tour.id)
        other_booking = await pending_booking(db_session, other_customer, tour_id=tour.id)
        own = await payments.initiate(db_session, principal(customer), own_booking, PaymentMethod.CREDIT_CARD)
        other = await payments.initiate(
            db_session, principal(other_customer), other_booking, PaymentMethod.CREDIT_CARD
        )

        listed, total = await payments.list_payments(db_session, principal(customer))

        assert total == 1
        assert listed[0].id == own.payment_id
        with pytest.raises(WayfarerError) as exc_info:
            await payments.get_payment(db_session, principal(customer), other.payment_id)
        assert exc_info.value.kind == ErrorKind.FORBIDDEN

    async def test_search_by_customer_name(self, db_session, payments, admin, customer, other_customer, tour):
        own_booking = await pending_booking(db_session, customer, tour_id=tour.id)
        other_booking = await pending_booking(db_session, other_customer, tour_id=tour.id)
        await payments.initiate(db_session, principal(customer), own_booking, PaymentMethod.CREDIT_CARD)
        await payments.initiate(db_session, principal(other_customer), other_booking, PaymentMethod.CREDIT_CARD)

        listed, total = await payments.list_payments(db_session, principal(admin), search="mensah")

        assert total == 1
        assert listed[0].booking_id == own_booking
