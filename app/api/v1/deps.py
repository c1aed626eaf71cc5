"""
Service dependencies shared by the v1 endpoints
"""

from fastapi import Depends, Request

from app.core.exceptions import WayfarerError
from app.services.booking_service import BookingService, booking_service
from app.services.inventory_ledger import InventoryLedger
from app.services.payment_gateway import PaystackGateway
from app.services.payment_service import PaymentReconciliationService
from app.services.report_service import ReportService, report_service


def get_inventory_ledger() -> InventoryLedger:
    return booking_service.ledger


def get_booking_service() -> BookingService:
    return booking_service


def get_payment_gateway(request: Request) -> PaystackGateway:
    """Gateway client created in the application lifespan"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise WayfarerError.external_service("paystack", "Payment gateway is not configured")
    return gateway


def get_payment_service(
    gateway: PaystackGateway = Depends(get_payment_gateway),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
) -> PaymentReconciliationService:
    return PaymentReconciliationService(gateway=gateway, ledger=ledger)


def get_report_service() -> ReportService:
    return report_service
