"""
Report schemas
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from app.models.tour import TourStatus
from app.schemas.base import BaseSchema


class ReportPeriodSchema(BaseSchema):
    year: Optional[int] = None
    month: Optional[int] = None
    start_date: date
    end_date: date


class MonthlyBookings(BaseSchema):
    month: str
    booking_count: int
    revenue: Decimal
    average_value: Decimal


class BookingsSummaryTotals(BaseSchema):
    total_bookings: int
    active_bookings: int
    total_revenue: Decimal
    average_booking_value: Decimal
    period: ReportPeriodSchema


class BookingsSummary(BaseSchema):
    summary: BookingsSummaryTotals
    monthly_breakdown: List[MonthlyBookings]
    status_breakdown: Dict[str, int]


class AmountBreakdown(BaseSchema):
    count: int
    amount: Decimal


class MonthlyPayments(BaseSchema):
    month: str
    count: int
    revenue: Decimal


class PaymentsSummaryTotals(BaseSchema):
    total_payments: int
    total_revenue: Decimal
    pending_amount: Decimal
    failed_amount: Decimal
    refunded_amount: Decimal
    currency: str
    period: ReportPeriodSchema


class PaymentsSummary(BaseSchema):
    summary: PaymentsSummaryTotals
    status_breakdown: Dict[str, AmountBreakdown]
    method_breakdown: Dict[str, AmountBreakdown]
    monthly_breakdown: List[MonthlyPayments]


class TourSummary(BaseSchema):
    id: uuid.UUID
    name: str
    location: str
    status: TourStatus
    price: Decimal
    max_guests: int
    guests_booked: int


class TourStatistics(BaseSchema):
    total_bookings: int
    confirmed_bookings: int
    total_revenue: Decimal


class TopTour(BaseSchema):
    tour: TourSummary
    statistics: TourStatistics


class TopToursTotals(BaseSchema):
    total_tours_analyzed: int
    total_bookings_analyzed: int
    total_revenue_analyzed: Decimal
    period: ReportPeriodSchema


class TopTours(BaseSchema):
    summary: TopToursTotals
    tours: List[TopTour]
