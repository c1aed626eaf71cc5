"""
Read-only booking, payment and tour reports
Aggregates run in the database; totals are Decimal money values.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional
import logging
import uuid

from sqlalchemy import select, func, case, extract, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import WayfarerError
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment, PaymentMethod, PaymentStatus
from app.models.tour import Tour, TourStatus
from app.schemas.report import (
    AmountBreakdown,
    BookingsSummary,
    BookingsSummaryTotals,
    MonthlyBookings,
    MonthlyPayments,
    PaymentsSummary,
    PaymentsSummaryTotals,
    ReportPeriodSchema,
    TopTour,
    TopTours,
    TopToursTotals,
    TourStatistics,
    TourSummary,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """SQLite can hand back floats for SUM over Numeric columns"""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


def average(total: Decimal, count: int) -> Decimal:
    if not count:
        return Decimal("0.00")
    return (total / count).quantize(CENT)


def month_key(year, month) -> str:
    return f"{int(year):04d}-{int(month):02d}"


@dataclass
class ReportPeriod:
    """Half-open UTC range [start, end)"""
    start: datetime
    end: datetime
    year: Optional[int] = None
    month: Optional[int] = None

    @classmethod
    def resolve(
        cls,
        year: Optional[int] = None,
        month: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> "ReportPeriod":
        """
        An explicit date range wins over year/month. Without one the period is
        the given month of the year, or the whole year; the year defaults to
        the current one.
        """
        if (start_date is None) != (end_date is None):
            raise WayfarerError.bad_request("startDate and endDate must be given together")

        if start_date is not None:
            if start_date > end_date:
                raise WayfarerError.bad_request("startDate must not be after endDate")
            return cls(start=_day_start(start_date), end=_day_start(end_date + timedelta(days=1)))

        year = year or datetime.now(timezone.utc).year
        if month is None:
            return cls(start=_day_start(date(year, 1, 1)), end=_day_start(date(year + 1, 1, 1)), year=year)

        first = date(year, month, 1)
        following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return cls(start=_day_start(first), end=_day_start(following), year=year, month=month)

    def contains(self, column):
        return and_(column >= self.start, column < self.end)

    def to_schema(self) -> ReportPeriodSchema:
        return ReportPeriodSchema(
            year=self.year,
            month=self.month,
            start_date=self.start.date(),
            end_date=(self.end - timedelta(days=1)).date(),
        )


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class ReportService:
    """Summaries over bookings, payments and tours for staff"""

    def __init__(self, currency: Optional[str] = None):
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.logger = logging.getLogger(__name__)

    async def bookings_summary(
        self,
        db: AsyncSession,
        period: ReportPeriod,
        status: Optional[BookingStatus] = None,
        tour_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None
    ) -> BookingsSummary:
        """
        Booking count and revenue for a period.
        Revenue counts every booking that is not CANCELLED.
        """
        conditions = [period.contains(Booking.booking_date)]
        if status is not None:
            conditions.append(Booking.status == status)
        if tour_id is not None:
            conditions.append(Booking.tour_id == tour_id)
        if user_id is not None:
            conditions.append(Booking.user_id == user_id)

        active = Booking.status != BookingStatus.CANCELLED
        revenue = func.sum(case((active, Booking.total_price), else_=0))
        active_count = func.sum(case((active, 1), else_=0))
        year = extract("year", Booking.booking_date)
        month = extract("month", Booking.booking_date)

        monthly = await db.execute(
            select(
                year.label("year"),
                month.label("month"),
                func.count(Booking.id).label("booking_count"),
                active_count.label("active_count"),
                revenue.label("revenue"),
            )
            .where(*conditions)
            .group_by(year, month)
            .order_by(year, month)
        )
        breakdown = []
        total_bookings = active_bookings = 0
        total_revenue = Decimal("0.00")
        for row in monthly:
            row_revenue = money(row.revenue)
            row_active = int(row.active_count or 0)
            breakdown.append(MonthlyBookings(
                month=month_key(row.year, row.month),
                booking_count=row.booking_count,
                revenue=row_revenue,
                average_value=average(row_revenue, row_active),
            ))
            total_bookings += row.booking_count
            active_bookings += row_active
            total_revenue += row_revenue

        by_status = await db.execute(
            select(Booking.status, func.count(Booking.id))
            .where(*conditions)
            .group_by(Booking.status)
        )

        return BookingsSummary(
            summary=BookingsSummaryTotals(
                total_bookings=total_bookings,
                active_bookings=active_bookings,
                total_revenue=total_revenue,
                average_booking_value=average(total_revenue, active_bookings),
                period=period.to_schema(),
            ),
            monthly_breakdown=breakdown,
            status_breakdown={booking_status.value: count for booking_status, count in by_status},
        )

    async def payments_summary(
        self,
        db: AsyncSession,
        period: ReportPeriod,
        status: Optional[PaymentStatus] = None,
        payment_method: Optional[PaymentMethod] = None,
        user_id: Optional[uuid.UUID] = None,
        currency: Optional[str] = None
    ) -> PaymentsSummary:
        """
        Payment totals for a period, by status and by method.
        Payments are placed in the period by when they were initiated, so
        PENDING and FAILED payments without a payment date are included.
        """
        currency = (currency or self.currency).upper()
        conditions = [period.contains(Payment.created_at), func.upper(Payment.currency) == currency]
        if status is not None:
            conditions.append(Payment.status == status)
        if payment_method is not None:
            conditions.append(Payment.payment_method == payment_method)
        if user_id is not None:
            conditions.append(Payment.user_id == user_id)

        by_status = {}
        for payment_status, count, amount in await db.execute(
            select(Payment.status, func.count(Payment.id), func.sum(Payment.amount))
            .where(*conditions)
            .group_by(Payment.status)
        ):
            by_status[payment_status] = AmountBreakdown(count=count, amount=money(amount))

        by_method = {}
        for method, count, amount in await db.execute(
            select(Payment.payment_method, func.count(Payment.id), func.sum(Payment.amount))
            .where(*conditions)
            .group_by(Payment.payment_method)
        ):
            by_method[method.value] = AmountBreakdown(count=count, amount=money(amount))

        year = extract("year", Payment.created_at)
        month = extract("month", Payment.created_at)
        completed = case((Payment.status == PaymentStatus.COMPLETED, Payment.amount), else_=0)
        monthly = await db.execute(
            select(year.label("year"), month.label("month"), func.count(Payment.id), func.sum(completed))
            .where(*conditions)
            .group_by(year, month)
            .order_by(year, month)
        )

        def amount_for(payment_status: PaymentStatus) -> Decimal:
            entry = by_status.get(payment_status)
            return entry.amount if entry else Decimal("0.00")

        return PaymentsSummary(
            summary=PaymentsSummaryTotals(
                total_payments=sum(entry.count for entry in by_status.values()),
                total_revenue=amount_for(PaymentStatus.COMPLETED),
                pending_amount=amount_for(PaymentStatus.PENDING),
                failed_amount=amount_for(PaymentStatus.FAILED),
                refunded_amount=amount_for(PaymentStatus.REFUNDED),
                currency=currency,
                period=period.to_schema(),
            ),
            status_breakdown={payment_status.value: entry for payment_status, entry in by_status.items()},
            method_breakdown=by_method,
            monthly_breakdown=[
                MonthlyPayments(month=month_key(y, m), count=count, revenue=money(revenue))
                for y, m, count, revenue in monthly
            ],
        )

    async def top_tours(
        self,
        db: AsyncSession,
        period: ReportPeriod,
        limit: int = 5,
        min_bookings: int = 1,
        tour_status: Optional[TourStatus] = None
    ) -> TopTours:
        """Tours ranked by the number of bookings made in the period"""
        in_period = and_(Booking.tour_id == Tour.id, period.contains(Booking.booking_date))
        booking_count = func.count(Booking.id)
        confirmed = func.sum(case((Booking.status == BookingStatus.CONFIRMED, 1), else_=0))
        revenue = func.sum(case((Booking.status != BookingStatus.CANCELLED, Booking.total_price), else_=0))

        tour_conditions = []
        if tour_status is not None:
            tour_conditions.append(Tour.status == tour_status)

        totals = (await db.execute(
            select(func.count(func.distinct(Tour.id)), booking_count, revenue)
            .select_from(Tour)
            .outerjoin(Booking, in_period)
            .where(*tour_conditions)
        )).one()

        ranked = await db.execute(
            select(Tour, booking_count.label("bookings"), confirmed.label("confirmed"), revenue.label("revenue"))
            .outerjoin(Booking, in_period)
            .where(*tour_conditions)
            .group_by(Tour.id)
            .having(booking_count >= min_bookings)
            .order_by(booking_count.desc(), Tour.name)
            .limit(limit)
        )
        tours = [
            TopTour(
                tour=TourSummary.model_validate(tour),
                statistics=TourStatistics(
                    total_bookings=bookings,
                    confirmed_bookings=int(confirmed_count or 0),
                    total_revenue=money(tour_revenue),
                ),
            )
            for tour, bookings, confirmed_count, tour_revenue in ranked
        ]

        self.logger.info(
            f"Top tours report ranked {len(tours)} of {totals[0]} tours",
            extra={"limit": limit, "min_bookings": min_bookings}
        )
        return TopTours(
            summary=TopToursTotals(
                total_tours_analyzed=totals[0],
                total_bookings_analyzed=totals[1],
                total_revenue_analyzed=money(totals[2]),
                period=period.to_schema(),
            ),
            tours=tours,
        )


report_service = ReportService()
