# backend/tutordesk/services/monthly_summary_service.py
"""
Monthly Summary Service for the tutordesk platform.

Read-only reporting: every lesson of every family in a business month is
put into one lifecycle bucket and summed per family and overall.

Invoiced and paid lessons report their frozen invoice amount; everything
else is priced with the tutor's current rate settings. Cancelled lessons
are counted but never contribute to an amount.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import ZERO_AMOUNT
from ..core.enums import LessonPaymentState, LessonStatus, PaymentStatus
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import business_month_bounds_utc, month_start
from ..models.family import Parent
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from ..schemas.billing import (
    FamilySummary,
    LessonDetail,
    MonthlySummary,
    PaymentTotals,
    SummaryTotals,
)
from ..schemas.rates import RateSettings
from .base import BaseService
from .invoice_service import quote_lesson
from .rate_resolver import quantize_money
from .rate_settings_service import RateSettingsService

logger = logging.getLogger(__name__)


@dataclass
class _Tally:
    """Running counts and exact amounts for one family or the whole month."""

    scheduled_count: int = 0
    completed_count: int = 0
    invoiced_count: int = 0
    paid_count: int = 0
    cancelled_count: int = 0
    expected: Decimal = ZERO_AMOUNT
    billable: Decimal = ZERO_AMOUNT
    invoiced: Decimal = ZERO_AMOUNT
    collected: Decimal = ZERO_AMOUNT
    combined: Decimal = ZERO_AMOUNT
    session_ids: Set[str] = field(default_factory=set)

    def add(self, detail: LessonDetail) -> None:
        amount = detail.amount
        if detail.status == LessonStatus.CANCELLED:
            self.cancelled_count += 1
            return

        if detail.status == LessonStatus.SCHEDULED:
            self.scheduled_count += 1
        elif detail.payment_state == LessonPaymentState.PAID:
            self.paid_count += 1
            self.collected += amount
        elif detail.payment_state == LessonPaymentState.INVOICED:
            self.invoiced_count += 1
            self.invoiced += amount
        else:
            self.completed_count += 1
            self.billable += amount
        self.expected += amount

        if detail.session_id:
            self.session_ids.add(detail.session_id)
            self.combined += amount

    def totals(self) -> Dict[str, object]:
        return {
            "scheduled_count": self.scheduled_count,
            "completed_count": self.completed_count,
            "invoiced_count": self.invoiced_count,
            "paid_count": self.paid_count,
            "cancelled_count": self.cancelled_count,
            "combined_session_count": len(self.session_ids),
            "expected_amount": quantize_money(self.expected),
            "billable_amount": quantize_money(self.billable),
            "invoiced_amount": quantize_money(self.invoiced),
            "collected_amount": quantize_money(self.collected),
            "combined_session_amount": quantize_money(self.combined),
        }


def lesson_payment_state(lesson: Lesson) -> Tuple[LessonPaymentState, Optional[Decimal]]:
    """Billing state of a lesson and its frozen amount when invoiced."""
    link = lesson.payment_link
    if link is None:
        return LessonPaymentState.NONE, None
    frozen = Decimal(str(link.amount))
    if link.payment is not None and link.payment.status == PaymentStatus.PAID:
        return LessonPaymentState.PAID, frozen
    return LessonPaymentState.INVOICED, frozen


class MonthlySummaryService(BaseService):
    """Month-level lesson and revenue reporting. Performs no writes."""

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        super().__init__(db)
        self.tz_name = tz_name or settings.business_timezone
        self.family_repository = RepositoryFactory.create_family_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.rate_settings_service = RateSettingsService(db)

    def _load_rates(self, tutor_id: str, warnings: List[str]) -> RateSettings:
        try:
            return self.rate_settings_service.load(tutor_id)
        except RepositoryException as exc:
            self.logger.warning(f"Rate settings unavailable for tutor {tutor_id}, using defaults: {exc}")
            warnings.append("Rate settings could not be loaded; default rates were used")
            return RateSettings.defaults()

    def _detail(self, lesson: Lesson, rate_settings: RateSettings) -> LessonDetail:
        quote = quote_lesson(lesson, rate_settings)
        state, frozen = lesson_payment_state(lesson)
        status = LessonStatus(lesson.status)

        if status is LessonStatus.CANCELLED:
            amount = ZERO_AMOUNT
        elif status is LessonStatus.COMPLETED and frozen is not None:
            amount = frozen
        else:
            amount = quote.amount

        return LessonDetail(
            lesson_id=lesson.id,
            student_id=lesson.student_id,
            student_name=lesson.student.name if lesson.student else "",
            subject=lesson.subject,
            scheduled_at=lesson.scheduled_at_utc,
            duration_min=lesson.duration_min,
            status=status,
            session_id=lesson.session_id,
            amount=amount,
            rate=quote.rate,
            base_duration=quote.base_duration,
            rate_display=quote.rate_display,
            formula=quote.formula,
            payment_state=state if status is LessonStatus.COMPLETED else LessonPaymentState.NONE,
            payment_id=lesson.payment_link.payment_id if lesson.payment_link else None,
            payment_status=(
                PaymentStatus(lesson.payment_link.payment.status)
                if lesson.payment_link and lesson.payment_link.payment
                else None
            ),
        )

    def _family_lessons(
        self, parent: Parent, start_utc, end_utc, warnings: List[str]
    ) -> Tuple[List[Lesson], bool]:
        student_ids = [student.id for student in parent.students]
        if not student_ids:
            return [], True
        try:
            return (
                self.lesson_repository.get_lessons_for_students(student_ids, start_utc, end_utc),
                True,
            )
        except RepositoryException as exc:
            self.logger.warning(f"Lesson lookup failed for parent {parent.id}: {exc}")
            warnings.append(f"Lessons for {parent.name} could not be loaded; totals are incomplete")
            return [], False

    @BaseService.measure_operation("monthly_summary")
    def summarize(self, tutor_id: str, month: date) -> MonthlySummary:
        """
        Classify and total every lesson in the month.

        Families without lessons are left out unless their lookup failed, in
        which case they are kept with ``data_complete=False`` and the summary
        is flagged partial.
        """
        month_key = month_start(month)
        start_utc, end_utc = business_month_bounds_utc(month_key, self.tz_name)
        warnings: List[str] = []
        rate_settings = self._load_rates(tutor_id, warnings)

        grand = _Tally()
        families: List[FamilySummary] = []
        for parent in self.family_repository.list_parents_for_tutor(tutor_id):
            lessons, complete = self._family_lessons(parent, start_utc, end_utc, warnings)
            if complete and not lessons:
                continue

            tally = _Tally()
            details = [self._detail(lesson, rate_settings) for lesson in lessons]
            for detail in details:
                tally.add(detail)
                grand.add(detail)

            families.append(
                FamilySummary(
                    parent_id=parent.id,
                    parent_name=parent.name,
                    data_complete=complete,
                    lessons=details,
                    **tally.totals(),
                )
            )

        partial = any(not family.data_complete for family in families)
        if partial:
            self.logger.warning(
                f"Monthly summary for tutor {tutor_id} {month_key} is partial: {warnings}"
            )
        return MonthlySummary(
            month=month_key,
            families=families,
            totals=SummaryTotals(**grand.totals()),
            partial=partial,
            warnings=warnings,
        )

    @BaseService.measure_operation("payment_totals")
    def payment_totals(self, tutor_id: str, month: date) -> PaymentTotals:
        """Invoice totals for the month and invoice counts by status."""
        month_key = month_start(month)
        payments = self.payment_repository.list_for_tutor(tutor_id, month=month_key)

        total_due = ZERO_AMOUNT
        total_paid = ZERO_AMOUNT
        outstanding = ZERO_AMOUNT
        counts = {status.value: 0 for status in PaymentStatus}
        for payment in payments:
            due = Decimal(str(payment.amount_due))
            paid = Decimal(str(payment.amount_paid))
            total_due += due
            total_paid += paid
            outstanding += max(due - paid, ZERO_AMOUNT)
            counts[payment.status] = counts.get(payment.status, 0) + 1

        return PaymentTotals(
            month=month_key,
            total_due=quantize_money(total_due),
            total_paid=quantize_money(total_paid),
            outstanding=quantize_money(outstanding),
            counts=counts,
        )
