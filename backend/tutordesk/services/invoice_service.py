# backend/tutordesk/services/invoice_service.py
"""
Invoice Service for the tutordesk platform.

Generates one invoice per family per billing month from completed lessons
that have never been billed, and records payments against invoices.

At-most-once billing rests on two store constraints: unique
(parent_id, month) on payments and unique lesson_id on payment_lessons.
The Payment and all its links are written in one transaction; a rejected
write rolls back completely.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
import logging
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import ZERO_AMOUNT
from ..core.enums import PaymentStatus
from ..core.exceptions import (
    BillingIntegrityException,
    InvoiceAlreadyExistsException,
    LessonAlreadyInvoicedException,
    NothingToInvoiceException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..core.timezone_utils import business_month_bounds_utc, business_today, ensure_utc, month_start
from ..database.session_utils import constraint_name_from_error
from ..models.family import Parent
from ..models.lesson import Lesson
from ..models.payment import (
    PAYMENT_LESSON_UNIQUE_CONSTRAINT,
    PAYMENT_PARENT_MONTH_CONSTRAINT,
    Payment,
    PaymentLesson,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..schemas.billing import InvoiceLine, InvoicePreview, PaymentLessonResponse, PaymentResponse
from ..schemas.rates import RateQuote, RateSettings
from .base import BaseService
from .rate_resolver import quantize_money, resolve_rate
from .rate_settings_service import RateSettingsService

logger = logging.getLogger(__name__)


def compute_payment_status(amount_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
    """paid once paid covers due, partial for any other positive payment."""
    if amount_paid >= amount_due:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def _constraint_kind(constraint: Optional[str]) -> Optional[str]:
    text = (constraint or "").lower()
    if PAYMENT_LESSON_UNIQUE_CONSTRAINT in text or "payment_lessons.lesson_id" in text:
        return "lesson"
    if PAYMENT_PARENT_MONTH_CONSTRAINT in text or "payments.parent_id" in text:
        return "parent_month"
    return None


def _link_sort_key(link: PaymentLesson) -> datetime:
    if link.lesson is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    return ensure_utc(link.lesson.scheduled_at)


def quote_lesson(lesson: Lesson, rate_settings: Optional[RateSettings]) -> RateQuote:
    """Price a stored lesson with the given settings."""
    return resolve_rate(
        lesson.subject,
        lesson.duration_min,
        lesson.session_id is not None,
        lesson.override_amount,
        rate_settings,
    )


class InvoiceService(BaseService):
    """
    Service for invoice generation and payment recording.

    Rates are evaluated at invoicing time with the tutor's current settings;
    once invoiced, the per-lesson amounts are frozen on the link rows.
    """

    def __init__(self, db: Session, tz_name: Optional[str] = None):
        super().__init__(db)
        self.tz_name = tz_name or settings.business_timezone
        self.family_repository = RepositoryFactory.create_family_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.rate_settings_service = RateSettingsService(db)

    # Helpers

    def _get_parent(self, tutor_id: str, parent_id: str) -> Parent:
        parent = self.family_repository.get_parent_for_tutor(tutor_id, parent_id)
        if parent is None:
            raise NotFoundException(
                "Parent not found", code="PARENT_NOT_FOUND", details={"parent_id": parent_id}
            )
        return parent

    def _get_payment(self, tutor_id: str, payment_id: str) -> Payment:
        payment = self.payment_repository.get_payment_for_tutor(tutor_id, payment_id)
        if payment is None:
            raise NotFoundException(
                "Payment not found", code="PAYMENT_NOT_FOUND", details={"payment_id": payment_id}
            )
        return payment

    def _billable_lessons(
        self, tutor_id: str, parent: Parent, month_key: date
    ) -> List[Tuple[Lesson, RateQuote]]:
        student_ids = [student.id for student in parent.students]
        if not student_ids:
            raise NothingToInvoiceException(
                "No students found for this parent",
                parent_id=parent.id,
                month=month_key.isoformat(),
            )
        start_utc, end_utc = business_month_bounds_utc(month_key, self.tz_name)
        lessons = self.lesson_repository.get_uninvoiced_completed_lessons(
            student_ids, start_utc, end_utc
        )
        rate_settings = self.rate_settings_service.load(tutor_id)
        return [(lesson, quote_lesson(lesson, rate_settings)) for lesson in lessons]

    def _rollback_or_escalate(self, parent_id: str, month_key: date, cause: Exception) -> None:
        """Roll back a failed invoice write; a failed rollback is an integrity incident."""
        try:
            self.db.rollback()
        except SQLAlchemyError as rollback_error:
            prometheus_metrics.inc_billing_integrity_incident()
            self.logger.critical(
                "Invoice write for parent %s month %s failed (%s) and rollback failed (%s); "
                "store state unknown, manual reconciliation required",
                parent_id,
                month_key,
                cause,
                rollback_error,
            )
            raise BillingIntegrityException(
                "Invoice write could not be rolled back; manual reconciliation required",
                details={"parent_id": parent_id, "month": month_key.isoformat()},
            ) from rollback_error

    def _to_response(self, payment: Payment, include_lessons: bool = True) -> PaymentResponse:
        lessons: List[PaymentLessonResponse] = []
        if include_lessons:
            links = sorted(payment.lesson_links, key=_link_sort_key)
            for link in links:
                lesson = link.lesson
                lessons.append(
                    PaymentLessonResponse(
                        lesson_id=link.lesson_id,
                        amount=Decimal(str(link.amount)),
                        subject=lesson.subject if lesson else None,
                        scheduled_at=ensure_utc(lesson.scheduled_at) if lesson else None,
                        student_name=lesson.student.name if lesson and lesson.student else None,
                    )
                )
        return PaymentResponse(
            id=payment.id,
            parent_id=payment.parent_id,
            parent_name=payment.parent.name if payment.parent else None,
            month=payment.month,
            amount_due=Decimal(str(payment.amount_due)),
            amount_paid=Decimal(str(payment.amount_paid)),
            status=payment.status,
            paid_at=ensure_utc(payment.paid_at) if payment.paid_at else None,
            notes=payment.notes,
            lessons=lessons,
        )

    # Operations

    @BaseService.measure_operation("preview_invoice")
    def preview(self, tutor_id: str, parent_id: str, month: date) -> InvoicePreview:
        """Uninvoiced completed lessons for the month with their prices."""
        month_key = month_start(month)
        parent = self._get_parent(tutor_id, parent_id)
        try:
            candidates = self._billable_lessons(tutor_id, parent, month_key)
        except NothingToInvoiceException:
            candidates = []

        lines = [
            InvoiceLine(
                lesson_id=lesson.id,
                student_id=lesson.student_id,
                student_name=lesson.student.name if lesson.student else "",
                subject=lesson.subject,
                scheduled_at=ensure_utc(lesson.scheduled_at),
                duration_min=lesson.duration_min,
                is_combined=lesson.session_id is not None,
                amount=quote.amount,
                rate_display=quote.rate_display,
                formula=quote.formula,
            )
            for lesson, quote in candidates
        ]
        return InvoicePreview(
            parent_id=parent.id,
            month=month_key,
            lessons=lines,
            total_amount=quantize_money(sum((q.amount for _, q in candidates), ZERO_AMOUNT)),
            lesson_count=len(lines),
            total_minutes=sum(lesson.duration_min for lesson, _ in candidates),
        )

    @BaseService.measure_operation("generate_invoice")
    def generate(
        self, tutor_id: str, parent_id: str, month: date, notes: Optional[str] = None
    ) -> PaymentResponse:
        """
        Invoice a family's completed, never-billed lessons for a month.

        Raises:
            InvoiceAlreadyExistsException: The family/month already has a payment
            NothingToInvoiceException: No students, or no billable lessons
            LessonAlreadyInvoicedException: A candidate lesson was invoiced
                concurrently; nothing was written
            BillingIntegrityException: The failed write could not be rolled back
        """
        month_key = month_start(month)
        parent = self._get_parent(tutor_id, parent_id)

        if self.payment_repository.get_for_parent_month(parent.id, month_key) is not None:
            prometheus_metrics.inc_invoice_outcome("already_exists")
            raise InvoiceAlreadyExistsException(parent.id, month_key.isoformat())

        try:
            candidates = self._billable_lessons(tutor_id, parent, month_key)
        except NothingToInvoiceException:
            prometheus_metrics.inc_invoice_outcome("nothing_to_invoice")
            raise
        if not candidates:
            prometheus_metrics.inc_invoice_outcome("nothing_to_invoice")
            raise NothingToInvoiceException(
                "No billable lessons found for this month",
                parent_id=parent.id,
                month=month_key.isoformat(),
            )

        lesson_amounts = [(lesson.id, quantize_money(quote.amount)) for lesson, quote in candidates]
        amount_due = sum((amount for _, amount in lesson_amounts), ZERO_AMOUNT)

        try:
            payment = self.payment_repository.create_invoice(
                parent_id=parent.id,
                month=month_key,
                amount_due=amount_due,
                notes=notes,
                lesson_amounts=lesson_amounts,
            )
            payment_id = payment.id
            self.db.commit()
        except (RepositoryException, SQLAlchemyError) as exc:
            self._rollback_or_escalate(parent.id, month_key, exc)
            if isinstance(exc, RepositoryException):
                kind = _constraint_kind(exc.constraint)
            elif isinstance(exc, IntegrityError):
                kind = _constraint_kind(constraint_name_from_error(exc))
            else:
                kind = None

            if kind == "parent_month":
                prometheus_metrics.inc_invoice_outcome("already_exists")
                raise InvoiceAlreadyExistsException(parent.id, month_key.isoformat()) from exc
            if kind == "lesson":
                prometheus_metrics.inc_invoice_outcome("conflict")
                self.logger.warning(
                    "Lessons for parent %s month %s were invoiced concurrently; nothing written",
                    parent.id,
                    month_key,
                )
                raise LessonAlreadyInvoicedException(
                    "Some lessons were invoiced by another request; refresh and try again",
                    lesson_ids=[lesson_id for lesson_id, _ in lesson_amounts],
                ) from exc
            prometheus_metrics.inc_invoice_outcome("failed")
            self.logger.error(f"Invoice write failed for parent {parent.id} month {month_key}: {exc}")
            raise ServiceException(f"Failed to create invoice: {exc}") from exc

        prometheus_metrics.inc_invoice_outcome("created")
        prometheus_metrics.inc_invoiced_lessons(len(lesson_amounts))
        self.logger.info(
            f"Invoice {payment_id} created for parent {parent.id} month {month_key}: "
            f"{len(lesson_amounts)} lessons, ${amount_due}"
        )
        return self._to_response(self._get_payment(tutor_id, payment_id))

    @BaseService.measure_operation("record_payment")
    def record_payment(
        self,
        tutor_id: str,
        payment_id: str,
        amount_paid: Union[Decimal, int, float, str],
        notes: Optional[str] = None,
    ) -> PaymentResponse:
        """Set the amount paid and derive status and paid_at from it."""
        paid = quantize_money(Decimal(str(amount_paid)))
        if paid < 0:
            raise ValidationException("Amount paid cannot be negative", code="NEGATIVE_PAYMENT")

        with self.transaction():
            payment = self._get_payment(tutor_id, payment_id)
            status = compute_payment_status(Decimal(str(payment.amount_due)), paid)
            payment.amount_paid = paid
            payment.status = status.value
            payment.paid_at = datetime.now(timezone.utc) if status is PaymentStatus.PAID else None
            if notes is not None:
                payment.notes = notes

        self.logger.info(f"Payment {payment_id} recorded: paid={paid} status={status.value}")
        return self._to_response(payment)

    @BaseService.measure_operation("mark_paid")
    def mark_paid(self, tutor_id: str, payment_id: str, notes: Optional[str] = None) -> PaymentResponse:
        payment = self._get_payment(tutor_id, payment_id)
        return self.record_payment(tutor_id, payment_id, Decimal(str(payment.amount_due)), notes)

    @BaseService.measure_operation("delete_payment")
    def delete_payment(self, tutor_id: str, payment_id: str) -> None:
        """Delete an invoice. Its lessons become billable again."""
        with self.transaction():
            payment = self._get_payment(tutor_id, payment_id)
            lesson_count = len(payment.lesson_links)
            self.payment_repository.delete(payment.id)
        self.logger.info(f"Payment {payment_id} deleted; {lesson_count} lessons released")

    @BaseService.measure_operation("list_payments")
    def list_payments(
        self,
        tutor_id: str,
        month: Optional[date] = None,
        status: Optional[PaymentStatus] = None,
    ) -> List[PaymentResponse]:
        payments = self.payment_repository.list_for_tutor(
            tutor_id,
            month=month_start(month) if month else None,
            statuses=[status] if status else None,
        )
        return [self._to_response(p, include_lessons=False) for p in payments]

    @BaseService.measure_operation("list_overdue")
    def list_overdue(self, tutor_id: str, today: Optional[date] = None) -> List[PaymentResponse]:
        """
        Unpaid or partial invoices for past months.

        The current month counts too once today is past the grace day.
        """
        today = today or business_today(self.tz_name)
        current_month = month_start(today)
        payments = self.payment_repository.list_for_tutor(
            tutor_id,
            statuses=[PaymentStatus.UNPAID, PaymentStatus.PARTIAL],
            before_or_on=current_month,
        )
        include_current = today.day > settings.overdue_grace_day
        overdue = [p for p in payments if p.month < current_month or include_current]
        return [self._to_response(p, include_lessons=False) for p in overdue]

    @BaseService.measure_operation("get_payment_with_lessons")
    def get_payment_with_lessons(self, tutor_id: str, payment_id: str) -> PaymentResponse:
        return self._to_response(self._get_payment(tutor_id, payment_id))

    def release_cancelled_lesson(self, link: PaymentLesson) -> Payment:
        """
        Take a cancelled lesson off its invoice. Does not commit.

        The invoice's amount_due drops by the frozen link amount and its
        status is recomputed against what has been paid.
        """
        payment = link.payment
        frozen = Decimal(str(link.amount))

        self.payment_repository.delete_link(link)
        # amount_due always equals the sum of the remaining frozen link amounts
        _, remaining = self.payment_repository.link_totals(payment.id)
        new_due = quantize_money(remaining)
        status = compute_payment_status(new_due, Decimal(str(payment.amount_paid)))
        payment.amount_due = new_due
        payment.status = status.value
        if status is PaymentStatus.PAID and payment.paid_at is None:
            payment.paid_at = datetime.now(timezone.utc)
        elif status is not PaymentStatus.PAID:
            payment.paid_at = None

        self.logger.info(
            f"Lesson {link.lesson_id} removed from invoice {payment.id}: "
            f"amount_due reduced by {frozen} to {new_due}, status {status.value}"
        )
        return payment

    def invoiced_lesson_ids(self, lesson_ids: Sequence[str]) -> List[str]:
        return self.payment_repository.get_invoiced_lesson_ids(lesson_ids)
