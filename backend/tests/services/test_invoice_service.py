"""
Tests for InvoiceService: at-most-once invoicing, payment recording and
the rollback paths of a rejected invoice write.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tutordesk.core.enums import LessonStatus, PaymentStatus
from tutordesk.core.exceptions import (
    BillingIntegrityException,
    InvoiceAlreadyExistsException,
    LessonAlreadyInvoicedException,
    NothingToInvoiceException,
    NotFoundException,
    ValidationException,
)
from tutordesk.models import Parent, Payment, PaymentLesson
from tutordesk.services.invoice_service import InvoiceService, compute_payment_status

from tests._utils.clock import local_utc

COMPLETED = LessonStatus.COMPLETED


@pytest.fixture
def service(db) -> InvoiceService:
    return InvoiceService(db)


def _payment_count(db) -> int:
    return db.query(Payment).count()


def _link_count(db) -> int:
    return db.query(PaymentLesson).count()


class TestComputePaymentStatus:
    @pytest.mark.parametrize(
        "due,paid,expected",
        [
            ("70.00", "0", PaymentStatus.UNPAID),
            ("70.00", "20.00", PaymentStatus.PARTIAL),
            ("70.00", "70.00", PaymentStatus.PAID),
            ("70.00", "90.00", PaymentStatus.PAID),
            ("0.00", "0", PaymentStatus.PAID),
        ],
    )
    def test_status_from_amounts(self, due, paid, expected):
        assert compute_payment_status(Decimal(due), Decimal(paid)) is expected


class TestGenerate:
    def test_sixty_minute_math_lesson_bills_seventy(
        self, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, _ = family
        lesson = make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)

        invoice = service.generate(tutor_id, parent.id, date(2026, 4, 20))

        assert invoice.month == date(2026, 4, 1)
        assert invoice.amount_due == Decimal("70.00")
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.status == PaymentStatus.UNPAID.value
        assert [(line.lesson_id, line.amount) for line in invoice.lessons] == [
            (lesson.id, Decimal("70.00"))
        ]

    def test_only_completed_uninvoiced_lessons_in_month_are_billed(
        self, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, ben = family
        billed = make_lesson(ava, "math", local_utc(2026, 3, 3), 30, COMPLETED)
        late_evening = make_lesson(ben, "piano", local_utc(2026, 3, 31, 23, 30), 30, COMPLETED)
        make_lesson(ava, "math", local_utc(2026, 3, 10), 30)
        make_lesson(ava, "math", local_utc(2026, 3, 17), 30, LessonStatus.CANCELLED)
        make_lesson(ava, "math", local_utc(2026, 4, 1, 9), 30, COMPLETED)

        invoice = service.generate(tutor_id, parent.id, date(2026, 3, 1))

        assert {line.lesson_id for line in invoice.lessons} == {billed.id, late_evening.id}
        assert invoice.amount_due == Decimal("65.00")

    def test_override_amount_is_billed_verbatim(
        self, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED, override_amount=Decimal("12.50"))

        invoice = service.generate(tutor_id, parent.id, date(2026, 4, 1))

        assert invoice.amount_due == Decimal("12.50")

    def test_second_invoice_for_same_month_is_rejected(
        self, db, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 3, 5), 60, COMPLETED)
        service.generate(tutor_id, parent.id, date(2026, 3, 1))

        with pytest.raises(InvoiceAlreadyExistsException):
            service.generate(tutor_id, parent.id, date(2026, 3, 15))

        assert _payment_count(db) == 1
        assert _link_count(db) == 1

    def test_no_billable_lessons(self, service, tutor_id, family, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60)

        with pytest.raises(NothingToInvoiceException) as exc_info:
            service.generate(tutor_id, parent.id, date(2026, 4, 1))

        assert exc_info.value.details == {"parent_id": parent.id, "month": "2026-04-01"}

    def test_parent_without_students(self, db, service, tutor_id):
        parent = Parent(tutor_id=tutor_id, name="Empty")
        db.add(parent)
        db.commit()

        with pytest.raises(NothingToInvoiceException, match="No students"):
            service.generate(tutor_id, parent.id, date(2026, 4, 1))

    def test_parent_of_another_tutor_is_not_found(self, service, family):
        parent, _, _ = family
        with pytest.raises(NotFoundException):
            service.generate("01OTHERTUTOR0000000000000A", parent.id, date(2026, 4, 1))

    def test_lesson_invoiced_concurrently_writes_nothing(
        self, db, service, tutor_id, family, math_rates, make_lesson, monkeypatch
    ):
        parent, ava, _ = family
        lesson = make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        service.generate(tutor_id, parent.id, date(2026, 4, 1))

        # A stale read hands the already-billed lesson to a May invoice
        monkeypatch.setattr(
            service.lesson_repository,
            "get_uninvoiced_completed_lessons",
            lambda *args, **kwargs: [lesson],
        )

        with pytest.raises(LessonAlreadyInvoicedException) as exc_info:
            service.generate(tutor_id, parent.id, date(2026, 5, 1))

        assert exc_info.value.details["lesson_ids"] == [lesson.id]
        assert service.payment_repository.get_for_parent_month(parent.id, date(2026, 5, 1)) is None
        assert _payment_count(db) == 1
        assert _link_count(db) == 1

    def test_parent_month_race_maps_to_already_exists(
        self, db, service, tutor_id, family, math_rates, make_lesson, monkeypatch
    ):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        make_lesson(ava, "math", local_utc(2026, 4, 21), 60, COMPLETED)
        service.generate(tutor_id, parent.id, date(2026, 4, 1))
        fresh = make_lesson(ava, "math", local_utc(2026, 4, 28), 60, COMPLETED)

        monkeypatch.setattr(
            service.payment_repository, "get_for_parent_month", lambda *args, **kwargs: None
        )

        with pytest.raises(InvoiceAlreadyExistsException):
            service.generate(tutor_id, parent.id, date(2026, 4, 1))

        assert _payment_count(db) == 1
        assert _link_count(db) == 2
        assert service.invoiced_lesson_ids([fresh.id]) == []

    def test_failed_rollback_escalates(
        self, db, service, tutor_id, family, math_rates, make_lesson, monkeypatch
    ):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        service.generate(tutor_id, parent.id, date(2026, 4, 1))
        make_lesson(ava, "math", local_utc(2026, 4, 21), 60, COMPLETED)

        def broken_rollback():
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(
            service.payment_repository, "get_for_parent_month", lambda *args, **kwargs: None
        )
        monkeypatch.setattr(db, "rollback", broken_rollback)

        with pytest.raises(BillingIntegrityException) as exc_info:
            service.generate(tutor_id, parent.id, date(2026, 4, 1))

        assert exc_info.value.code == "BILLING_INTEGRITY"
        monkeypatch.undo()
        db.rollback()


class TestPreview:
    def test_preview_lists_prices_without_writing(
        self, db, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, ben = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        make_lesson(ben, "reading", local_utc(2026, 4, 15), 90, COMPLETED)

        preview = service.preview(tutor_id, parent.id, date(2026, 4, 9))

        assert preview.month == date(2026, 4, 1)
        assert preview.lesson_count == 2
        assert preview.total_minutes == 150
        assert preview.total_amount == Decimal("145.00")
        assert [line.formula for line in preview.lessons] == [
            "60min / 30min × $35 = $70.00 (math rate)",
            "90min / 60min × $50 = $75.00 (reading rate)",
        ]
        assert _payment_count(db) == 0

    def test_preview_for_family_without_students_is_empty(self, db, service, tutor_id):
        parent = Parent(tutor_id=tutor_id, name="Empty")
        db.add(parent)
        db.commit()

        preview = service.preview(tutor_id, parent.id, date(2026, 4, 1))

        assert preview.lessons == []
        assert preview.total_amount == Decimal("0.00")


class TestPayments:
    @pytest.fixture
    def invoice(self, service, tutor_id, family, math_rates, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        return service.generate(tutor_id, parent.id, date(2026, 4, 1))

    def test_partial_then_full_payment(self, service, tutor_id, invoice):
        partial = service.record_payment(tutor_id, invoice.id, Decimal("20"))
        assert partial.status == PaymentStatus.PARTIAL.value
        assert partial.amount_paid == Decimal("20.00")
        assert partial.paid_at is None

        paid = service.record_payment(tutor_id, invoice.id, "70.00", notes="cash")
        assert paid.status == PaymentStatus.PAID.value
        assert paid.paid_at is not None
        assert paid.notes == "cash"

    def test_lowering_payment_clears_paid_at(self, service, tutor_id, invoice):
        service.mark_paid(tutor_id, invoice.id)

        reverted = service.record_payment(tutor_id, invoice.id, 0)

        assert reverted.status == PaymentStatus.UNPAID.value
        assert reverted.paid_at is None

    def test_mark_paid_pays_amount_due(self, service, tutor_id, invoice):
        paid = service.mark_paid(tutor_id, invoice.id)

        assert paid.amount_paid == Decimal("70.00")
        assert paid.status == PaymentStatus.PAID.value

    def test_negative_payment_is_rejected(self, service, tutor_id, invoice):
        with pytest.raises(ValidationException) as exc_info:
            service.record_payment(tutor_id, invoice.id, Decimal("-1"))
        assert exc_info.value.code == "NEGATIVE_PAYMENT"

    def test_released_lesson_leaves_remaining_link_total_due(
        self, db, service, tutor_id, family, math_rates, make_lesson
    ):
        parent, ava, ben = family
        make_lesson(ava, "math", local_utc(2026, 4, 14), 60, COMPLETED)
        short = make_lesson(ben, "math", local_utc(2026, 4, 15), 30, COMPLETED)
        invoice = service.generate(tutor_id, parent.id, date(2026, 4, 1))
        service.record_payment(tutor_id, invoice.id, "70.00")
        link = db.query(PaymentLesson).filter(PaymentLesson.lesson_id == short.id).one()

        payment = service.release_cancelled_lesson(link)
        db.commit()

        assert service.payment_repository.link_totals(invoice.id) == (1, Decimal("70.00"))
        assert payment.amount_due == Decimal("70.00")
        assert payment.status == PaymentStatus.PAID.value
        assert payment.paid_at is not None

    def test_unknown_payment(self, service, tutor_id):
        with pytest.raises(NotFoundException):
            service.record_payment(tutor_id, "01UNKNOWN00000000000000000", 10)

    def test_delete_releases_lessons_for_invoicing(self, db, service, tutor_id, family, invoice):
        parent, _, _ = family

        service.delete_payment(tutor_id, invoice.id)

        assert _payment_count(db) == 0
        assert _link_count(db) == 0
        again = service.generate(tutor_id, parent.id, date(2026, 4, 1))
        assert again.amount_due == Decimal("70.00")

    def test_list_payments_filters(self, service, tutor_id, invoice):
        assert [p.id for p in service.list_payments(tutor_id)] == [invoice.id]
        assert service.list_payments(tutor_id, month=date(2026, 5, 1)) == []
        assert service.list_payments(tutor_id, status=PaymentStatus.PAID) == []
        assert service.list_payments("01OTHERTUTOR0000000000000A") == []


class TestOverdue:
    @pytest.fixture
    def invoices(self, service, tutor_id, family, math_rates, make_lesson):
        parent, ava, _ = family
        make_lesson(ava, "math", local_utc(2026, 3, 10), 30, COMPLETED)
        make_lesson(ava, "math", local_utc(2026, 4, 10), 30, COMPLETED)
        march = service.generate(tutor_id, parent.id, date(2026, 3, 1))
        april = service.generate(tutor_id, parent.id, date(2026, 4, 1))
        return march, april

    def test_current_month_within_grace_is_not_overdue(self, service, tutor_id, invoices):
        march, _ = invoices
        overdue = service.list_overdue(tutor_id, today=date(2026, 4, 7))
        assert [p.id for p in overdue] == [march.id]

    def test_current_month_after_grace_is_overdue(self, service, tutor_id, invoices):
        march, april = invoices
        overdue = service.list_overdue(tutor_id, today=date(2026, 4, 8))
        assert [p.id for p in overdue] == [march.id, april.id]

    def test_partial_counts_and_paid_does_not(self, service, tutor_id, invoices):
        march, april = invoices
        service.record_payment(tutor_id, march.id, 10)
        service.mark_paid(tutor_id, april.id)

        overdue = service.list_overdue(tutor_id, today=date(2026, 5, 20))

        assert [(p.id, p.status) for p in overdue] == [(march.id, PaymentStatus.PARTIAL.value)]
