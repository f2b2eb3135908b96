"""Store-level guarantees behind at-most-once invoicing."""

from datetime import date
from decimal import Decimal

import pytest

from tutordesk.core.enums import LessonStatus, PaymentStatus
from tutordesk.core.exceptions import RepositoryException
from tutordesk.models import Payment, PaymentLesson
from tutordesk.repositories import RepositoryFactory

from tests._utils.clock import local_utc


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_payment_repository(db)


@pytest.fixture
def completed(family, make_lesson):
    _, ava, _ = family
    return make_lesson(ava, "math", local_utc(2026, 4, 14), 60, LessonStatus.COMPLETED)


def _create(repository, parent_id, month, lesson_id, amount="70.00"):
    return repository.create_invoice(
        parent_id=parent_id,
        month=month,
        amount_due=Decimal(amount),
        notes=None,
        lesson_amounts=[(lesson_id, Decimal(amount))],
    )


def test_create_invoice_stages_payment_and_links(db, repository, family, completed):
    parent, _, _ = family

    payment = _create(repository, parent.id, date(2026, 4, 1), completed.id)
    db.commit()

    assert payment.status == PaymentStatus.UNPAID.value
    assert repository.link_totals(payment.id) == (1, Decimal("70.00"))
    assert repository.get_invoiced_lesson_ids([completed.id, "other"]) == [completed.id]


def test_lesson_can_only_be_linked_once(db, repository, family, completed):
    parent, _, _ = family
    _create(repository, parent.id, date(2026, 4, 1), completed.id)
    db.commit()

    with pytest.raises(RepositoryException) as exc_info:
        _create(repository, parent.id, date(2026, 5, 1), completed.id)
    db.rollback()

    assert "payment_lessons" in exc_info.value.constraint or "uq_payment_lessons" in exc_info.value.constraint
    assert db.query(Payment).count() == 1
    assert db.query(PaymentLesson).count() == 1


def test_one_payment_per_family_month(db, repository, family, completed, make_lesson):
    parent, _, ben = family
    other = make_lesson(ben, "math", local_utc(2026, 4, 20), 30, LessonStatus.COMPLETED)
    _create(repository, parent.id, date(2026, 4, 1), completed.id)
    db.commit()

    with pytest.raises(RepositoryException) as exc_info:
        _create(repository, parent.id, date(2026, 4, 1), other.id, "35.00")
    db.rollback()

    assert "payments" in exc_info.value.constraint
    assert db.query(Payment).count() == 1


def test_get_payment_is_scoped_to_tutor(db, repository, family, completed):
    parent, _, _ = family
    payment = _create(repository, parent.id, date(2026, 4, 1), completed.id)
    db.commit()

    assert repository.get_payment_for_tutor(parent.tutor_id, payment.id) is not None
    assert repository.get_payment_for_tutor("01OTHERTUTOR0000000000000A", payment.id) is None


def test_uninvoiced_query_skips_linked_lessons(db, repository, family, completed, make_lesson):
    parent, ava, _ = family
    free = make_lesson(ava, "math", local_utc(2026, 4, 21), 60, LessonStatus.COMPLETED)
    _create(repository, parent.id, date(2026, 4, 1), completed.id)
    db.commit()
    lessons = RepositoryFactory.create_lesson_repository(db)

    result = lessons.get_uninvoiced_completed_lessons(
        [ava.id], local_utc(2026, 4, 1, 0), local_utc(2026, 5, 1, 0)
    )

    assert [lesson.id for lesson in result] == [free.id]
