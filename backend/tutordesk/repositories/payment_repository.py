# backend/tutordesk/repositories/payment_repository.py
"""
Payment Repository for the tutordesk platform.

Owns the invoice write: the Payment row and all its PaymentLesson links
are added and flushed together so the service can commit or roll back
them as one unit.
"""

from datetime import date
from decimal import Decimal
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..core.enums import PaymentStatus
from ..core.exceptions import RepositoryException
from ..database.session_utils import constraint_name_from_error
from ..models.family import Parent
from ..models.lesson import Lesson
from ..models.payment import Payment, PaymentLesson
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    """Repository for invoices and their lesson links."""

    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_for_parent_month(self, parent_id: str, month: date) -> Optional[Payment]:
        try:
            return (
                self.db.query(Payment)
                .filter(Payment.parent_id == parent_id, Payment.month == month)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting payment for {parent_id}/{month}: {str(e)}")
            raise RepositoryException(f"Failed to get payment: {str(e)}")

    def get_payment_for_tutor(self, tutor_id: str, payment_id: str) -> Optional[Payment]:
        """Payment with its links, lessons and parent loaded."""
        try:
            return (
                self.db.query(Payment)
                .join(Parent, Parent.id == Payment.parent_id)
                .options(
                    joinedload(Payment.parent),
                    selectinload(Payment.lesson_links)
                    .joinedload(PaymentLesson.lesson)
                    .joinedload(Lesson.student),
                )
                .filter(Payment.id == payment_id, Parent.tutor_id == tutor_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting payment {payment_id}: {str(e)}")
            raise RepositoryException(f"Failed to get payment: {str(e)}")

    def list_for_tutor(
        self,
        tutor_id: str,
        *,
        month: Optional[date] = None,
        statuses: Optional[Sequence[PaymentStatus]] = None,
        before_or_on: Optional[date] = None,
    ) -> List[Payment]:
        try:
            query = (
                self.db.query(Payment)
                .join(Parent, Parent.id == Payment.parent_id)
                .options(joinedload(Payment.parent))
                .filter(Parent.tutor_id == tutor_id)
            )
            if month is not None:
                query = query.filter(Payment.month == month)
            if before_or_on is not None:
                query = query.filter(Payment.month <= before_or_on)
            if statuses:
                query = query.filter(Payment.status.in_([s.value for s in statuses]))
            return query.order_by(Payment.month, Parent.name).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing payments for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to list payments: {str(e)}")

    def create_invoice(
        self,
        *,
        parent_id: str,
        month: date,
        amount_due: Decimal,
        notes: Optional[str],
        lesson_amounts: Sequence[Tuple[str, Decimal]],
    ) -> Payment:
        """
        Stage a Payment and its PaymentLesson rows and flush them together.

        Does not commit and does not roll back; the caller decides.

        Raises:
            RepositoryException: with ``constraint`` set when a unique
                constraint rejects the write
        """
        try:
            payment = Payment(
                parent_id=parent_id,
                month=month,
                amount_due=amount_due,
                amount_paid=Decimal("0"),
                status=PaymentStatus.UNPAID.value,
                notes=notes,
            )
            self.db.add(payment)
            self.db.flush()
            links = [
                PaymentLesson(payment_id=payment.id, lesson_id=lesson_id, amount=amount)
                for lesson_id, amount in lesson_amounts
            ]
            self.db.add_all(links)
            self.db.flush()
            return payment
        except IntegrityError as exc:
            constraint = constraint_name_from_error(exc)
            self.logger.warning("Invoice write rejected by constraint: %s", constraint)
            raise RepositoryException(
                f"Integrity constraint violated: {exc}", constraint=constraint
            ) from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating invoice for {parent_id}/{month}: {str(e)}")
            raise RepositoryException(f"Failed to create invoice: {str(e)}")

    def get_invoiced_lesson_ids(self, lesson_ids: Sequence[str]) -> List[str]:
        if not lesson_ids:
            return []
        try:
            rows = (
                self.db.query(PaymentLesson.lesson_id)
                .filter(PaymentLesson.lesson_id.in_(list(lesson_ids)))
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking invoiced lessons: {str(e)}")
            raise RepositoryException(f"Failed to check invoiced lessons: {str(e)}")

    def delete_link(self, link: PaymentLesson) -> None:
        try:
            self.db.delete(link)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting payment link {link.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete payment link: {str(e)}")

    def link_totals(self, payment_id: str) -> Tuple[int, Decimal]:
        """(link count, sum of frozen amounts) for a payment."""
        try:
            count, total = (
                self.db.query(func.count(PaymentLesson.id), func.sum(PaymentLesson.amount))
                .filter(PaymentLesson.payment_id == payment_id)
                .one()
            )
            return int(count or 0), Decimal(str(total or 0))
        except SQLAlchemyError as e:
            self.logger.error(f"Error summing links for {payment_id}: {str(e)}")
            raise RepositoryException(f"Failed to sum payment links: {str(e)}")
