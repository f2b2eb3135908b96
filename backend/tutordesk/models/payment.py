# backend/tutordesk/models/payment.py
"""
Invoice models for the tutordesk platform.

A Payment is one family's invoice for one billing month. PaymentLesson
rows freeze the amount billed for each lesson. A lesson id appears in at
most one PaymentLesson row, enforced by a unique constraint.
"""

import logging

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import PaymentStatus
from ..database import Base

logger = logging.getLogger(__name__)

PAYMENT_PARENT_MONTH_CONSTRAINT = "uq_payments_parent_month"
PAYMENT_LESSON_UNIQUE_CONSTRAINT = "uq_payment_lessons_lesson_id"


class Payment(Base):
    """Monthly invoice for a family."""

    __tablename__ = "payments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    parent_id = Column(String(26), ForeignKey("parents.id", ondelete="CASCADE"), nullable=False)
    # First day of the billing month
    month = Column(Date, nullable=False, index=True)
    amount_due = Column(Numeric(10, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    parent = relationship("Parent", back_populates="payments")
    lesson_links = relationship(
        "PaymentLesson",
        back_populates="payment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("parent_id", "month", name=PAYMENT_PARENT_MONTH_CONSTRAINT),
        CheckConstraint("status IN ('unpaid', 'partial', 'paid')", name="ck_payments_status"),
        CheckConstraint("amount_due >= 0", name="check_amount_due_non_negative"),
        CheckConstraint("amount_paid >= 0", name="check_amount_paid_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment {self.id}: parent={self.parent_id}, month={self.month}, "
            f"due={self.amount_due}, paid={self.amount_paid}, status={self.status}>"
        )


class PaymentLesson(Base):
    """Link between an invoice and a billed lesson, carrying the frozen amount."""

    __tablename__ = "payment_lessons"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    payment_id = Column(
        String(26), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lesson_id = Column(String(26), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payment = relationship("Payment", back_populates="lesson_links")
    lesson = relationship("Lesson", back_populates="payment_link")

    __table_args__ = (
        UniqueConstraint("lesson_id", name=PAYMENT_LESSON_UNIQUE_CONSTRAINT),
        CheckConstraint("amount >= 0", name="check_link_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<PaymentLesson payment={self.payment_id} lesson={self.lesson_id} amount={self.amount}>"
