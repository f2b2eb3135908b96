"""
Invoice, payment and monthly summary schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field

from ..core.enums import LessonPaymentState, LessonStatus, PaymentStatus
from .base import Money, StandardizedModel, StrictModel


class InvoiceLine(StandardizedModel):
    lesson_id: str
    student_id: str
    student_name: str
    subject: str
    scheduled_at: datetime
    duration_min: int
    is_combined: bool
    amount: Money
    rate_display: str
    formula: str


class InvoicePreview(StandardizedModel):
    parent_id: str
    month: date
    lessons: List[InvoiceLine]
    total_amount: Money
    lesson_count: int
    total_minutes: int


class InvoiceCreate(StrictModel):
    parent_id: str
    month: date
    notes: Optional[str] = None


class RecordPaymentRequest(StrictModel):
    amount_paid: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    notes: Optional[str] = None


class MarkPaidRequest(StrictModel):
    notes: Optional[str] = None


class PaymentLessonResponse(StandardizedModel):
    lesson_id: str
    amount: Money
    subject: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    student_name: Optional[str] = None


class PaymentResponse(StandardizedModel):
    id: str
    parent_id: str
    parent_name: Optional[str] = None
    month: date
    amount_due: Money
    amount_paid: Money
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    lessons: List[PaymentLessonResponse] = Field(default_factory=list)


class LessonDetail(StandardizedModel):
    """One lesson as it appears in the monthly summary."""

    lesson_id: str
    student_id: str
    student_name: str
    subject: str
    scheduled_at: datetime
    duration_min: int
    status: LessonStatus
    session_id: Optional[str] = None
    amount: Money
    rate: Money
    base_duration: int
    rate_display: str
    formula: str
    payment_state: LessonPaymentState
    payment_id: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


class SummaryTotals(StandardizedModel):
    scheduled_count: int = 0
    completed_count: int = 0
    invoiced_count: int = 0
    paid_count: int = 0
    cancelled_count: int = 0
    combined_session_count: int = 0
    expected_amount: Money = Decimal("0.00")
    billable_amount: Money = Decimal("0.00")
    invoiced_amount: Money = Decimal("0.00")
    collected_amount: Money = Decimal("0.00")
    combined_session_amount: Money = Decimal("0.00")


class FamilySummary(SummaryTotals):
    parent_id: str
    parent_name: str
    data_complete: bool = True
    lessons: List[LessonDetail] = Field(default_factory=list)


class MonthlySummary(StandardizedModel):
    month: date
    families: List[FamilySummary]
    totals: SummaryTotals
    partial: bool = False
    warnings: List[str] = Field(default_factory=list)


class PaymentTotals(StandardizedModel):
    month: date
    total_due: Money
    total_paid: Money
    outstanding: Money
    counts: Dict[str, int]
