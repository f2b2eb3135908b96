# backend/tutordesk/routes/v1/billing.py
"""
Billing routes - API v1

Invoices, payments and monthly reporting under /api/v1/billing.

Endpoints:
    GET /invoices/preview                  → Billable lessons for a family/month
    POST /invoices                         → Generate a family's monthly invoice
    GET /payments                          → Invoices, optionally by month/status
    GET /payments/overdue                  → Unpaid or partial invoices past due
    GET /payments/totals                   → Due/paid/outstanding for a month
    GET /payments/{payment_id}             → Invoice with its lessons
    POST /payments/{payment_id}/record     → Record an amount paid
    POST /payments/{payment_id}/mark-paid  → Record full payment
    DELETE /payments/{payment_id}          → Delete an invoice
    GET /summary                           → Monthly lesson and revenue summary
"""

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from ...api.dependencies import get_invoice_service, get_monthly_summary_service, get_tutor_id
from ...core.enums import PaymentStatus
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...schemas.billing import (
    InvoiceCreate,
    InvoicePreview,
    MarkPaidRequest,
    MonthlySummary,
    PaymentResponse,
    PaymentTotals,
    RecordPaymentRequest,
)
from ...services.invoice_service import InvoiceService
from ...services.monthly_summary_service import MonthlySummaryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing-v1"])


@router.get("/invoices/preview", response_model=InvoicePreview)
async def preview_invoice(
    parent_id: str = Query(...),
    month: date = Query(..., description="Any date in the billing month"),
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoicePreview:
    try:
        return await asyncio.to_thread(service.preview, tutor_id, parent_id, month)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/invoices", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    payload: InvoiceCreate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> PaymentResponse:
    """
    Invoice a family's completed, never-billed lessons for a month.

    409 when the month is already invoiced or a lesson was billed
    concurrently; 422 when there is nothing to invoice.
    """
    try:
        return await asyncio.to_thread(
            service.generate, tutor_id, payload.parent_id, payload.month, payload.notes
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(
    month: Optional[date] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> List[PaymentResponse]:
    try:
        return await asyncio.to_thread(service.list_payments, tutor_id, month, payment_status)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/payments/overdue", response_model=List[PaymentResponse])
async def list_overdue(
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> List[PaymentResponse]:
    try:
        return await asyncio.to_thread(service.list_overdue, tutor_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/payments/totals", response_model=PaymentTotals)
async def payment_totals(
    month: date = Query(...),
    tutor_id: str = Depends(get_tutor_id),
    service: MonthlySummaryService = Depends(get_monthly_summary_service),
) -> PaymentTotals:
    try:
        return await asyncio.to_thread(service.payment_totals, tutor_id, month)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> PaymentResponse:
    try:
        return await asyncio.to_thread(service.get_payment_with_lessons, tutor_id, payment_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/payments/{payment_id}/record", response_model=PaymentResponse)
async def record_payment(
    payment_id: str,
    payload: RecordPaymentRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> PaymentResponse:
    try:
        return await asyncio.to_thread(
            service.record_payment, tutor_id, payment_id, payload.amount_paid, payload.notes
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/payments/{payment_id}/mark-paid", response_model=PaymentResponse)
async def mark_paid(
    payment_id: str,
    payload: Optional[MarkPaidRequest] = Body(None),
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> PaymentResponse:
    try:
        return await asyncio.to_thread(
            service.mark_paid, tutor_id, payment_id, payload.notes if payload else None
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(
    payment_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    """Delete an invoice; its lessons become billable again."""
    try:
        await asyncio.to_thread(service.delete_payment, tutor_id, payment_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/summary", response_model=MonthlySummary)
async def monthly_summary(
    month: date = Query(..., description="Any date in the month"),
    tutor_id: str = Depends(get_tutor_id),
    service: MonthlySummaryService = Depends(get_monthly_summary_service),
) -> MonthlySummary:
    try:
        return await asyncio.to_thread(service.summarize, tutor_id, month)
    except DomainException as e:
        handle_domain_exception(e)
