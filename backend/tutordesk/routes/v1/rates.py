# backend/tutordesk/routes/v1/rates.py
"""
Rate settings routes - API v1

Endpoints:
    GET /        → Current rate settings (defaults when none are stored)
    PUT /        → Insert or update the tutor's rate settings
    POST /quote  → Price a lesson with the stored settings
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends

from ...api.dependencies import get_rate_settings_service, get_tutor_id
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...schemas.rates import RateQuote, RateQuoteRequest, RateSettingsResponse, RateSettingsUpdate
from ...services.rate_settings_service import RateSettingsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rates-v1"])


@router.get("", response_model=RateSettingsResponse)
async def get_rate_settings(
    tutor_id: str = Depends(get_tutor_id),
    service: RateSettingsService = Depends(get_rate_settings_service),
) -> RateSettingsResponse:
    try:
        return await asyncio.to_thread(service.get_settings, tutor_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("", response_model=RateSettingsResponse)
async def upsert_rate_settings(
    payload: RateSettingsUpdate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: RateSettingsService = Depends(get_rate_settings_service),
) -> RateSettingsResponse:
    """Save rate settings. subject_rates, when sent, replaces the stored map."""
    try:
        return await asyncio.to_thread(service.upsert_settings, tutor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/quote", response_model=RateQuote)
async def quote_rate(
    payload: RateQuoteRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: RateSettingsService = Depends(get_rate_settings_service),
) -> RateQuote:
    try:
        return await asyncio.to_thread(service.quote, tutor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)
