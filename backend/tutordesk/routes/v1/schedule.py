# backend/tutordesk/routes/v1/schedule.py
"""
Schedule routes - API v1

Endpoints:
    GET /day     → Availability windows, busy intervals and candidate starts
    POST /check  → Busy intervals a proposed slot would overlap
"""

import asyncio
from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ...api.dependencies import get_conflict_checker, get_tutor_id
from ...core.exceptions import DomainException
from ...core.timezone_utils import from_business_input
from ...errors import handle_domain_exception
from ...schemas.scheduling import ConflictCheckRequest, ConflictCheckResponse, DayScheduleResponse
from ...services.conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["schedule-v1"])


@router.get("/day", response_model=DayScheduleResponse)
async def describe_day(
    day: date = Query(..., description="Local business date"),
    duration_min: int = Query(60, gt=0, le=480),
    step_minutes: Optional[int] = Query(None, gt=0, le=240),
    tutor_id: str = Depends(get_tutor_id),
    checker: ConflictChecker = Depends(get_conflict_checker),
) -> DayScheduleResponse:
    """Every candidate start is listed; busy ones are flagged, not dropped."""
    try:
        return await asyncio.to_thread(checker.describe_day, tutor_id, day, duration_min, step_minutes)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/check", response_model=ConflictCheckResponse)
async def check_slot(
    payload: ConflictCheckRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    checker: ConflictChecker = Depends(get_conflict_checker),
) -> ConflictCheckResponse:
    try:
        conflicts = await asyncio.to_thread(
            checker.check_slot,
            tutor_id,
            from_business_input(payload.scheduled_at, checker.tz_name),
            payload.duration_min,
            exclude_lesson_id=payload.exclude_lesson_id,
            exclude_session_id=payload.exclude_session_id,
        )
        return ConflictCheckResponse(is_busy=bool(conflicts), conflicts=checker.to_responses(conflicts))
    except DomainException as e:
        handle_domain_exception(e)
