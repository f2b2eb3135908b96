# backend/tutordesk/routes/v1/lessons.py
"""
Lesson routes - API v1

Versioned lesson and combined-session endpoints under /api/v1/lessons.
All business logic delegated to SchedulingService.

Endpoints:
    GET /                                  → Calendar rows for a date range
    POST /                                 → Create a lesson or recurring series
    POST /sessions                         → Create a combined booking
    POST /sessions/plan                    → Preview combined-booking durations
    PATCH /series                          → New time/duration/notes for many lessons
    POST /series/delete                    → Delete many lessons
    PATCH /{lesson_id}                     → Edit a lesson
    POST /{lesson_id}/complete|cancel|uncomplete
    POST /{lesson_id}/reschedule           → Move, rejecting conflicts
    DELETE /{lesson_id}                    → Delete a lesson
    GET /{lesson_id}/series                → Lessons recurring with this one
    POST /sessions/{session_id}/complete|cancel|uncomplete
    DELETE /sessions/{session_id}          → Delete a session and its lessons
    GET /sessions/{session_id}/series      → Sessions recurring with this one
"""

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ...api.dependencies import get_scheduling_service, get_tutor_id
from ...core.exceptions import DomainException, ValidationException
from ...errors import handle_domain_exception
from ...schemas.lesson import (
    DeleteResult,
    GroupedLessonResponse,
    LessonCreate,
    LessonResponse,
    LessonUpdate,
    RescheduleRequest,
    ScheduleResult,
    SeriesDeleteRequest,
    SeriesResponse,
    SeriesUpdate,
    SessionCreate,
    SessionPlanRequest,
    SessionPlanResponse,
    StatusChangeRequest,
)
from ...services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lessons-v1"])


def _notes(payload: Optional[StatusChangeRequest]) -> Optional[str]:
    return payload.notes if payload else None


@router.get("", response_model=List[GroupedLessonResponse])
async def list_lessons(
    start_date: date = Query(..., description="First local date, inclusive"),
    end_date: date = Query(..., description="Last local date, inclusive"),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> List[GroupedLessonResponse]:
    try:
        if end_date < start_date:
            raise ValidationException("end_date must not be before start_date", code="INVALID_RANGE")
        return await asyncio.to_thread(service.group_lessons_by_session, tutor_id, start_date, end_date)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=ScheduleResult, status_code=status.HTTP_201_CREATED)
async def create_lessons(
    payload: LessonCreate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> ScheduleResult:
    """Create one lesson, or every lesson of a recurring series."""
    try:
        return await asyncio.to_thread(service.create_lessons, tutor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sessions", response_model=ScheduleResult, status_code=status.HTTP_201_CREATED)
async def create_sessions(
    payload: SessionCreate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> ScheduleResult:
    try:
        return await asyncio.to_thread(service.create_sessions, tutor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sessions/plan", response_model=SessionPlanResponse)
async def preview_session_plan(
    payload: SessionPlanRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> SessionPlanResponse:
    try:
        return await asyncio.to_thread(
            service.preview_session_plan, tutor_id, payload.members, payload.duration_min
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/series", response_model=SeriesResponse)
async def update_series(
    payload: SeriesUpdate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> SeriesResponse:
    try:
        return await asyncio.to_thread(service.update_series, tutor_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/series/delete", response_model=DeleteResult)
async def delete_series(
    payload: SeriesDeleteRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> DeleteResult:
    try:
        return await asyncio.to_thread(service.delete_series, tutor_id, payload.lesson_ids)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sessions/{session_id}/complete", response_model=List[LessonResponse])
async def complete_session(
    session_id: str,
    payload: Optional[StatusChangeRequest] = Body(None),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> List[LessonResponse]:
    try:
        return await asyncio.to_thread(service.complete_session, tutor_id, session_id, _notes(payload))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sessions/{session_id}/cancel", response_model=List[LessonResponse])
async def cancel_session(
    session_id: str,
    payload: Optional[StatusChangeRequest] = Body(None),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> List[LessonResponse]:
    try:
        return await asyncio.to_thread(service.cancel_session, tutor_id, session_id, _notes(payload))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/sessions/{session_id}/uncomplete", response_model=List[LessonResponse])
async def uncomplete_session(
    session_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> List[LessonResponse]:
    try:
        return await asyncio.to_thread(service.uncomplete_session, tutor_id, session_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/sessions/{session_id}", response_model=DeleteResult)
async def delete_session(
    session_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> DeleteResult:
    try:
        return await asyncio.to_thread(service.delete_session, tutor_id, session_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/sessions/{session_id}/series", response_model=SeriesResponse)
async def find_session_series(
    session_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> SeriesResponse:
    try:
        return await asyncio.to_thread(service.find_session_series, tutor_id, session_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{lesson_id}", response_model=LessonResponse)
async def update_lesson(
    lesson_id: str,
    payload: LessonUpdate = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    try:
        return await asyncio.to_thread(service.update_lesson, tutor_id, lesson_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{lesson_id}/complete", response_model=LessonResponse)
async def complete_lesson(
    lesson_id: str,
    payload: Optional[StatusChangeRequest] = Body(None),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    try:
        return await asyncio.to_thread(service.complete_lesson, tutor_id, lesson_id, _notes(payload))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{lesson_id}/cancel", response_model=LessonResponse)
async def cancel_lesson(
    lesson_id: str,
    payload: Optional[StatusChangeRequest] = Body(None),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    """Cancel a lesson. An invoiced lesson is taken off its invoice."""
    try:
        return await asyncio.to_thread(service.cancel_lesson, tutor_id, lesson_id, _notes(payload))
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{lesson_id}/uncomplete", response_model=LessonResponse)
async def uncomplete_lesson(
    lesson_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> LessonResponse:
    try:
        return await asyncio.to_thread(service.uncomplete_lesson, tutor_id, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{lesson_id}/reschedule", response_model=List[LessonResponse])
async def reschedule_lesson(
    lesson_id: str,
    payload: RescheduleRequest = Body(...),
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> List[LessonResponse]:
    """Move a lesson, or its whole session, unless the new slot is taken."""
    try:
        return await asyncio.to_thread(service.reschedule_lesson, tutor_id, lesson_id, payload)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete("/{lesson_id}", response_model=DeleteResult)
async def delete_lesson(
    lesson_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> DeleteResult:
    try:
        return await asyncio.to_thread(service.delete_lesson, tutor_id, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{lesson_id}/series", response_model=SeriesResponse)
async def find_series(
    lesson_id: str,
    tutor_id: str = Depends(get_tutor_id),
    service: SchedulingService = Depends(get_scheduling_service),
) -> SeriesResponse:
    try:
        return await asyncio.to_thread(service.find_series, tutor_id, lesson_id)
    except DomainException as e:
        handle_domain_exception(e)
