# backend/tutordesk/repositories/lesson_repository.py
"""
Lesson Repository for the tutordesk platform.

Implements the lesson store: range queries by tutor or student set,
batch creation, session membership and the "uninvoiced completed lessons"
query used by invoicing. All datetime bounds are UTC, end exclusive.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..core.enums import LessonStatus
from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson, LessonSession
from ..models.payment import PaymentLesson
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class LessonRepository(BaseRepository[Lesson]):
    """Repository for lesson and session data access."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    def _with_billing(self, query):
        return query.options(
            joinedload(Lesson.student),
            joinedload(Lesson.payment_link).joinedload(PaymentLesson.payment),
        )

    def get_lesson_for_tutor(self, tutor_id: str, lesson_id: str) -> Optional[Lesson]:
        try:
            return (
                self._with_billing(self.db.query(Lesson))
                .filter(Lesson.id == lesson_id, Lesson.tutor_id == tutor_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to get lesson: {str(e)}")

    def get_lessons_by_ids(self, tutor_id: str, lesson_ids: Sequence[str]) -> List[Lesson]:
        if not lesson_ids:
            return []
        try:
            return (
                self._with_billing(self.db.query(Lesson))
                .filter(Lesson.tutor_id == tutor_id, Lesson.id.in_(list(lesson_ids)))
                .order_by(Lesson.scheduled_at)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lessons by ids: {str(e)}")
            raise RepositoryException(f"Failed to get lessons: {str(e)}")

    def get_lessons_for_students(
        self,
        student_ids: Sequence[str],
        start_utc: datetime,
        end_utc: datetime,
        statuses: Optional[Iterable[LessonStatus]] = None,
    ) -> List[Lesson]:
        """
        Lessons of the given students scheduled in [start_utc, end_utc).

        Payment links and their payments are loaded eagerly.
        """
        if not student_ids:
            return []
        try:
            query = self._with_billing(self.db.query(Lesson)).filter(
                Lesson.student_id.in_(list(student_ids)),
                Lesson.scheduled_at >= start_utc,
                Lesson.scheduled_at < end_utc,
            )
            if statuses is not None:
                query = query.filter(Lesson.status.in_([s.value for s in statuses]))
            return query.order_by(Lesson.scheduled_at, Lesson.id).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lessons for students: {str(e)}")
            raise RepositoryException(f"Failed to get lessons: {str(e)}")

    def get_uninvoiced_completed_lessons(
        self, student_ids: Sequence[str], start_utc: datetime, end_utc: datetime
    ) -> List[Lesson]:
        """Completed lessons in range with no PaymentLesson row in any payment."""
        if not student_ids:
            return []
        try:
            return (
                self.db.query(Lesson)
                .options(joinedload(Lesson.student))
                .outerjoin(PaymentLesson, PaymentLesson.lesson_id == Lesson.id)
                .filter(
                    Lesson.student_id.in_(list(student_ids)),
                    Lesson.status == LessonStatus.COMPLETED.value,
                    Lesson.scheduled_at >= start_utc,
                    Lesson.scheduled_at < end_utc,
                    PaymentLesson.id.is_(None),
                )
                .order_by(Lesson.scheduled_at, Lesson.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting uninvoiced lessons: {str(e)}")
            raise RepositoryException(f"Failed to get uninvoiced lessons: {str(e)}")

    def get_tutor_lessons_in_range(
        self,
        tutor_id: str,
        start_utc: datetime,
        end_utc: datetime,
        *,
        include_cancelled: bool = False,
    ) -> List[Lesson]:
        try:
            query = self.db.query(Lesson).filter(
                Lesson.tutor_id == tutor_id,
                Lesson.scheduled_at >= start_utc,
                Lesson.scheduled_at < end_utc,
            )
            if not include_cancelled:
                query = query.filter(Lesson.status != LessonStatus.CANCELLED.value)
            return query.order_by(Lesson.scheduled_at, Lesson.id).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lessons for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get lessons: {str(e)}")

    def get_standalone_series_candidates(
        self, tutor_id: str, student_id: str, subject: str, duration_min: int
    ) -> List[Lesson]:
        """Standalone lessons sharing student, subject and duration."""
        try:
            return (
                self.db.query(Lesson)
                .filter(
                    Lesson.tutor_id == tutor_id,
                    Lesson.student_id == student_id,
                    Lesson.subject == subject,
                    Lesson.duration_min == duration_min,
                    Lesson.session_id.is_(None),
                )
                .order_by(Lesson.scheduled_at)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting series candidates: {str(e)}")
            raise RepositoryException(f"Failed to get series candidates: {str(e)}")

    # Sessions

    def create_session(self, **kwargs) -> LessonSession:
        try:
            session = LessonSession(**kwargs)
            self.db.add(session)
            self.db.flush()
            return session
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating lesson session: {str(e)}")
            raise RepositoryException(f"Failed to create lesson session: {str(e)}")

    def get_session_for_tutor(self, tutor_id: str, session_id: str) -> Optional[LessonSession]:
        try:
            return (
                self.db.query(LessonSession)
                .options(
                    selectinload(LessonSession.lessons)
                    .joinedload(Lesson.payment_link)
                    .joinedload(PaymentLesson.payment)
                )
                .filter(LessonSession.id == session_id, LessonSession.tutor_id == tutor_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to get session: {str(e)}")

    def get_sessions_by_ids(self, session_ids: Sequence[str]) -> List[LessonSession]:
        if not session_ids:
            return []
        try:
            return (
                self.db.query(LessonSession)
                .filter(LessonSession.id.in_(list(session_ids)))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting sessions by ids: {str(e)}")
            raise RepositoryException(f"Failed to get sessions: {str(e)}")

    def get_tutor_sessions_with_members(self, tutor_id: str) -> List[LessonSession]:
        try:
            return (
                self.db.query(LessonSession)
                .options(selectinload(LessonSession.lessons))
                .filter(LessonSession.tutor_id == tutor_id)
                .order_by(LessonSession.scheduled_at)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting sessions for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get sessions: {str(e)}")

    def delete_session_row(self, session: LessonSession) -> None:
        try:
            self.db.delete(session)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting session {session.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete session: {str(e)}")

    def delete_lessons(self, lessons: Sequence[Lesson]) -> int:
        try:
            for lesson in lessons:
                self.db.delete(lesson)
            self.db.flush()
            return len(lessons)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting lessons: {str(e)}")
            raise RepositoryException(f"Failed to delete lessons: {str(e)}")
