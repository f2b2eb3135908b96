# backend/tutordesk/repositories/availability_repository.py
"""
Availability Repository for the tutordesk platform.

Read-only access to weekly recurring slots and date-scoped slots for both
availability and breaks. day_of_week uses 0=Sunday through 6=Saturday.
"""

from datetime import date
import logging
from typing import List, Type, TypeVar

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import TutorAvailability, TutorBreak
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

SlotModel = TypeVar("SlotModel", TutorAvailability, TutorBreak)


def sunday_based_weekday(day: date) -> int:
    """Python weekday (Monday=0) to the stored convention (Sunday=0)."""
    return (day.weekday() + 1) % 7


class AvailabilityRepository(BaseRepository[TutorAvailability]):
    def __init__(self, db: Session):
        super().__init__(db, TutorAvailability)

    def _slots_for_date(
        self, model: Type[SlotModel], tutor_id: str, target_date: date
    ) -> List[SlotModel]:
        try:
            return (
                self.db.query(model)
                .filter(
                    model.tutor_id == tutor_id,
                    or_(
                        and_(
                            model.is_recurring.is_(True),
                            model.day_of_week == sunday_based_weekday(target_date),
                        ),
                        and_(
                            model.is_recurring.is_(False),
                            model.specific_date == target_date,
                        ),
                    ),
                )
                .order_by(model.start_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {model.__name__} for {target_date}: {str(e)}")
            raise RepositoryException(f"Failed to get {model.__name__} rows: {str(e)}")

    def get_availability_for_date(self, tutor_id: str, target_date: date) -> List[TutorAvailability]:
        return self._slots_for_date(TutorAvailability, tutor_id, target_date)

    def get_breaks_for_date(self, tutor_id: str, target_date: date) -> List[TutorBreak]:
        return self._slots_for_date(TutorBreak, tutor_id, target_date)
