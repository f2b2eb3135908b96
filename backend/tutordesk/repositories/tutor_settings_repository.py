# backend/tutordesk/repositories/tutor_settings_repository.py
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.tutor_settings import TutorSettings
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TutorSettingsRepository(BaseRepository[TutorSettings]):
    """Single-row-per-tutor rate settings store."""

    def __init__(self, db: Session):
        super().__init__(db, TutorSettings)

    def get_for_tutor(self, tutor_id: str) -> Optional[TutorSettings]:
        try:
            return self.db.query(TutorSettings).filter(TutorSettings.tutor_id == tutor_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting settings for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get tutor settings: {str(e)}")

    def upsert(self, tutor_id: str, **fields) -> TutorSettings:
        """Insert or update the tutor's settings row. Does not commit."""
        existing = self.get_for_tutor(tutor_id)
        if existing is None:
            return self.create(tutor_id=tutor_id, **fields)
        try:
            for key, value in fields.items():
                setattr(existing, key, value)
            self.db.flush()
            return existing
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating settings for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to update tutor settings: {str(e)}")
