# backend/tutordesk/repositories/family_repository.py
"""
Family Repository for the tutordesk platform.

Read access to parents and their students. Profile CRUD lives outside this
service; billing and scheduling only need lookups.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.family import Parent, Student
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class FamilyRepository(BaseRepository[Parent]):
    """Repository for parent and student lookups."""

    def __init__(self, db: Session):
        super().__init__(db, Parent)

    def get_parent_for_tutor(self, tutor_id: str, parent_id: str) -> Optional[Parent]:
        try:
            return (
                self.db.query(Parent)
                .options(selectinload(Parent.students))
                .filter(Parent.id == parent_id, Parent.tutor_id == tutor_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting parent {parent_id}: {str(e)}")
            raise RepositoryException(f"Failed to get parent: {str(e)}")

    def list_parents_for_tutor(self, tutor_id: str) -> List[Parent]:
        """All parents of a tutor with students loaded, ordered by name."""
        try:
            return (
                self.db.query(Parent)
                .options(selectinload(Parent.students))
                .filter(Parent.tutor_id == tutor_id)
                .order_by(Parent.name)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing parents for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to list parents: {str(e)}")

    def get_students_by_ids(self, student_ids: List[str]) -> List[Student]:
        if not student_ids:
            return []
        try:
            return (
                self.db.query(Student)
                .options(selectinload(Student.parent))
                .filter(Student.id.in_(student_ids))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting students by ids: {str(e)}")
            raise RepositoryException(f"Failed to get students: {str(e)}")
