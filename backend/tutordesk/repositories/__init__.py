"""
Repository layer for the tutordesk platform.

Repositories wrap every query and convert SQLAlchemy errors into
RepositoryException. They flush but never commit.
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .family_repository import FamilyRepository
from .lesson_repository import LessonRepository
from .payment_repository import PaymentRepository
from .tutor_settings_repository import TutorSettingsRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "FamilyRepository",
    "LessonRepository",
    "PaymentRepository",
    "RepositoryFactory",
    "TutorSettingsRepository",
]
