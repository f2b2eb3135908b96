# backend/tutordesk/repositories/factory.py
"""
Repository Factory for the tutordesk platform.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .family_repository import FamilyRepository
    from .lesson_repository import LessonRepository
    from .payment_repository import PaymentRepository
    from .tutor_settings_repository import TutorSettingsRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        """Create repository for lessons and combined sessions."""
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        """Create repository for invoices and lesson links."""
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_family_repository(db: Session) -> "FamilyRepository":
        from .family_repository import FamilyRepository

        return FamilyRepository(db)

    @staticmethod
    def create_tutor_settings_repository(db: Session) -> "TutorSettingsRepository":
        from .tutor_settings_repository import TutorSettingsRepository

        return TutorSettingsRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for availability and break slots."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)
