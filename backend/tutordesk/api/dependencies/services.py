# backend/tutordesk/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.conflict_checker import ConflictChecker
from ...services.invoice_service import InvoiceService
from ...services.monthly_summary_service import MonthlySummaryService
from ...services.rate_settings_service import RateSettingsService
from ...services.scheduling_service import SchedulingService
from .database import get_db

logger = logging.getLogger(__name__)


def get_rate_settings_service(db: Session = Depends(get_db)) -> RateSettingsService:
    """Get RateSettingsService instance."""
    return RateSettingsService(db)


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """
    Get scheduling service instance.

    Args:
        db: Database session

    Returns:
        SchedulingService instance
    """
    return SchedulingService(db)


def get_conflict_checker(db: Session = Depends(get_db)) -> ConflictChecker:
    return ConflictChecker(db)


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Get InvoiceService instance."""
    return InvoiceService(db)


def get_monthly_summary_service(db: Session = Depends(get_db)) -> MonthlySummaryService:
    return MonthlySummaryService(db)
