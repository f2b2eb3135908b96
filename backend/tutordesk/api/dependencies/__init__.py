# backend/tutordesk/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .database import get_db
from .services import (
    get_conflict_checker,
    get_invoice_service,
    get_monthly_summary_service,
    get_rate_settings_service,
    get_scheduling_service,
)
from .tutor import get_tutor_id

__all__ = [
    # Database
    "get_db",
    # Tutor
    "get_tutor_id",
    # Services
    "get_rate_settings_service",
    "get_scheduling_service",
    "get_conflict_checker",
    "get_invoice_service",
    "get_monthly_summary_service",
]
