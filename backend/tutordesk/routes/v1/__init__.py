# backend/tutordesk/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import billing, lessons, rates, schedule

__all__ = ["billing", "lessons", "rates", "schedule"]
