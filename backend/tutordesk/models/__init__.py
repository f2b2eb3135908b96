"""
Database models for the tutordesk platform.

The models are organized by functionality:
- Families (parents and students)
- Lessons and combined sessions
- Tutor rate settings
- Invoices and their lesson links
- Availability and breaks
"""

from .availability import TutorAvailability, TutorBreak
from .family import Parent, Student
from .lesson import Lesson, LessonSession
from .payment import Payment, PaymentLesson
from .tutor_settings import TutorSettings

__all__ = [
    "Lesson",
    "LessonSession",
    "Parent",
    "Payment",
    "PaymentLesson",
    "Student",
    "TutorAvailability",
    "TutorBreak",
    "TutorSettings",
]
