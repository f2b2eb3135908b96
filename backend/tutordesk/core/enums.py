# backend/tutordesk/core/enums.py
"""
Core enums for the tutordesk platform.

Subjects are stored as plain strings so new subjects can be added without a
migration; the enum lists the ones that ship with the product.
"""

from enum import Enum


class Subject(str, Enum):
    """Standard tutoring subjects."""

    PIANO = "piano"
    MATH = "math"
    READING = "reading"
    SPEECH = "speech"
    ENGLISH = "english"


class LessonStatus(str, Enum):
    """Lesson lifecycle statuses."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Invoice payment states."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class RecurrenceRule(str, Enum):
    """How a lesson request repeats."""

    NONE = "none"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class SessionScenario(str, Enum):
    """How member durations are derived for a combined booking."""

    SINGLE = "single"  # one student, one subject
    GROUP = "group"  # A1: same subject, everyone gets the full block
    SEQUENTIAL = "sequential"  # A2: different subjects, block split evenly
    MULTI_SUBJECT = "multi_subject"  # B: one student with several subjects


class LessonPaymentState(str, Enum):
    """Billing state of a single lesson in reporting."""

    NONE = "none"
    INVOICED = "invoiced"
    PAID = "paid"


class BusySlotType(str, Enum):
    """Source of a busy interval."""

    LESSON = "lesson"
    SESSION = "session"
    BREAK = "break"
