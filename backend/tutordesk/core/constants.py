# backend/tutordesk/core/constants.py
"""Application-wide constants for the tutordesk billing and scheduling core."""

from __future__ import annotations

from decimal import Decimal

# Rate defaults used when a tutor has no settings row at all
DEFAULT_RATE = Decimal("45")
DEFAULT_BASE_DURATION = 60  # minutes
DEFAULT_COMBINED_SESSION_RATE = Decimal("40")  # historical flat rate, never priced

CENT = Decimal("0.01")
ZERO_AMOUNT = Decimal("0.00")

# Recurrence
RECURRENCE_MAX_INSTANCES = 1000
RECURRENCE_DEFAULT_HORIZON_MONTHS = 12

# Conflict detection
FREE_START_STEP_MINUTES = 30
MINUTES_PER_DAY = 24 * 60

# Payments are overdue after this day of the billing month
OVERDUE_GRACE_DAY = 7
