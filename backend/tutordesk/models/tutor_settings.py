# backend/tutordesk/models/tutor_settings.py
"""
Tutor rate configuration.

subject_rates is stored as JSON, keyed by subject:
    {"math": {"rate": 35, "base_duration": 30, "duration_prices": {"45": 50}}}

The JSON is parsed leniently by the schema layer; this model only stores it.
"""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func
import ulid

from ..core.constants import DEFAULT_BASE_DURATION, DEFAULT_COMBINED_SESSION_RATE, DEFAULT_RATE
from ..database import Base


class TutorSettings(Base):
    __tablename__ = "tutor_settings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), nullable=False, unique=True, index=True)
    default_rate = Column(Numeric(10, 2), nullable=False, default=DEFAULT_RATE)
    default_base_duration = Column(Integer, nullable=False, default=DEFAULT_BASE_DURATION)
    subject_rates = Column(JSON, nullable=False, default=dict)
    # Historical flat group rate; never used for pricing
    combined_session_rate = Column(
        Numeric(10, 2), nullable=False, default=DEFAULT_COMBINED_SESSION_RATE
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("default_rate > 0", name="check_default_rate_positive"),
        CheckConstraint("default_base_duration > 0", name="check_base_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<TutorSettings tutor={self.tutor_id} default={self.default_rate}/{self.default_base_duration}>"
