# backend/tutordesk/services/rate_settings_service.py
"""
Rate Settings Service for the tutordesk platform.

Reads and upserts the single settings row per tutor, and quotes lesson
prices with the stored configuration.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..repositories import RepositoryFactory
from ..repositories.tutor_settings_repository import TutorSettingsRepository
from ..schemas.rates import (
    RateQuote,
    RateQuoteRequest,
    RateSettings,
    RateSettingsResponse,
    RateSettingsUpdate,
    SubjectRateConfig,
    SubjectRateResponse,
)
from .base import BaseService
from .rate_resolver import format_rate_display, resolve_rate

logger = logging.getLogger(__name__)


class RateSettingsService(BaseService):
    """Tutor rate configuration and price quotes."""

    def __init__(self, db: Session, repository: Optional[TutorSettingsRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_tutor_settings_repository(db)

    def load(self, tutor_id: str) -> RateSettings:
        """Stored settings in explicit form, or the defaults."""
        return RateSettings.from_model(self.repository.get_for_tutor(tutor_id))

    @BaseService.measure_operation("get_rate_settings")
    def get_settings(self, tutor_id: str) -> RateSettingsResponse:
        row = self.repository.get_for_tutor(tutor_id)
        return self._to_response(tutor_id, RateSettings.from_model(row), is_default=row is None)

    @BaseService.measure_operation("upsert_rate_settings")
    def upsert_settings(self, tutor_id: str, payload: RateSettingsUpdate) -> RateSettingsResponse:
        """
        Insert or update the tutor's settings.

        subject_rates, when given, replaces the stored map entirely.
        """
        if not tutor_id:
            raise ValidationException("Tutor id is required", code="TUTOR_ID_REQUIRED")

        fields = {}
        if payload.default_rate is not None:
            fields["default_rate"] = payload.default_rate
        if payload.default_base_duration is not None:
            fields["default_base_duration"] = payload.default_base_duration
        if payload.combined_session_rate is not None:
            fields["combined_session_rate"] = payload.combined_session_rate
        if payload.subject_rates is not None:
            fields["subject_rates"] = {
                subject.value: SubjectRateConfig(
                    rate=config.rate,
                    base_duration=config.base_duration,
                    duration_prices=config.duration_prices,
                ).to_raw()
                for subject, config in payload.subject_rates.items()
            }

        with self.transaction():
            row = self.repository.upsert(tutor_id, **fields)

        self.logger.info(f"Rate settings saved for tutor {tutor_id}: {sorted(fields)}")
        return self._to_response(tutor_id, RateSettings.from_model(row))

    @BaseService.measure_operation("quote_rate")
    def quote(self, tutor_id: str, request: RateQuoteRequest) -> RateQuote:
        return resolve_rate(
            request.subject,
            request.duration_min,
            request.is_combined_session,
            request.override_amount,
            self.load(tutor_id),
        )

    @staticmethod
    def _to_response(
        tutor_id: str, rate_settings: RateSettings, is_default: bool = False
    ) -> RateSettingsResponse:
        return RateSettingsResponse(
            tutor_id=tutor_id,
            default_rate=rate_settings.default_rate,
            default_base_duration=rate_settings.default_base_duration,
            default_rate_display=format_rate_display(
                rate_settings.default_rate, rate_settings.default_base_duration
            ),
            subject_rates={
                subject: SubjectRateResponse(
                    rate=config.rate,
                    base_duration=config.base_duration,
                    duration_prices=dict(config.duration_prices),
                    rate_display=format_rate_display(config.rate, config.base_duration),
                )
                for subject, config in sorted(rate_settings.subject_rates.items())
            },
            combined_session_rate=rate_settings.combined_session_rate,
            is_default=is_default,
        )
