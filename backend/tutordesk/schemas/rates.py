"""
Rate configuration schemas.

Stored subject_rates JSON is loosely typed. RateSettings.from_raw turns it
into explicit structures once, skipping entries it cannot read, so pricing
code never probes raw dictionaries.
"""

from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.constants import DEFAULT_BASE_DURATION, DEFAULT_COMBINED_SESSION_RATE, DEFAULT_RATE
from ..core.enums import Subject
from .base import Money, StrictModel

logger = logging.getLogger(__name__)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def _to_int(value: Any) -> Optional[int]:
    number = _to_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


class SubjectRateConfig(BaseModel):
    """
    Rate quoted against a base duration, e.g. $35 per 30 minutes.

    Stored values may be non-positive; such a config is invalid and pricing
    falls back to the tutor default.
    """

    model_config = ConfigDict(frozen=True)

    rate: Decimal
    base_duration: int
    duration_prices: Dict[int, Decimal] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.rate > 0 and self.base_duration > 0

    def explicit_price(self, duration_min: int) -> Optional[Decimal]:
        """The configured price for exactly this duration, if positive."""
        price = self.duration_prices.get(duration_min)
        if price is not None and price > 0:
            return price
        return None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["SubjectRateConfig"]:
        """Parse one stored subject entry. Returns None if unreadable."""
        if not isinstance(raw, Mapping):
            return None
        rate = _to_decimal(raw.get("rate"))
        base_duration = _to_int(raw.get("base_duration"))
        if rate is None or base_duration is None:
            return None
        prices: Dict[int, Decimal] = {}
        raw_prices = raw.get("duration_prices")
        if isinstance(raw_prices, Mapping):
            for key, value in raw_prices.items():
                minutes = _to_int(key)
                price = _to_decimal(value)
                if minutes is not None and price is not None:
                    prices[minutes] = price
        return cls(rate=rate, base_duration=base_duration, duration_prices=prices)

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"rate": float(self.rate), "base_duration": self.base_duration}
        if self.duration_prices:
            raw["duration_prices"] = {
                str(minutes): float(price) for minutes, price in sorted(self.duration_prices.items())
            }
        return raw


class RateSettings(BaseModel):
    """A tutor's pricing configuration in explicit form."""

    model_config = ConfigDict(frozen=True)

    default_rate: Decimal = DEFAULT_RATE
    default_base_duration: int = DEFAULT_BASE_DURATION
    subject_rates: Dict[str, SubjectRateConfig] = Field(default_factory=dict)
    # Stored for history; pricing never reads it
    combined_session_rate: Decimal = DEFAULT_COMBINED_SESSION_RATE

    @classmethod
    def defaults(cls) -> "RateSettings":
        return cls()

    @classmethod
    def from_raw(
        cls,
        *,
        default_rate: Any = None,
        default_base_duration: Any = None,
        subject_rates: Any = None,
        combined_session_rate: Any = None,
    ) -> "RateSettings":
        """Build settings from stored values, defaulting anything unreadable."""
        rate = _to_decimal(default_rate)
        base = _to_int(default_base_duration)
        combined = _to_decimal(combined_session_rate)
        if rate is None or rate <= 0:
            rate = DEFAULT_RATE
        if base is None or base <= 0:
            base = DEFAULT_BASE_DURATION
        if combined is None or combined < 0:
            combined = DEFAULT_COMBINED_SESSION_RATE

        parsed: Dict[str, SubjectRateConfig] = {}
        if isinstance(subject_rates, Mapping):
            for subject, raw in subject_rates.items():
                config = SubjectRateConfig.from_raw(raw)
                if config is None:
                    logger.warning("Skipping unreadable rate config for subject %r", subject)
                    continue
                parsed[str(subject).lower()] = config
        elif subject_rates is not None:
            logger.warning("Ignoring subject_rates of type %s", type(subject_rates).__name__)

        return cls(
            default_rate=rate,
            default_base_duration=base,
            subject_rates=parsed,
            combined_session_rate=combined,
        )

    @classmethod
    def from_model(cls, model: Any) -> "RateSettings":
        """Build settings from a TutorSettings row, or defaults when absent."""
        if model is None:
            return cls.defaults()
        return cls.from_raw(
            default_rate=model.default_rate,
            default_base_duration=model.default_base_duration,
            subject_rates=model.subject_rates,
            combined_session_rate=model.combined_session_rate,
        )


class RateQuote(BaseModel):
    """Result of pricing one lesson."""

    model_config = ConfigDict(frozen=True)

    amount: Money
    rate: Money
    base_duration: int
    rate_display: str
    formula: str
    source: str


# API payloads


class SubjectRateInput(StrictModel):
    rate: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    base_duration: int = Field(..., gt=0, le=480)
    duration_prices: Dict[int, Decimal] = Field(default_factory=dict)

    @field_validator("duration_prices")
    @classmethod
    def _positive_prices(cls, value: Dict[int, Decimal]) -> Dict[int, Decimal]:
        for minutes, price in value.items():
            if minutes <= 0 or price <= 0:
                raise ValueError("duration prices need positive durations and amounts")
        return value


class RateSettingsUpdate(StrictModel):
    default_rate: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    default_base_duration: Optional[int] = Field(None, gt=0, le=480)
    subject_rates: Optional[Dict[Subject, SubjectRateInput]] = None
    combined_session_rate: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class SubjectRateResponse(BaseModel):
    rate: Money
    base_duration: int
    duration_prices: Dict[int, Money] = Field(default_factory=dict)
    rate_display: str


class RateSettingsResponse(BaseModel):
    tutor_id: str
    default_rate: Money
    default_base_duration: int
    default_rate_display: str
    subject_rates: Dict[str, SubjectRateResponse]
    combined_session_rate: Money
    is_default: bool = False


class RateQuoteRequest(StrictModel):
    subject: Subject
    duration_min: int = Field(..., gt=0)
    is_combined_session: bool = False
    override_amount: Optional[Decimal] = Field(None, ge=0)
