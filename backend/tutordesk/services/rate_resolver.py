"""Lesson pricing under a tutor's rate settings.

Pure functions: no I/O, no shared state, never raise. Malformed input
degrades to the documented defaults so billing screens always render.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import logging
from typing import Any, Optional, Union

from ..core.constants import CENT, ZERO_AMOUNT
from ..core.enums import Subject
from ..schemas.rates import RateQuote, RateSettings, SubjectRateConfig

logger = logging.getLogger(__name__)

SubjectLike = Union[Subject, str]


@dataclass(frozen=True)
class ResolvedRate:
    """The rate config pricing will use, and where it came from."""

    config: SubjectRateConfig
    source: str  # "<subject> rate" or "default rate"


def _subject_key(subject: SubjectLike) -> str:
    if isinstance(subject, Subject):
        return subject.value
    return str(subject or "").strip().lower()


def quantize_money(value: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_number(value: Decimal) -> str:
    """Render 45 as "45" and 37.50 as "37.5"."""
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def format_rate_display(rate: Decimal, base_duration: int) -> str:
    """
    Format a rate for display.

    Returns "$45/hr" for an hourly base and "$35/30min" otherwise.
    """
    if base_duration == 60:
        return f"${format_number(rate)}/hr"
    return f"${format_number(rate)}/{base_duration}min"


def get_subject_rate_config(
    settings: Optional[RateSettings], subject: SubjectLike
) -> ResolvedRate:
    """
    Pick the rate config for a subject.

    Uses the subject's own config when it exists and is valid (rate and base
    duration both positive), otherwise the tutor default, otherwise 45/60.
    """
    effective = settings or RateSettings.defaults()
    key = _subject_key(subject)
    config = effective.subject_rates.get(key)
    if config is not None and config.is_valid:
        return ResolvedRate(config=config, source=f"{key} rate")

    default = SubjectRateConfig(
        rate=effective.default_rate, base_duration=effective.default_base_duration
    )
    if not default.is_valid:
        default = SubjectRateConfig(
            rate=RateSettings.defaults().default_rate,
            base_duration=RateSettings.defaults().default_base_duration,
        )
    return ResolvedRate(config=default, source="default rate")


def _coerce_override(override_amount: Any) -> Optional[Decimal]:
    if override_amount is None:
        return None
    try:
        value = Decimal(str(override_amount))
    except (InvalidOperation, ValueError):
        logger.warning("Ignoring unreadable override amount %r", override_amount)
        return None
    if not value.is_finite():
        logger.warning("Ignoring non-finite override amount %r", override_amount)
        return None
    return value


def resolve_rate(
    subject: SubjectLike,
    duration_min: int,
    is_combined_session: bool = False,
    override_amount: Any = None,
    settings: Optional[RateSettings] = None,
) -> RateQuote:
    """
    Price one lesson.

    Order of precedence:
        1. override_amount, returned verbatim
        2. an explicit positive price for exactly this duration
        3. (duration / base_duration) * rate, rounded half-up to cents

    is_combined_session only changes the formula text; combined lessons are
    priced with the same subject rates as standalone ones.
    """
    override = _coerce_override(override_amount)
    if override is not None:
        return RateQuote(
            amount=override,
            rate=ZERO_AMOUNT,
            base_duration=0,
            rate_display="Override",
            formula=f"Manual override = ${override:.2f}",
            source="override",
        )

    resolved = get_subject_rate_config(settings, subject)
    config = resolved.config
    minutes = duration_min if isinstance(duration_min, int) and duration_min > 0 else 0
    combined = ", combined session" if is_combined_session else ""
    rate_display = format_rate_display(config.rate, config.base_duration)

    explicit = config.explicit_price(minutes) if minutes else None
    if explicit is not None:
        amount = quantize_money(explicit)
        formula = f"{minutes}min fixed price = ${amount:.2f} ({resolved.source}{combined})"
    else:
        amount = quantize_money(Decimal(minutes) * config.rate / Decimal(config.base_duration))
        formula = (
            f"{minutes}min / {config.base_duration}min × ${format_number(config.rate)}"
            f" = ${amount:.2f} ({resolved.source}{combined})"
        )

    return RateQuote(
        amount=amount,
        rate=config.rate,
        base_duration=config.base_duration,
        rate_display=rate_display,
        formula=formula,
        source=resolved.source,
    )
