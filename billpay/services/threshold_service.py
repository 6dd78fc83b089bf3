"""
Verification threshold — the amount at which bill payments need a document.

The value lives in the system_config table so operators can change it
without a deploy. Reads never fail: a missing row, a value that isn't a
number, or a negative number all fall back to
settings.DEFAULT_VERIFICATION_THRESHOLD (10,000). Nothing is cached here.
"""

from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billpay.config import settings
from billpay.exceptions import InvalidThresholdError
from billpay.models.system_config import SystemConfig

logger = structlog.get_logger(__name__)


def parse_threshold(raw: str | None, default: Decimal) -> Decimal:
    """Parse a stored threshold string, returning `default` when unusable."""
    if raw is None:
        return default
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        logger.warning("verification_threshold_unparsable", raw_value=raw)
        return default
    if not value.is_finite() or value < 0:
        logger.warning("verification_threshold_out_of_range", raw_value=raw)
        return default
    return value


async def get_verification_threshold(
    db: AsyncSession,
    default: Decimal | None = None,
) -> Decimal:
    """Return the configured verification threshold, or the default."""
    fallback = settings.DEFAULT_VERIFICATION_THRESHOLD if default is None else default
    result = await db.execute(
        select(SystemConfig.value).where(
            SystemConfig.key == settings.VERIFICATION_THRESHOLD_CONFIG_KEY
        )
    )
    return parse_threshold(result.scalar_one_or_none(), fallback)


async def set_verification_threshold(db: AsyncSession, amount: Decimal) -> Decimal:
    """
    Store a new verification threshold (admin operation).

    Raises:
        InvalidThresholdError: If the amount is zero, negative or not finite.
    """
    if not amount.is_finite() or amount <= 0:
        raise InvalidThresholdError(amount)

    key = settings.VERIFICATION_THRESHOLD_CONFIG_KEY
    entry = await db.get(SystemConfig, key)
    if entry is None:
        db.add(SystemConfig(key=key, value=str(amount)))
    else:
        entry.value = str(amount)
    await db.flush()

    logger.info("verification_threshold_updated", threshold=str(amount))
    return amount
