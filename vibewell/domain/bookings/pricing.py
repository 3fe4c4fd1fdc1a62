"""
Dynamic pricing for bookings

Adjustments are applied in a fixed order: peak hour surcharge on the base
price, last-minute discount on the running price, then the demand multiplier
on the running price. Every step goes through safe_math.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ...config import (
    LAST_MINUTE_DISCOUNT,
    LAST_MINUTE_WINDOW_HOURS,
    PEAK_HOURS_END,
    PEAK_HOURS_MULTIPLIER,
    PEAK_HOURS_START,
)
from ...shared import safe_math

logger = logging.getLogger(__name__)

# (minimum same-day bookings, multiplier), checked in order
DEMAND_TIERS = ((10, 1.5), (5, 1.25))


@dataclass
class PriceQuote:
    base_price: float
    price: float
    adjustments: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"base_price": self.base_price, "price": self.price, "adjustments": self.adjustments}


def demand_multiplier(same_day_bookings: int) -> float:
    for minimum, multiplier in DEMAND_TIERS:
        if same_day_bookings >= minimum:
            return multiplier
    return 1.0


def is_peak_hour(start_time: datetime) -> bool:
    return PEAK_HOURS_START <= start_time.hour <= PEAK_HOURS_END


def is_last_minute(start_time: datetime, now: datetime) -> bool:
    return start_time - now <= timedelta(hours=LAST_MINUTE_WINDOW_HOURS)


def calculate_dynamic_price(
    base_price: float, start_time: datetime, now: datetime, same_day_bookings: int = 0
) -> PriceQuote:
    """Price a booking starting at start_time, as seen at now"""
    price = safe_math.to_number(base_price)
    adjustments = []

    if is_peak_hour(start_time):
        surcharge = safe_math.multiply(base_price, safe_math.subtract(PEAK_HOURS_MULTIPLIER, 1))
        price = safe_math.add(price, surcharge)
        adjustments.append({"type": "PEAK_HOUR", "amount": round(surcharge, 2)})

    if is_last_minute(start_time, now):
        discount = safe_math.multiply(price, LAST_MINUTE_DISCOUNT)
        price = safe_math.subtract(price, discount)
        adjustments.append({"type": "LAST_MINUTE", "amount": round(-discount, 2)})

    multiplier = demand_multiplier(same_day_bookings)
    if multiplier > 1:
        increase = safe_math.multiply(price, safe_math.subtract(multiplier, 1))
        price = safe_math.add(price, increase)
        adjustments.append({"type": "HIGH_DEMAND", "amount": round(increase, 2)})

    quote = PriceQuote(base_price=round(float(base_price), 2), price=round(float(price), 2), adjustments=adjustments)
    logger.debug(f"💲 Priced {base_price} at {start_time.isoformat()} -> {quote.price} {adjustments}")
    return quote
