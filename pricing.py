import math
from datetime import datetime, timedelta

from errors import InvalidWindow

# Flat driver fee, not configurable per driver
DRIVER_RATE_PER_DAY = 500

ONE_DAY = timedelta(days=1)


def rental_days(start: datetime, end: datetime) -> int:
    """Whole days billed for a window; any partial day counts as a full one."""
    if end <= start:
        raise InvalidWindow()
    return math.ceil((end - start) / ONE_DAY)


def driver_surcharge(with_driver: bool) -> float:
    return DRIVER_RATE_PER_DAY if with_driver else 0


def compute_price(price_per_day: float, with_driver: bool, days: int) -> float:
    return (price_per_day + driver_surcharge(with_driver)) * days


def driver_pay(days: int) -> float:
    return DRIVER_RATE_PER_DAY * days
