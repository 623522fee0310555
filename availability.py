"""
Booking window checks.

The owner's ``is_available`` flag is a manual override and is checked first.
The real gate is an interval-overlap test against the car's live bookings.
Neither check is atomic with the insert that follows it, so two concurrent
bookings for the same window can still both succeed.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import Config
from errors import CarUnavailable, InvalidWindow

logger = logging.getLogger(__name__)

# Bookings in these states no longer hold the car
RELEASED_STATUSES = ("cancelled", "rejected")


def check_availability(car: Dict[str, Any], start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidWindow()
    if not car.get("is_available", False):
        raise CarUnavailable()


def find_overlapping_bookings(db, car_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    # [start, end) windows overlap when each starts before the other ends
    return list(db["rentalrecord"].find({
        "car_id": car_id,
        "status": {"$nin": list(RELEASED_STATUSES)},
        "start_date": {"$lt": end},
        "end_date": {"$gt": start},
    }))


def check_booking_window(db, car: Dict[str, Any], start: datetime, end: datetime,
                         enforce_overlap: Optional[bool] = None) -> None:
    check_availability(car, start, end)

    if enforce_overlap is None:
        enforce_overlap = Config.ENFORCE_BOOKING_OVERLAP
    if not enforce_overlap:
        return

    car_id = str(car["_id"])
    overlapping = find_overlapping_bookings(db, car_id, start, end)
    if overlapping:
        logger.info(
            f"Rejected window {start.isoformat()} - {end.isoformat()}: "
            f"{len(overlapping)} overlapping booking(s)",
            extra={"car_id": car_id},
        )
        raise CarUnavailable("Car is already booked for the selected dates")


def availability_report(db, car: Dict[str, Any], start: datetime, end: datetime) -> Dict[str, Any]:
    """Both availability signals for a window, without raising on conflicts."""
    if end <= start:
        raise InvalidWindow()
    overlapping = find_overlapping_bookings(db, str(car["_id"]), start, end)
    is_available = bool(car.get("is_available", False))
    return {
        "carId": str(car["_id"]),
        "isAvailable": is_available,
        "overlappingBookings": [str(b["_id"]) for b in overlapping],
        "bookable": is_available and not overlapping,
    }
