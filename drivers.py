"""
Driver profiles and post-ride statistics.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from pymongo import ReturnDocument

from database import create_document, utcnow
from errors import DriverProfileNotFound, ValidationError
from schemas import Driver, DriverProfileRequest

logger = logging.getLogger(__name__)

COLLECTION = "driver"


def get_driver_profile(db, user_id: str) -> Dict[str, Any]:
    driver = db[COLLECTION].find_one({"user_id": user_id})
    if not driver:
        raise DriverProfileNotFound()
    return driver


def save_driver_profile(db, user_id: str, payload: DriverProfileRequest) -> Tuple[Dict[str, Any], bool]:
    """Create the caller's profile, or update the fields they sent. Returns (profile, created)."""
    existing = db[COLLECTION].find_one({"user_id": user_id})
    fields = payload.model_dump(exclude_none=True)

    if existing is None:
        if not payload.license_number:
            raise ValidationError("License number is required", errors={"licenseNumber": "required"})
        if not payload.license_expiry:
            raise ValidationError("License expiry date is required", errors={"licenseExpiry": "required"})
        driver = Driver(user_id=user_id, is_available=True, **fields)
        create_document(db, COLLECTION, driver)
        logger.info(f"Driver profile created for user {user_id}")
        return get_driver_profile(db, user_id), True

    if fields:
        # Re-validate the merged profile so updates obey the same constraints
        merged = {k: v for k, v in existing.items() if k in Driver.model_fields}
        merged.update(fields)
        Driver(**merged)
        fields["updated_at"] = utcnow()
        db[COLLECTION].update_one({"_id": existing["_id"]}, {"$set": fields})
    return get_driver_profile(db, user_id), False


def set_driver_availability(db, user_id: str, is_available: Optional[bool]) -> Dict[str, Any]:
    if not isinstance(is_available, bool):
        raise ValidationError("isAvailable must be a boolean value", errors={"isAvailable": "required"})
    driver = db[COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {"$set": {"is_available": is_available, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if driver is None:
        raise DriverProfileNotFound()
    return driver


def next_average_rating(current: float, total_rides: int, rating: float) -> float:
    """Running mean after the ``total_rides``-th rating, weighting old by (n-1)/n and new by 1/n."""
    if total_rides <= 1:
        return rating
    old_weight = (total_rides - 1) / total_rides
    new_weight = 1 / total_rides
    return current * old_weight + rating * new_weight


def record_completed_ride(db, driver: Dict[str, Any], earnings: float, rating: Optional[float] = None) -> Dict[str, Any]:
    """Fold one completed ride into the driver's totals and rating."""
    if rating is not None and not 0 <= rating <= 5:
        raise ValidationError("Rating must be between 0 and 5", errors={"rating": rating})

    total_rides = driver.get("total_rides", 0) + 1
    changes: Dict[str, Any] = {
        "total_rides": total_rides,
        "total_earnings": driver.get("total_earnings", 0) + earnings,
        "updated_at": utcnow(),
    }
    if rating is not None:
        changes["average_rating"] = next_average_rating(driver.get("average_rating", 0), total_rides, rating)

    # Plain read-modify-write; concurrent completions for one driver can race
    db[COLLECTION].update_one({"_id": driver["_id"]}, {"$set": changes})
    driver.update(changes)
    logger.info(f"Driver {driver['user_id']} stats updated: {total_rides} rides")
    return driver
