"""
Ride-request fan-out and driver assignment.

A with-driver booking is offered to every available driver whose service
location contains the car's location. Each offer is its own RideRequest,
upserted on (rental_record_id, target_driver_id) so a failed or partial
fan-out can simply be run again for the same booking.
"""

import logging
import re
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from auth import Actor
from database import get_documents, to_object_id, utcnow
from errors import ForbiddenError, InvalidStateTransition, RideRequestNotFound
from notifications import Notifier
from pricing import driver_pay, rental_days
from schemas import RideRequest

logger = logging.getLogger(__name__)

COLLECTION = "riderequest"

ACTIVE_STATUSES = ("accepted",)
HISTORY_STATUSES = ("completed", "cancelled")


class FanOutFailure(BaseModel):
    driver_user_id: str
    stage: Literal["ride_request", "notification"]
    error: str


class FanOutResult(BaseModel):
    created: List[str] = Field(default_factory=list)
    existing: List[str] = Field(default_factory=list)
    failures: List[FanOutFailure] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def find_eligible_drivers(db, location: Optional[str]) -> List[Dict[str, Any]]:
    if not location:
        return []
    return get_documents(db, "driver", {
        "location": {"$regex": re.escape(location), "$options": "i"},
        "is_available": True,
    })


def _upsert_ride_request(db, booking: Dict[str, Any], car: Dict[str, Any],
                         driver: Dict[str, Any], pay: float):
    booking_id = str(booking["_id"])
    key = {"rental_record_id": booking_id, "target_driver_id": driver["user_id"]}
    ride = RideRequest(
        car_id=str(car["_id"]),
        renter_id=booking["renter_id"],
        target_driver_id=driver["user_id"],
        status="pending",
        pickup_location=car.get("location"),
        dropoff_location=booking.get("dropoff_location") or car.get("location"),
        start_date=booking["start_date"],
        end_date=booking["end_date"],
        driver_pay=pay,
        rental_record_id=booking_id,
    )
    now = utcnow()
    result = db[COLLECTION].update_one(
        key,
        {"$setOnInsert": {**ride.model_dump(), "created_at": now, "updated_at": now}},
        upsert=True,
    )
    if result.upserted_id is not None:
        return str(result.upserted_id), True
    return str(db[COLLECTION].find_one(key)["_id"]), False


def fan_out_ride_requests(db, booking: Dict[str, Any], car: Dict[str, Any],
                          renter: Actor, notifier: Notifier) -> FanOutResult:
    booking_id = str(booking["_id"])
    pay = driver_pay(rental_days(booking["start_date"], booking["end_date"]))
    drivers = find_eligible_drivers(db, car.get("location"))
    logger.info(f"Found {len(drivers)} available drivers in {car.get('location')}", extra={"booking_id": booking_id})

    result = FanOutResult()
    newly_offered = []
    for driver in drivers:
        try:
            ride_id, inserted = _upsert_ride_request(db, booking, car, driver, pay)
        except PyMongoError as exc:
            logger.error(f"Ride request for driver {driver['user_id']} failed: {exc}", extra={"booking_id": booking_id})
            result.failures.append(FanOutFailure(driver_user_id=driver["user_id"], stage="ride_request", error=str(exc)))
            continue
        if inserted:
            result.created.append(ride_id)
            newly_offered.append(driver)
        else:
            result.existing.append(ride_id)

    # Notify only after every ride request has been written
    for driver in newly_offered:
        try:
            notifier.create(driver["user_id"], "new_ride_request", "New ride request in your area", {
                "bookingId": booking_id,
                "carModel": f"{car.get('make')} {car.get('model')}",
                "renterName": renter.name,
                "location": car.get("location"),
            })
        except PyMongoError as exc:
            logger.error(f"Notification for driver {driver['user_id']} failed: {exc}", extra={"booking_id": booking_id})
            result.failures.append(FanOutFailure(driver_user_id=driver["user_id"], stage="notification", error=str(exc)))

    logger.info(
        f"Fan-out finished: {len(result.created)} created, {len(result.existing)} existing, "
        f"{len(result.failures)} failed",
        extra={"booking_id": booking_id},
    )
    return result


def _transition(db, driver: Actor, ride_request_id: str, changes: Dict[str, Any], verb: str) -> Dict[str, Any]:
    """Move a pending request to a new status on behalf of its target driver."""
    oid = to_object_id(ride_request_id, RideRequestNotFound)
    updated = db[COLLECTION].find_one_and_update(
        {"_id": oid, "target_driver_id": driver.id, "status": "pending"},
        {"$set": {**changes, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is not None:
        return updated

    current = db[COLLECTION].find_one({"_id": oid})
    if current is None:
        raise RideRequestNotFound()
    if current.get("target_driver_id") != driver.id:
        logger.warning(
            f"Driver {driver.id} tried to act on a request offered to {current.get('target_driver_id')}",
            extra={"ride_request_id": ride_request_id},
        )
        raise ForbiddenError("Not authorized to respond to this ride request")
    raise InvalidStateTransition(
        f"This ride request cannot be {verb}; current status is {current['status']}",
        current_status=current["status"],
    )


def accept_ride(db, driver: Actor, ride_request_id: str, notifier: Optional[Notifier] = None) -> Dict[str, Any]:
    ride = _transition(db, driver, ride_request_id, {"status": "accepted", "driver_id": driver.id}, "accepted")
    logger.info(f"Driver {driver.id} accepted", extra={"ride_request_id": ride_request_id})

    # Acceptance is not exclusive: sibling requests for the same booking stay
    # pending and the booking status is left as it is.
    if notifier is not None:
        notifier.notify(ride["renter_id"], "driver_accepted", "A driver has accepted your ride request", {
            "bookingId": ride["rental_record_id"],
            "rideRequestId": str(ride["_id"]),
            "driverName": driver.name,
        })
    return ride


def reject_ride(db, driver: Actor, ride_request_id: str, notifier: Optional[Notifier] = None) -> Dict[str, Any]:
    ride = _transition(db, driver, ride_request_id, {"status": "rejected"}, "rejected")
    logger.info(f"Driver {driver.id} rejected", extra={"ride_request_id": ride_request_id})

    still_open = db[COLLECTION].count_documents({
        "rental_record_id": ride["rental_record_id"],
        "status": "pending",
    })
    if still_open == 0 and notifier is not None:
        notifier.notify(ride["renter_id"], "driver_rejected", "No drivers are available for your booking", {
            "bookingId": ride["rental_record_id"],
        })
    return ride


def cancel_open_ride_requests(db, booking_id: str) -> int:
    result = db[COLLECTION].update_many(
        {"rental_record_id": booking_id, "status": "pending"},
        {"$set": {"status": "cancelled", "updated_at": utcnow()}},
    )
    return result.modified_count


def list_driver_ride_requests(db, driver_user_id: str,
                              status: Union[str, Sequence[str], None] = "pending") -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"target_driver_id": driver_user_id}
    if isinstance(status, str):
        query["status"] = status
    elif status:
        query["status"] = {"$in": list(status)}
    return get_documents(db, COLLECTION, query, newest_first=True)
