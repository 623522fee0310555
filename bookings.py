"""
Booking lifecycle: create, cancel, list.

A booking without a driver starts as "approved". A with-driver booking
starts as "pending" and is offered to drivers before create_booking returns.
The booking insert, the ride-request fan-out and the notifications are
separate writes. If a later step fails, the booking is kept and the
failure is reported, not rolled back.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ReturnDocument

from auth import Actor
from availability import check_booking_window
from cars import get_car
from database import create_document, get_documents, to_object_id, utcnow
from errors import (
    AlreadyCancelled,
    AlreadyCompleted,
    BookingNotFound,
    ForbiddenError,
    InvalidStateTransition,
    InvalidWindow,
    MissingDates,
)
from notifications import Notifier
from pricing import compute_price, rental_days
from rides import FanOutResult, cancel_open_ride_requests, fan_out_ride_requests
from schemas import BookCarRequest, RentalRecord

logger = logging.getLogger(__name__)

COLLECTION = "rentalrecord"


class BookingResult(BaseModel):
    booking: Dict[str, Any]
    fan_out: Optional[FanOutResult] = None


def get_booking(db, booking_id: str) -> Dict[str, Any]:
    booking = db[COLLECTION].find_one({"_id": to_object_id(booking_id, BookingNotFound)})
    if not booking:
        raise BookingNotFound()
    return booking


def create_booking(db, renter: Actor, car_id: str, request: BookCarRequest,
                   notifier: Notifier, enforce_overlap: Optional[bool] = None) -> BookingResult:
    if request.start_date is None or request.end_date is None:
        raise MissingDates()
    if request.end_date <= request.start_date:
        raise InvalidWindow()

    car = get_car(db, car_id)
    check_booking_window(db, car, request.start_date, request.end_date, enforce_overlap)

    days = rental_days(request.start_date, request.end_date)
    record = RentalRecord(
        car_id=str(car["_id"]),
        renter_id=renter.id,
        start_date=request.start_date,
        end_date=request.end_date,
        total_price=compute_price(car["price_per_day"], request.with_driver, days),
        # Pending until a driver accepts
        status="pending" if request.with_driver else "approved",
        with_driver=request.with_driver,
        dropoff_location=request.dropoff_location,
    )
    booking_id = create_document(db, COLLECTION, record)
    booking = db[COLLECTION].find_one({"_id": ObjectId(booking_id)})
    logger.info(
        f"Booking created for {days} day(s), total {record.total_price}",
        extra={"booking_id": booking_id, "car_id": record.car_id},
    )

    fan_out = None
    if request.with_driver:
        fan_out = fan_out_ride_requests(db, booking, car, renter, notifier)

    notifier.notify(car["owner_id"], "new_booking", "Your car has a new booking", {
        "bookingId": booking_id,
        "carModel": f"{car.get('make')} {car.get('model')}",
        "renterName": renter.name,
    })
    return BookingResult(booking=booking, fan_out=fan_out)


def cancel_booking(db, renter: Actor, booking_id: str, notifier: Optional[Notifier] = None) -> Dict[str, Any]:
    booking = get_booking(db, booking_id)

    if booking["renter_id"] != renter.id:
        raise ForbiddenError("Not authorized to cancel this booking")

    status = booking["status"]
    if status == "completed":
        raise AlreadyCompleted()
    # A second cancel is an error rather than a silent repeat
    if status == "cancelled":
        raise AlreadyCancelled()

    updated = db[COLLECTION].find_one_and_update(
        {"_id": booking["_id"], "status": status},
        {"$set": {"status": "cancelled", "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        current = get_booking(db, booking_id)
        raise InvalidStateTransition(
            f"Booking changed while cancelling; current status is {current['status']}",
            current_status=current["status"],
        )

    withdrawn = cancel_open_ride_requests(db, str(booking["_id"]))
    logger.info(f"Booking cancelled, {withdrawn} open ride request(s) withdrawn", extra={"booking_id": booking_id})

    if notifier is not None:
        # The owner may have deleted the listing since
        car = db["car"].find_one({"_id": ObjectId(booking["car_id"])})
        if car is not None:
            notifier.notify(car["owner_id"], "booking_cancelled", "A booking for your car was cancelled", {
                "bookingId": str(booking["_id"]),
                "carModel": f"{car.get('make')} {car.get('model')}",
            })
    return updated


def list_renter_bookings(db, renter_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, COLLECTION, {"renter_id": renter_id}, newest_first=True)
