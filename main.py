import logging
import traceback
import uuid
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from auth import Actor, get_actor, require_role
from availability import availability_report
from bookings import cancel_booking, create_booking, list_renter_bookings
from cars import (
    add_car,
    delete_car,
    get_car,
    get_owned_car,
    list_owner_cars,
    rental_records_for_owner,
    search_cars,
    toggle_car_availability,
    update_car,
)
from config import Config, setup_logging
from database import get_db
from drivers import get_driver_profile, save_driver_profile, set_driver_availability
from errors import DependencyUnavailable, MissingDates, ServiceError
from notifications import (
    Notifier,
    cleanup_old_notifications,
    delete_notification,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    unread_count,
)
from rides import ACTIVE_STATUSES, HISTORY_STATUSES, accept_ride, list_driver_ride_requests, reject_ride
from schemas import (
    BookCarRequest,
    CreateCarRequest,
    CreateNotificationRequest,
    DriverProfileRequest,
    ToggleAvailabilityRequest,
    UpdateCarRequest,
    as_utc_naive,
)

setup_logging()
logger = logging.getLogger(__name__)


# Utilities to serialize MongoDB documents
def serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).isoformat()
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [serialize_value(i) for i in v]
    return v


def serialize_doc(doc: dict):
    return {k: serialize_value(v) for k, v in doc.items()}


def ok(data=None, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def get_notifier(db=Depends(get_db)) -> Notifier:
    return Notifier(db)


app = FastAPI(title="CarConnect API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    response = await call_next(request)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={"request_id": request_id},
    )
    response.headers["x-request-id"] = request_id
    return response


@app.on_event("startup")
def startup_event():
    if not Config.validate():
        return
    try:
        database.ensure_indexes(database.db)
    except PyMongoError as e:
        logger.error(f"Could not create indexes: {e}")


# Error handling

def error_response(status_code: int, message: str, errors=None, exc: Optional[BaseException] = None):
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    if exc is not None and status_code >= 500 and not Config.is_production():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status_code, content=body)


def _field_errors(errors):
    fields = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields[".".join(loc) or "body"] = err.get("msg")
    return fields


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.errors, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "Validation Error", _field_errors(exc.errors()))


@app.exception_handler(PydanticValidationError)
async def model_validation_handler(request: Request, exc: PydanticValidationError):
    return error_response(400, "Validation Error", _field_errors(exc.errors()))


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception(f"{request.method} {request.url.path} hit a database error", exc_info=exc)
    return error_response(DependencyUnavailable.status_code, DependencyUnavailable.default_message, exc=exc)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} crashed", exc_info=exc)
    return error_response(500, "Server Error", exc=exc)


@app.get("/")
def read_root():
    return {"message": "CarConnect API is running"}


# Car renter endpoints
renter_only = require_role("renter")


@app.get("/car-renter/search")
def search_available_cars(location: Optional[str] = None, category: Optional[str] = None,
                          actor: Actor = Depends(renter_only), db=Depends(get_db)):
    cars = [serialize_doc(c) for c in search_cars(db, location, category)]
    return ok(cars, count=len(cars))


@app.get("/car-renter/bookings")
def my_bookings(actor: Actor = Depends(renter_only), db=Depends(get_db)):
    bookings = [serialize_doc(b) for b in list_renter_bookings(db, actor.id)]
    return ok(bookings, count=len(bookings))


@app.get("/car-renter/cars/{car_id}/availability")
def car_availability(car_id: str,
                     start_date: Optional[datetime] = Query(None, alias="startDate"),
                     end_date: Optional[datetime] = Query(None, alias="endDate"),
                     actor: Actor = Depends(renter_only), db=Depends(get_db)):
    if start_date is None or end_date is None:
        raise MissingDates()
    car = get_car(db, car_id)
    return ok(availability_report(db, car, as_utc_naive(start_date), as_utc_naive(end_date)))


@app.post("/car-renter/cars/{car_id}/book", status_code=201)
def book_car(car_id: str, payload: BookCarRequest, actor: Actor = Depends(renter_only),
             db=Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    result = create_booking(db, actor, car_id, payload, notifier)
    extra = {}
    if result.fan_out is not None:
        extra["rideRequests"] = result.fan_out.model_dump()
    message = (
        "Car booked with driver. Waiting for driver confirmation."
        if payload.with_driver else "Car booked successfully."
    )
    return ok(serialize_doc(result.booking), message=message, **extra)


@app.post("/car-renter/bookings/{booking_id}/cancel")
def cancel_my_booking(booking_id: str, actor: Actor = Depends(renter_only),
                      db=Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    booking = cancel_booking(db, actor, booking_id, notifier)
    return ok(serialize_doc(booking))


# Driver endpoints
driver_only = require_role("driver")


@app.get("/driver/profile")
def my_driver_profile(actor: Actor = Depends(driver_only), db=Depends(get_db)):
    return ok(serialize_doc(get_driver_profile(db, actor.id)))


@app.post("/driver/profile")
def upsert_driver_profile(payload: DriverProfileRequest, actor: Actor = Depends(driver_only), db=Depends(get_db)):
    driver, created = save_driver_profile(db, actor.id, payload)
    message = "Driver profile created successfully" if created else "Driver profile updated successfully"
    return JSONResponse(
        status_code=201 if created else 200,
        content=ok(serialize_doc(driver), message=message),
    )


@app.get("/driver/ride-requests")
def my_ride_requests(actor: Actor = Depends(driver_only), db=Depends(get_db)):
    rides = [serialize_doc(r) for r in list_driver_ride_requests(db, actor.id)]
    return ok(rides, count=len(rides))


@app.get("/driver/active-rides")
def my_active_rides(actor: Actor = Depends(driver_only), db=Depends(get_db)):
    rides = [serialize_doc(r) for r in list_driver_ride_requests(db, actor.id, ACTIVE_STATUSES)]
    return ok(rides, count=len(rides))


@app.get("/driver/ride-history")
def my_ride_history(actor: Actor = Depends(driver_only), db=Depends(get_db)):
    rides = [serialize_doc(r) for r in list_driver_ride_requests(db, actor.id, HISTORY_STATUSES)]
    return ok(rides, count=len(rides))


@app.post("/driver/ride-requests/{ride_request_id}/accept")
def accept_ride_request(ride_request_id: str, actor: Actor = Depends(driver_only),
                        db=Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    return ok(serialize_doc(accept_ride(db, actor, ride_request_id, notifier)))


@app.post("/driver/ride-requests/{ride_request_id}/reject")
def reject_ride_request(ride_request_id: str, actor: Actor = Depends(driver_only),
                        db=Depends(get_db), notifier: Notifier = Depends(get_notifier)):
    return ok(serialize_doc(reject_ride(db, actor, ride_request_id, notifier)))


@app.patch("/driver/toggle-availability")
def toggle_driver_availability(payload: ToggleAvailabilityRequest, actor: Actor = Depends(driver_only),
                               db=Depends(get_db)):
    driver = set_driver_availability(db, actor.id, payload.is_available)
    return ok(serialize_doc(driver), isAvailable=driver["is_available"])


# Car owner endpoints
owner_only = require_role("owner")


@app.get("/car-owner/listings")
def my_listings(actor: Actor = Depends(owner_only), db=Depends(get_db)):
    cars = [serialize_doc(c) for c in list_owner_cars(db, actor.id)]
    return ok(cars, count=len(cars))


@app.post("/car-owner/cars", status_code=201)
def list_new_car(payload: CreateCarRequest, actor: Actor = Depends(owner_only), db=Depends(get_db)):
    return ok(serialize_doc(add_car(db, actor, payload)))


@app.get("/car-owner/cars/{car_id}")
def my_car(car_id: str, actor: Actor = Depends(owner_only), db=Depends(get_db)):
    return ok(serialize_doc(get_owned_car(db, actor, car_id)))


@app.put("/car-owner/cars/{car_id}")
def edit_car(car_id: str, payload: UpdateCarRequest, actor: Actor = Depends(owner_only), db=Depends(get_db)):
    return ok(serialize_doc(update_car(db, actor, car_id, payload)))


@app.delete("/car-owner/cars/{car_id}")
def remove_car(car_id: str, actor: Actor = Depends(owner_only), db=Depends(get_db)):
    delete_car(db, actor, car_id)
    return ok({})


@app.patch("/car-owner/cars/{car_id}/toggle-availability")
def toggle_listing(car_id: str, actor: Actor = Depends(owner_only), db=Depends(get_db)):
    return ok(serialize_doc(toggle_car_availability(db, actor, car_id)))


@app.get("/car-owner/rental-records")
def owner_rental_records(actor: Actor = Depends(owner_only), db=Depends(get_db)):
    records = [serialize_doc(r) for r in rental_records_for_owner(db, actor.id)]
    return ok(records, count=len(records))


# Notification endpoints
admin_only = require_role("admin")


@app.get("/notifications")
def my_notifications(actor: Actor = Depends(get_actor), db=Depends(get_db)):
    return ok([serialize_doc(n) for n in list_notifications(db, actor.id)])


@app.get("/notifications/unread-count")
def my_unread_count(actor: Actor = Depends(get_actor), db=Depends(get_db)):
    return ok(count=unread_count(db, actor.id))


@app.patch("/notifications/mark-all-read")
def read_all_notifications(actor: Actor = Depends(get_actor), db=Depends(get_db)):
    return ok(message="All notifications marked as read", count=mark_all_as_read(db, actor.id))


@app.post("/notifications", status_code=201)
def create_notification(payload: CreateNotificationRequest, actor: Actor = Depends(admin_only),
                        notifier: Notifier = Depends(get_notifier), db=Depends(get_db)):
    notification_id = notifier.create(payload.user_id, payload.type, payload.message, payload.details)
    created = db["notification"].find_one({"_id": ObjectId(notification_id)})
    return ok(serialize_doc(created))


# Must be registered before the /{notification_id} route
@app.delete("/notifications/cleanup")
def cleanup_notifications(actor: Actor = Depends(admin_only), db=Depends(get_db)):
    return ok(message="Old notifications cleaned up", count=cleanup_old_notifications(db))


@app.patch("/notifications/{notification_id}/read")
def read_notification(notification_id: str, actor: Actor = Depends(get_actor), db=Depends(get_db)):
    return ok(serialize_doc(mark_as_read(db, actor, notification_id)))


@app.delete("/notifications/{notification_id}")
def remove_notification(notification_id: str, actor: Actor = Depends(get_actor), db=Depends(get_db)):
    delete_notification(db, actor, notification_id)
    return ok(message="Notification deleted")


@app.get("/test")
def check_database():
    """Report whether the configured database is reachable and indexed."""
    response = {
        "backend": "running",
        "database": "not configured",
        "database_name": Config.DATABASE_NAME,
        "collections": [],
        "missing_indexes": [],
    }
    if database.db is None:
        return response

    try:
        response["collections"] = sorted(database.db.list_collection_names())
        response["missing_indexes"] = database.missing_indexes(database.db)
        response["database"] = "connected"
    except PyMongoError as e:
        response["database"] = f"error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
