"""
Database Schemas

CarConnect schemas using Pydantic models.
Each Pydantic model maps to a MongoDB collection using the lowercase class name.
- Car -> "car"
- RentalRecord -> "rentalrecord"
- RideRequest -> "riderequest"
- Notification -> "notification"
- Driver -> "driver"

Request bodies follow at the bottom. They accept the camelCase keys the
frontend sends as well as snake_case.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator

BookingStatus = Literal["pending", "approved", "rejected", "active", "completed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "refunded"]
RideRequestStatus = Literal["pending", "accepted", "rejected", "completed", "cancelled"]
NotificationType = Literal[
    "new_booking",
    "booking_cancelled",
    "driver_accepted",
    "driver_rejected",
    "ride_completed",
    "new_ride_request",
]


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Car(BaseModel):
    """
    Cars listed by owners
    Collection: "car"
    """
    owner_id: str = Field(..., description="User id of the listing owner")
    make: str = Field(..., description="Manufacturer, e.g., Toyota")
    model: str = Field(..., description="Model, e.g., Corolla")
    year: int = Field(..., ge=1900, le=2100, description="Year of manufacture")
    price_per_day: float = Field(..., gt=0, description="Daily rental rate")
    is_available: bool = Field(True, description="Owner-controlled availability switch")
    location: Optional[str] = Field(None, description="Free-text city or area")
    category: Optional[str] = Field(None, description="e.g., SUV, Sedan")
    features: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    license_plate: Optional[str] = None
    description: Optional[str] = None


class RentalRecord(BaseModel):
    """
    Bookings of a car by a renter
    Collection: "rentalrecord"
    """
    car_id: str = Field(..., description="ID of the booked car")
    renter_id: str = Field(..., description="User id of the renter")
    start_date: datetime = Field(..., description="Rental start (UTC)")
    end_date: datetime = Field(..., description="Rental end (UTC)")
    total_price: float = Field(..., ge=0, description="Computed at creation, never recomputed")
    status: BookingStatus = Field("pending")
    payment_status: PaymentStatus = Field("pending")
    with_driver: bool = Field(False)
    dropoff_location: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class RideRequest(BaseModel):
    """
    Driver-facing offer, one per eligible driver of a with-driver booking
    Collection: "riderequest"
    """
    car_id: str
    renter_id: str
    target_driver_id: str = Field(..., description="Driver the request was offered to")
    driver_id: Optional[str] = Field(None, description="Set once a driver accepts")
    status: RideRequestStatus = Field("pending")
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    start_date: datetime
    end_date: datetime
    driver_pay: float = Field(..., ge=0)
    rental_record_id: str


class Notification(BaseModel):
    """
    Collection: "notification"
    """
    user_id: str
    type: NotificationType
    message: str = Field(..., min_length=1)
    read: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class Driver(BaseModel):
    """
    Driver profile, one per driver user
    Collection: "driver"
    """
    user_id: str
    location: str = Field("Not specified", description="Service location")
    is_available: bool = True
    license_number: str
    license_expiry: datetime
    experience: int = Field(0, ge=0, description="Years of driving experience")
    vehicle_preferences: List[str] = Field(default_factory=list)
    average_rating: float = Field(0, ge=0, le=5)
    total_rides: int = Field(0, ge=0)
    total_earnings: float = Field(0, ge=0)
    bio: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, pattern=r"^(\+\d{1,3}[- ]?)?\d{10}$")
    languages: List[str] = Field(default_factory=lambda: ["English"])


# Request bodies

class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BookCarRequest(_RequestModel):
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    with_driver: bool = Field(False, alias="withDriver")
    dropoff_location: Optional[str] = Field(None, alias="dropoffLocation")

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value):
        return as_utc_naive(value)


class CreateCarRequest(_RequestModel):
    make: str
    model: str
    year: int = Field(..., ge=1900, le=2100)
    price_per_day: float = Field(..., gt=0, alias="pricePerDay")
    location: Optional[str] = None
    category: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    license_plate: Optional[str] = Field(None, alias="licensePlate")
    description: Optional[str] = None


class UpdateCarRequest(_RequestModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900, le=2100)
    price_per_day: Optional[float] = Field(None, gt=0, alias="pricePerDay")
    location: Optional[str] = None
    category: Optional[str] = None
    features: Optional[List[str]] = None
    color: Optional[str] = None
    license_plate: Optional[str] = Field(None, alias="licensePlate")
    description: Optional[str] = None


class DriverProfileRequest(_RequestModel):
    location: Optional[str] = None
    license_number: Optional[str] = Field(None, alias="licenseNumber")
    license_expiry: Optional[datetime] = Field(None, alias="licenseExpiry")
    experience: Optional[int] = Field(None, ge=0)
    vehicle_preferences: Optional[List[str]] = Field(None, alias="vehiclePreferences")
    bio: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    languages: Optional[List[str]] = None

    @field_validator("license_expiry")
    @classmethod
    def normalize_expiry(cls, value):
        return as_utc_naive(value)


class ToggleAvailabilityRequest(_RequestModel):
    is_available: Optional[StrictBool] = Field(None, alias="isAvailable")


class CreateNotificationRequest(_RequestModel):
    user_id: str = Field(..., alias="userId")
    type: NotificationType
    message: str
    details: Optional[Dict[str, Any]] = None
