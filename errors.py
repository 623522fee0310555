"""
Service errors

Every business-rule violation is raised as a ServiceError subclass at the
point where it is detected. The HTTP layer turns them into the
{"success": false, "message": ...} envelope using ``status_code``.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)


# 400

class ValidationError(ServiceError):
    status_code = 400
    default_message = "Validation Error"


class MissingDates(ValidationError):
    default_message = "Please provide start and end dates"


class InvalidWindow(ValidationError):
    default_message = "End date must be after start date"


class CarUnavailable(ServiceError):
    status_code = 400
    default_message = "Car is not available for booking"


class InvalidStateTransition(ServiceError):
    status_code = 400
    default_message = "Invalid status transition"

    def __init__(self, message: Optional[str] = None, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message, errors={"status": current_status} if current_status else None)


class AlreadyCompleted(InvalidStateTransition):
    default_message = "Cannot cancel a completed booking"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, current_status="completed")


class AlreadyCancelled(InvalidStateTransition):
    default_message = "Booking is already cancelled"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, current_status="cancelled")


# 401 / 403

class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Not authorized to access this route"


class ForbiddenError(ServiceError):
    status_code = 403
    default_message = "Not authorized to perform this action"


# 404

class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Resource not found"


class CarNotFound(NotFoundError):
    default_message = "Car not found"


class BookingNotFound(NotFoundError):
    default_message = "Booking not found"


class RideRequestNotFound(NotFoundError):
    default_message = "Ride request not found"


class DriverProfileNotFound(NotFoundError):
    default_message = "Driver profile not found"


class NotificationNotFound(NotFoundError):
    default_message = "Notification not found"


# 500

class DependencyUnavailable(ServiceError):
    status_code = 500
    default_message = "Database unavailable"
