# =======================================================================================
# app/utils/exceptions.py - Custom Exceptions
# =======================================================================================
from typing import Any, Dict

class DoorAccessError(Exception):
    """Base exception for the door access system."""
    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}

class ValidationError(DoorAccessError):
    """Raised when input has the wrong shape (PIN format, missing fields)."""
    status_code = 400

class PinMismatchError(DoorAccessError):
    """Raised when the current PIN given for a PIN change is wrong."""
    status_code = 401

class UserNotFoundError(DoorAccessError):
    """Raised when a user is not found."""
    status_code = 404

class CardNotFoundError(DoorAccessError):
    """Raised when no matching RFID card exists."""
    status_code = 404

class ConflictError(DoorAccessError):
    status_code = 409

class CardConflictError(ConflictError):
    """Raised when a card or UID is already taken."""

class UsernameTakenError(ConflictError):
    pass

class NotEnrollingError(DoorAccessError):
    """Raised when an enrollment scan arrives while the door is idle."""
    status_code = 409

class AuthenticationError(DoorAccessError):
    """Raised for bad login credentials or a bad session token."""
    status_code = 401

class PermissionDeniedError(DoorAccessError):
    status_code = 403

class AlertNotFoundError(DoorAccessError):
    status_code = 404
