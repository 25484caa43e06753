# =======================================================================================
# app/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *
from .hashing import *

__all__ = [
    "DoorAccessError", "ValidationError", "PinMismatchError", "UserNotFoundError",
    "CardNotFoundError", "ConflictError", "CardConflictError", "UsernameTakenError",
    "NotEnrollingError", "AuthenticationError", "PermissionDeniedError",
    "AlertNotFoundError",
    "PinValidator", "require_fields", "sha256_hex", "normalize_uid", "hash_uid",
    "digests_equal",
]
