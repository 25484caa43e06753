# =======================================================================================
# app/utils/validators.py - Validation Helpers
# =======================================================================================
import re
from typing import Any, Mapping
from .exceptions import ValidationError

_PIN_RE = re.compile(r"[0-9]{4}")


class PinValidator:
    """Door PINs are exactly four decimal digits."""

    @staticmethod
    def is_valid(pin: Any) -> bool:
        return isinstance(pin, str) and _PIN_RE.fullmatch(pin) is not None

    @staticmethod
    def validate(pin: Any, label: str = "PIN") -> str:
        """Return ``pin`` unchanged or raise ValidationError."""
        if not PinValidator.is_valid(pin):
            raise ValidationError(f"{label} must be exactly 4 digits")
        return pin


def require_fields(payload: Mapping[str, Any], *names: str) -> None:
    """Raise ValidationError naming the first missing or empty field."""
    for name in names:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required")
