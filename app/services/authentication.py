# =======================================================================================
# app/services/authentication.py - PIN and RFID Authentication
# =======================================================================================
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any
from sqlalchemy.engine import Connection
from ..models.enums import AccessMethod
from ..utils.hashing import digests_equal, sha256_hex
from ..utils.validators import PinValidator
from .door_service import DoorService


@dataclass(frozen=True)
class AuthResult:
    granted: bool
    method: str
    reason: Optional[str] = None
    user_id: Optional[int] = None
    username: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuthenticationEngine:
    """
    Evaluates one credential against the credential store.

    The PIN and RFID paths never look at each other: a PIN is accepted
    whether or not a card was presented, and an active card unlocks
    without a PIN. Failures are returned, not raised.
    """

    def __init__(self, door_service: DoorService):
        self.door_service = door_service

    def verify_pin(self, conn: Connection, pin: Any) -> AuthResult:
        """Raises ValidationError for a malformed PIN, before any hashing."""
        PinValidator.validate(pin)
        door = self.door_service.get_or_create_door(conn)

        if digests_equal(sha256_hex(pin), door["pin_hash"]):
            return AuthResult(granted=True, method=AccessMethod.PIN.value)
        return AuthResult(granted=False, method=AccessMethod.INVALID_PIN.value, reason="wrong_pin")

    def authenticate_rfid(self, conn: Connection, uid_hash: str) -> AuthResult:
        card = self.door_service.find_card_by_hash(conn, uid_hash.lower())

        if not card:
            return AuthResult(granted=False, method=AccessMethod.INVALID_RFID.value, reason="unknown_card")

        if card["status"] == "REVOKED":
            return AuthResult(
                granted=False,
                method=AccessMethod.CARD_REVOKED.value,
                reason="card_revoked",
                user_id=card["user_id"],
                username=card["username"],
            )

        return AuthResult(
            granted=True,
            method=AccessMethod.RFID.value,
            user_id=card["user_id"],
            username=card["username"],
        )
