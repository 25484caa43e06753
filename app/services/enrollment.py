# =======================================================================================
# app/services/enrollment.py - RFID Enrollment Mode
# =======================================================================================
from dataclasses import dataclass
from typing import Optional, Dict, Any
from sqlalchemy import text
from sqlalchemy.engine import Connection
from ..models.enums import AccessEvent, AccessMethod, EnrollmentState
from ..utils.clock import utcnow
from ..utils.exceptions import NotEnrollingError, ValidationError
from ..utils.hashing import hash_uid, normalize_uid
from .access_log import AccessLogService
from .door_service import DoorService


@dataclass
class EnrollmentResult:
    success: bool
    message: str
    username: Optional[str] = None
    card: Optional[Dict[str, Any]] = None
    # set when the UID is already held by another user's active card
    holder: Optional[str] = None


class EnrollmentService:
    """
    Enrollment state for the single door: IDLE or ENROLLING(user).

    The state lives on the door row so that the HTTP side and the device
    side see the same thing. Starting again while enrolling replaces the
    target; there is no queue.
    """

    def __init__(self, door_service: DoorService, access_log: AccessLogService):
        self.door_service = door_service
        self.access_log = access_log

    def state(self, conn: Connection) -> EnrollmentState:
        door = self.door_service.get_or_create_door(conn)
        if door["enrollment_mode"] and door["enrollment_user_id"] is not None:
            return EnrollmentState.ENROLLING
        return EnrollmentState.IDLE

    def start(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        """IDLE/ENROLLING -> ENROLLING(user_id). Replacement policy is the caller's."""
        door = self.door_service.get_or_create_door(conn)
        user = self.door_service.get_user(conn, user_id)
        existing = self.door_service.find_active_card_for_user(conn, user_id)

        self._set_mode(conn, door["id"], True, user_id)
        return {
            "userId": user_id,
            "username": user["username"],
            "hasExistingCard": existing is not None,
            "existingCardUid": existing["uid"] if existing else None,
        }

    def cancel(self, conn: Connection) -> None:
        door = self.door_service.get_or_create_door(conn)
        self._set_mode(conn, door["id"], False, None)

    def status(self, conn: Connection) -> Dict[str, Any]:
        door = self.door_service.get_or_create_door(conn)
        if not door["enrollment_mode"] or door["enrollment_user_id"] is None:
            return {"active": False}

        user = conn.execute(
            text("SELECT id, username FROM users WHERE id = :uid"),
            {"uid": door["enrollment_user_id"]},
        ).mappings().first()
        return {
            "active": True,
            "userId": door["enrollment_user_id"],
            "username": user["username"] if user else None,
        }

    def process_scan(self, conn: Connection, uid: Optional[str]) -> EnrollmentResult:
        """
        Bind the scanned card to the pending user and return to IDLE.

        A UID held by another user's ACTIVE card ends enrollment without
        writing a card. Revoked cards with the same UID are removed so the
        card can be reused, and the user's previous card row is replaced.
        """
        if not uid or not uid.strip():
            raise ValidationError("Invalid UID")

        door = self.door_service.get_or_create_door(conn)
        user_id = door["enrollment_user_id"]
        if not door["enrollment_mode"] or user_id is None:
            raise NotEnrollingError("Door is not in enrollment mode")

        uid_norm = normalize_uid(uid)
        uid_hash = hash_uid(uid_norm)

        holder = conn.execute(
            text("""
                SELECT c.user_id, u.username
                FROM rfid_cards c JOIN users u ON u.id = c.user_id
                WHERE c.uid_hash = :h AND c.status = 'ACTIVE' AND c.user_id != :uid
            """),
            {"h": uid_hash, "uid": user_id},
        ).mappings().first()

        if holder:
            self._set_mode(conn, door["id"], False, None)
            self.access_log.append(
                conn, door_id=door["id"], event=AccessEvent.ENROLLMENT_FAILED,
                method=AccessMethod.ENROLLMENT, user_id=user_id, rfid_uid=uid_norm,
            )
            return EnrollmentResult(
                success=False,
                message=f"Card is already assigned to {holder['username']}",
                holder=holder["username"],
            )

        conn.execute(
            text("DELETE FROM rfid_cards WHERE uid_hash = :h AND user_id != :uid"),
            {"h": uid_hash, "uid": user_id},
        )
        conn.execute(text("DELETE FROM rfid_cards WHERE user_id = :uid"), {"uid": user_id})

        card = self.door_service.insert_card(conn, door["id"], user_id, uid_norm)
        self._set_mode(conn, door["id"], False, None)
        self.access_log.append(
            conn, door_id=door["id"], event=AccessEvent.ENROLLMENT_SUCCESS,
            method=AccessMethod.ENROLLMENT, user_id=user_id, rfid_uid=uid_norm,
        )

        return EnrollmentResult(
            success=True,
            message=f"Card registered for {card['username']}",
            username=card["username"],
            card=self.door_service.card_to_dict(card),
        )

    @staticmethod
    def _set_mode(conn: Connection, door_id: str, enrolling: bool, user_id: Optional[int]) -> None:
        conn.execute(
            text("""
                UPDATE doors
                SET enrollment_mode = :mode, enrollment_user_id = :uid, updated_at = :now
                WHERE id = :id
            """),
            {"mode": enrolling, "uid": user_id, "now": utcnow(), "id": door_id},
        )
