# =======================================================================================
# app/services/door_service.py - Door & RFID Credential Store
# =======================================================================================
import uuid
from typing import Optional, List, Dict, Any
from sqlalchemy import text
from sqlalchemy.engine import Connection
from ..config import config
from ..models.enums import AccessEvent, AccessMethod
from ..utils.clock import utcnow
from ..utils.exceptions import (
    CardConflictError, CardNotFoundError, PinMismatchError, UserNotFoundError,
)
from ..utils.hashing import digests_equal, hash_uid, normalize_uid, sha256_hex
from ..utils.validators import PinValidator

_CARD_WITH_USER = """
    SELECT c.id, c.door_id, c.user_id, c.uid, c.uid_hash, c.status, c.created_at,
           u.username AS username, u.role AS role
    FROM rfid_cards c
    JOIN users u ON u.id = c.user_id
"""


class DoorService:
    """Single door, its PIN digest and the RFID cards bound to users."""

    def __init__(self, access_log):
        self.access_log = access_log

    # ---------------- helpers ----------------
    @staticmethod
    def card_to_dict(row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "uid": row["uid"],
            "uidHash": row["uid_hash"],
            "status": row["status"],
            "userId": row["user_id"],
            "createdAt": row["created_at"],
        }

    # ---------------- door ----------------
    def get_or_create_door(self, conn: Connection, pin: Optional[str] = None) -> Dict[str, Any]:
        """Return the door row, creating it with the default PIN on first access."""
        door = conn.execute(
            text("SELECT * FROM doors ORDER BY created_at LIMIT 1")
        ).mappings().first()
        if door:
            return dict(door)

        now = utcnow()
        door_id = str(uuid.uuid4())
        conn.execute(
            text("""
                INSERT INTO doors (id, name, location, pin_hash, is_online, last_seen,
                                   enrollment_mode, enrollment_user_id, created_at, updated_at)
                VALUES (:id, :name, :loc, :pin_hash, :online, NULL, :enrolling, NULL, :now, :now)
            """),
            {
                "id": door_id,
                "name": config.DOOR_DEFAULT_NAME,
                "loc": config.DOOR_DEFAULT_LOCATION,
                "pin_hash": sha256_hex(pin or config.DOOR_DEFAULT_PIN),
                "online": False,
                "enrolling": False,
                "now": now,
            },
        )
        return dict(conn.execute(
            text("SELECT * FROM doors WHERE id = :id"), {"id": door_id}
        ).mappings().first())

    def get_door(self, conn: Connection) -> Dict[str, Any]:
        """Door with its active cards and the number of log entries."""
        door = self.get_or_create_door(conn)
        cards = conn.execute(
            text(_CARD_WITH_USER + " WHERE c.door_id = :door AND c.status = 'ACTIVE' ORDER BY c.id"),
            {"door": door["id"]},
        ).mappings().all()
        log_count = conn.execute(
            text("SELECT COUNT(*) FROM door_access_logs WHERE door_id = :door"),
            {"door": door["id"]},
        ).scalar_one()

        return {
            "id": door["id"],
            "name": door["name"],
            "location": door["location"],
            "isOnline": bool(door["is_online"]),
            "lastSeen": door["last_seen"],
            "enrollmentMode": bool(door["enrollment_mode"]),
            "enrollmentUserId": door["enrollment_user_id"],
            "rfidCards": [
                {
                    **self.card_to_dict(c),
                    "user": {"id": c["user_id"], "username": c["username"], "role": c["role"]},
                }
                for c in cards
            ],
            "accessLogCount": int(log_count or 0),
        }

    def update_pin(self, conn: Connection, new_pin: Any, current_pin: Any) -> str:
        """Replace the PIN digest. Returns the new digest."""
        PinValidator.validate(current_pin, "Current PIN")
        PinValidator.validate(new_pin, "New PIN")

        door = self.get_or_create_door(conn)
        if not digests_equal(door["pin_hash"], sha256_hex(current_pin)):
            raise PinMismatchError("Current PIN is incorrect")

        pin_hash = sha256_hex(new_pin)
        conn.execute(
            text("UPDATE doors SET pin_hash = :h, updated_at = :now WHERE id = :id"),
            {"h": pin_hash, "now": utcnow(), "id": door["id"]},
        )
        return pin_hash

    def update_status(self, conn: Connection, online: bool) -> Dict[str, Any]:
        door = self.get_or_create_door(conn)
        now = utcnow()
        if online:
            conn.execute(
                text("UPDATE doors SET is_online = :o, last_seen = :now, updated_at = :now WHERE id = :id"),
                {"o": True, "now": now, "id": door["id"]},
            )
        else:
            conn.execute(
                text("UPDATE doors SET is_online = :o, updated_at = :now WHERE id = :id"),
                {"o": False, "now": now, "id": door["id"]},
            )
        return self.get_or_create_door(conn)

    def get_door_config(self, conn: Connection) -> Dict[str, Any]:
        """Everything the door controller needs to authenticate offline."""
        door = self.get_or_create_door(conn)
        return {"pinHash": door["pin_hash"], "whitelist": self.get_rfid_whitelist(conn)}

    # ---------------- lookups ----------------
    def get_user(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        user = conn.execute(
            text("SELECT id, username, role FROM users WHERE id = :uid"),
            {"uid": user_id},
        ).mappings().first()
        if not user:
            raise UserNotFoundError("User does not exist")
        return dict(user)

    def find_card_by_hash(self, conn: Connection, uid_hash: str) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            text(_CARD_WITH_USER + " WHERE c.uid_hash = :h ORDER BY c.id DESC LIMIT 1"),
            {"h": uid_hash},
        ).mappings().first()
        return dict(row) if row else None

    def find_active_card_for_user(self, conn: Connection, user_id: int) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            text(_CARD_WITH_USER + " WHERE c.user_id = :uid AND c.status = 'ACTIVE'"),
            {"uid": user_id},
        ).mappings().first()
        return dict(row) if row else None

    def get_user_by_rfid_hash(self, conn: Connection, uid_hash: str) -> Optional[Dict[str, Any]]:
        """Owner of the ACTIVE card with this digest, if any."""
        row = conn.execute(
            text(_CARD_WITH_USER + " WHERE c.uid_hash = :h AND c.status = 'ACTIVE'"),
            {"h": uid_hash},
        ).mappings().first()
        if not row:
            return None
        return {"id": row["user_id"], "username": row["username"], "role": row["role"]}

    def get_rfid_whitelist(self, conn: Connection) -> List[Dict[str, str]]:
        door = self.get_or_create_door(conn)
        rows = conn.execute(
            text(_CARD_WITH_USER + " WHERE c.door_id = :door AND c.status = 'ACTIVE' ORDER BY c.id"),
            {"door": door["id"]},
        ).mappings().all()
        return [{"uidHash": r["uid_hash"], "username": r["username"]} for r in rows]

    def get_user_rfid_status(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        card = self.find_active_card_for_user(conn, user_id)
        return {
            "hasCard": card is not None,
            "card": self.card_to_dict(card) if card else None,
        }

    def get_users_without_card(self, conn: Connection) -> List[Dict[str, Any]]:
        rows = conn.execute(
            text("""
                SELECT u.id, u.username, u.role
                FROM users u
                LEFT JOIN rfid_cards c ON c.user_id = u.id AND c.status = 'ACTIVE'
                WHERE c.id IS NULL
                ORDER BY u.username
            """)
        ).mappings().all()
        return [dict(r) for r in rows]

    def get_all_users_with_rfid_status(self, conn: Connection) -> List[Dict[str, Any]]:
        rows = conn.execute(
            text("""
                SELECT u.id, u.username, u.role,
                       c.id AS card_id, c.uid, c.uid_hash, c.status, c.user_id, c.created_at
                FROM users u
                LEFT JOIN rfid_cards c ON c.user_id = u.id AND c.status = 'ACTIVE'
                ORDER BY u.username
            """)
        ).mappings().all()

        results: List[Dict[str, Any]] = []
        for r in rows:
            card = None
            if r["card_id"] is not None:
                card = self.card_to_dict({**r, "id": r["card_id"]})
            results.append({
                "id": r["id"],
                "username": r["username"],
                "role": r["role"],
                "hasRfidCard": card is not None,
                "rfidCard": card,
            })
        return results

    # ---------------- card lifecycle ----------------
    def insert_card(self, conn: Connection, door_id: str, user_id: int, uid: str) -> Dict[str, Any]:
        """Insert an ACTIVE card. Callers clear conflicting rows first."""
        uid_norm = normalize_uid(uid)
        now = utcnow()
        conn.execute(
            text("""
                INSERT INTO rfid_cards (door_id, user_id, uid, uid_hash, status, created_at, updated_at)
                VALUES (:door, :uid_user, :uid, :h, 'ACTIVE', :now, :now)
            """),
            {"door": door_id, "uid_user": user_id, "uid": uid_norm, "h": hash_uid(uid_norm), "now": now},
        )
        return self.find_active_card_for_user(conn, user_id)

    def add_card(self, conn: Connection, user_id: int, uid: str) -> Dict[str, Any]:
        """Bind a card to a user by hand (admin entry, no scan)."""
        door = self.get_or_create_door(conn)
        user = self.get_user(conn, user_id)

        if self.find_active_card_for_user(conn, user_id):
            raise CardConflictError("User already has an RFID card. Revoke the old card first.")

        uid_hash = hash_uid(uid)
        existing = self.find_card_by_hash(conn, uid_hash)
        if existing and existing["status"] == "ACTIVE":
            raise CardConflictError("Card UID is already in use", holder=existing["username"])

        # revoked leftovers would collide with the unique user / digest columns
        conn.execute(
            text("DELETE FROM rfid_cards WHERE status = 'REVOKED' AND (user_id = :uid OR uid_hash = :h)"),
            {"uid": user_id, "h": uid_hash},
        )
        card = self.insert_card(conn, door["id"], user_id, uid)
        return {**self.card_to_dict(card), "user": {"id": user["id"], "username": user["username"]}}

    def revoke_user_card(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        card = self.find_active_card_for_user(conn, user_id)
        if not card:
            raise CardNotFoundError("User has no RFID card")
        self._set_revoked(conn, card["id"])
        return {**self.card_to_dict(card), "status": "REVOKED"}

    def remove_card(self, conn: Connection, card_id: int) -> Dict[str, Any]:
        card = conn.execute(
            text("SELECT * FROM rfid_cards WHERE id = :id"), {"id": card_id}
        ).mappings().first()
        if not card:
            raise CardNotFoundError("RFID card not found")
        self._set_revoked(conn, card_id)
        return {**self.card_to_dict(card), "status": "REVOKED"}

    def report_lost_card(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        """Self-service revoke of the caller's own card."""
        card = self.find_active_card_for_user(conn, user_id)
        if not card:
            raise CardNotFoundError("You have no active RFID card")

        self._set_revoked(conn, card["id"])
        door = self.get_or_create_door(conn)
        self.access_log.append(
            conn,
            door_id=door["id"],
            event=AccessEvent.CARD_REPORTED_LOST,
            method=AccessMethod.USER_REPORT,
            user_id=user_id,
            rfid_uid=card["uid"],
        )
        return {
            "success": True,
            "card": {"id": card["id"], "uid": card["uid"], "username": card["username"]},
            "message": f"RFID card of {card['username']} has been disabled",
        }

    @staticmethod
    def _set_revoked(conn: Connection, card_id: int) -> None:
        conn.execute(
            text("UPDATE rfid_cards SET status = 'REVOKED', updated_at = :now WHERE id = :id"),
            {"now": utcnow(), "id": card_id},
        )
