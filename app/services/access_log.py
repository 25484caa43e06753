# =======================================================================================
# app/services/access_log.py - Door Access Log
# =======================================================================================
import math
from enum import Enum
from typing import Optional, List, Dict, Any, Sequence, Union
from sqlalchemy import text, bindparam
from sqlalchemy.engine import Connection
from ..models.enums import HISTORY_EVENTS, HISTORY_FILTERS
from ..utils.clock import utcnow
from ..utils.exceptions import ValidationError
from ..utils.hashing import hash_uid

Tag = Union[str, Enum]

_MAX_PAGE_SIZE = 200


def _tag(value: Optional[Tag]) -> Optional[str]:
    if isinstance(value, Enum):
        return value.value
    return value


class AccessLogService:
    """Append-only ledger of door events. There is no update or delete."""

    def append(self, conn: Connection, door_id: str, event: Tag, method: Tag,
               user_id: Optional[int] = None, rfid_uid: Optional[str] = None) -> Dict[str, Any]:
        event, method = _tag(event), _tag(method)
        if not event or not method:
            raise ValidationError("Log entries need an event and a method")

        if user_id is None and rfid_uid:
            owner = conn.execute(
                text("SELECT user_id FROM rfid_cards WHERE uid_hash = :h AND status = 'ACTIVE'"),
                {"h": hash_uid(rfid_uid)},
            ).first()
            user_id = owner[0] if owner else None

        ts = utcnow()
        result = conn.execute(
            text("""
                INSERT INTO door_access_logs (door_id, user_id, event, rfid_uid, method, timestamp)
                VALUES (:door, :uid, :evt, :rfid, :method, :ts)
            """),
            {"door": door_id, "uid": user_id, "evt": event, "rfid": rfid_uid, "method": method, "ts": ts},
        )
        return {
            "id": result.lastrowid,
            "doorId": door_id,
            "userId": user_id,
            "event": event,
            "method": method,
            "rfidUid": rfid_uid,
            "timestamp": ts,
        }

    # ---------- reads ----------

    def get_logs(self, conn: Connection, door_id: str, page: int = 1, limit: int = 50,
                 event_filter: Optional[str] = None) -> Dict[str, Any]:
        """Every event, newest first, optionally narrowed to one event tag."""
        events = [event_filter] if event_filter else None
        return self._page(conn, door_id, events, page, limit)

    def get_history(self, conn: Connection, door_id: str, page: int = 1, limit: int = 20,
                    event_filter: Optional[str] = None) -> Dict[str, Any]:
        """
        Door open/close and access attempts only.
        Enrollment and lost-card entries are administrative and never show up here.
        """
        events = HISTORY_FILTERS.get(event_filter or "", HISTORY_EVENTS)
        data = self._page(conn, door_id, list(events), page, limit)
        data["logs"] = [
            {
                "id": log["id"],
                "event": log["event"],
                "method": log["method"],
                "timestamp": log["timestamp"],
                "user": log["user"],
            }
            for log in data["logs"]
        ]
        return data

    def _page(self, conn: Connection, door_id: str, events: Optional[Sequence[str]],
              page: int, limit: int) -> Dict[str, Any]:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 1), 1), _MAX_PAGE_SIZE)

        where = "l.door_id = :door"
        params: Dict[str, Any] = {"door": door_id, "limit": limit, "skip": (page - 1) * limit}
        if events:
            where += " AND l.event IN :events"
            params["events"] = list(events)

        count_q = text(f"SELECT COUNT(*) FROM door_access_logs l WHERE {where}")
        rows_q = text(f"""
            SELECT l.id, l.user_id, l.event, l.rfid_uid, l.method, l.timestamp,
                   u.username AS username
            FROM door_access_logs l
            LEFT JOIN users u ON u.id = l.user_id
            WHERE {where}
            ORDER BY l.timestamp DESC, l.id DESC
            LIMIT :limit OFFSET :skip
        """)
        if events:
            count_q = count_q.bindparams(bindparam("events", expanding=True))
            rows_q = rows_q.bindparams(bindparam("events", expanding=True))

        total = int(conn.execute(count_q, params).scalar_one() or 0)
        rows = conn.execute(rows_q, params).mappings().all()

        logs: List[Dict[str, Any]] = []
        for row in rows:
            user = None
            if row["user_id"] is not None and row["username"] is not None:
                user = {"id": row["user_id"], "username": row["username"]}
            logs.append({
                "id": row["id"],
                "userId": row["user_id"],
                "event": row["event"],
                "method": row["method"],
                "rfidUid": row["rfid_uid"],
                "timestamp": row["timestamp"],
                "user": user,
            })

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit) if total else 0,
        }

    # ---------- raw door state reports ----------

    def record_door_event(self, conn: Connection, event_type: str, actor: Optional[str]) -> None:
        """Keep the controller's open/close report as sent, next to the normalised entry."""
        conn.execute(
            text("INSERT INTO access_logs (event_type, actor, timestamp) VALUES (:evt, :actor, :ts)"),
            {"evt": event_type, "actor": actor or "unknown", "ts": utcnow()},
        )

    def get_door_events(self, conn: Connection, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 1), 1), _MAX_PAGE_SIZE)

        total = int(conn.execute(text("SELECT COUNT(*) FROM access_logs")).scalar_one() or 0)
        rows = conn.execute(
            text("""
                SELECT id, event_type, actor, timestamp FROM access_logs
                ORDER BY timestamp DESC, id DESC
                LIMIT :limit OFFSET :skip
            """),
            {"limit": limit, "skip": (page - 1) * limit},
        ).mappings().all()

        return {
            "logs": [
                {"id": r["id"], "eventType": r["event_type"], "actor": r["actor"], "timestamp": r["timestamp"]}
                for r in rows
            ],
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit) if total else 0,
        }
