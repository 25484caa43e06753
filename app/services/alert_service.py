# =======================================================================================
# app/services/alert_service.py - Alerts
# =======================================================================================
import logging
import math
from typing import Optional, Dict, Any, List
from sqlalchemy import text
from sqlalchemy.engine import Connection
from ..models.enums import Topic
from ..utils.clock import utcnow
from ..utils.exceptions import AlertNotFoundError
from .publisher import Publisher

logger = logging.getLogger(__name__)


class AlertService:
    """
    Persists alerts and fans them out to web clients over MQTT.

    ``publisher`` is normally the door context, which holds the message back
    until the surrounding transaction commits.
    """

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    def create_alert(self, conn: Connection, type: str, level: str, message: str) -> Dict[str, Any]:
        created_at = utcnow()
        result = conn.execute(
            text("""
                INSERT INTO alerts (type, level, message, created_at, acknowledged_by_id)
                VALUES (:type, :level, :msg, :ts, NULL)
            """),
            {"type": type, "level": level, "msg": message[:255], "ts": created_at},
        )
        alert = {
            "id": result.lastrowid,
            "type": type,
            "level": level,
            "message": message,
            "createdAt": created_at.isoformat() + "Z",
            "acknowledgedBy": None,
        }
        self.publisher.publish(Topic.ALERT_NEW, alert)
        logger.info("Alert %s/%s created: %s", type, level, message)
        return alert

    def get_alerts(self, conn: Connection, page: int = 1, limit: int = 20,
                   type: Optional[str] = None, level: Optional[str] = None) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 200)

        clauses: List[str] = []
        params: Dict[str, Any] = {"limit": limit, "skip": (page - 1) * limit}
        if type:
            clauses.append("a.type = :type")
            params["type"] = type
        if level:
            clauses.append("a.level = :level")
            params["level"] = level
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = int(conn.execute(
            text(f"SELECT COUNT(*) FROM alerts a {where}"), params
        ).scalar_one() or 0)
        rows = conn.execute(
            text(f"""
                SELECT a.id, a.type, a.level, a.message, a.created_at,
                       u.id AS ack_id, u.username AS ack_username
                FROM alerts a
                LEFT JOIN users u ON u.id = a.acknowledged_by_id
                {where}
                ORDER BY a.created_at DESC, a.id DESC
                LIMIT :limit OFFSET :skip
            """),
            params,
        ).mappings().all()

        alerts = [
            {
                "id": r["id"],
                "type": r["type"],
                "level": r["level"],
                "message": r["message"],
                "createdAt": r["created_at"],
                "acknowledgedBy": (
                    {"id": r["ack_id"], "username": r["ack_username"]} if r["ack_id"] else None
                ),
            }
            for r in rows
        ]
        return {
            "alerts": alerts,
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit) if total else 0,
        }

    def acknowledge(self, conn: Connection, alert_id: int, user_id: int) -> None:
        result = conn.execute(
            text("UPDATE alerts SET acknowledged_by_id = :uid WHERE id = :id"),
            {"uid": user_id, "id": alert_id},
        )
        if result.rowcount == 0:
            raise AlertNotFoundError("Alert not found")
