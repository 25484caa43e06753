# =======================================================================================
# app/api/routes/alerts.py - Alert Endpoints
# =======================================================================================
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from ...models.schemas import AlertPage, MessageResponse
from ...services.context import DoorContext
from ..dependencies import get_current_user, get_db_connection, get_door_context

router = APIRouter()


@router.get("/alerts", response_model=AlertPage)
def list_alerts(page: int = Query(1), limit: int = Query(20),
                type: Optional[str] = None, level: Optional[str] = None,
                user=Depends(get_current_user), ctx: DoorContext = Depends(get_door_context),
                conn=Depends(get_db_connection)):
    return ctx.alerts.get_alerts(conn, page=page, limit=limit, type=type, level=level)


@router.patch("/alerts/{alert_id}/acknowledge", response_model=MessageResponse)
def acknowledge_alert(alert_id: int, user: Dict[str, Any] = Depends(get_current_user),
                      ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        ctx.alerts.acknowledge(conn, alert_id, user["id"])
    return MessageResponse(message="Alert acknowledged")
