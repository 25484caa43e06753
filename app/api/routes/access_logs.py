# =======================================================================================
# app/api/routes/access_logs.py - Raw Door State Reports
# =======================================================================================
from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Connection
from ...models.schemas import DoorEventPage
from ...services.context import DoorContext
from ..dependencies import get_db_connection, get_door_context, require_admin

router = APIRouter()


@router.get("/access-logs", response_model=DoorEventPage)
def list_door_events(page: int = Query(1), limit: int = Query(20),
                     admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context),
                     conn: Connection = Depends(get_db_connection)):
    return ctx.access_log.get_door_events(conn, page=page, limit=limit)
