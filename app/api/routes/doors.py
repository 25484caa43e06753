# =======================================================================================
# app/api/routes/doors.py - Door Administration Endpoints
# =======================================================================================
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.engine import Connection
from ...models.enums import Topic
from ...models.schemas import (
    AccessLogPage, AddCardRequest, EnrollmentStartRequest, MessageResponse, PinUpdateRequest,
)
from ...services.context import DoorContext
from ...utils.exceptions import ConflictError
from ...utils.validators import require_fields
from ..dependencies import get_current_user, get_db_connection, get_door_context, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doors")


# ---------------- door ----------------

@router.get("")
def get_door(user=Depends(get_current_user), ctx: DoorContext = Depends(get_door_context),
             conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_door(conn)


@router.get("/config")
def get_door_config(user=Depends(get_current_user), ctx: DoorContext = Depends(get_door_context),
                    conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_door_config(conn)


@router.patch("/pin")
def update_pin(request: PinUpdateRequest, background: BackgroundTasks,
               admin: Dict[str, Any] = Depends(require_admin),
               ctx: DoorContext = Depends(get_door_context)):
    with ctx.transaction() as conn:
        pin_hash = ctx.doors.update_pin(conn, request.pin, request.currentPin)
        door = ctx.doors.get_or_create_door(conn)
        ctx.publish(Topic.CONFIG_PIN, {"action": "update_pin", "pinHash": pin_hash})
        ctx.alerts.create_alert(conn, "door", "INFO", f"Door PIN was changed by {admin['username']}")

    background.add_task(ctx.push.send_to_all, "Door PIN changed",
                        f"{admin['username']} changed the door PIN")
    return {"message": "PIN updated", "doorId": door["id"]}


# ---------------- enrollment ----------------

@router.get("/users-rfid-status")
def users_rfid_status(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context),
                      conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_all_users_with_rfid_status(conn)


@router.get("/users-without-card")
def users_without_card(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context),
                       conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_users_without_card(conn)


@router.get("/enrollment/status")
def enrollment_status(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context),
                      conn: Connection = Depends(get_db_connection)):
    return ctx.enrollment.status(conn)


@router.post("/enrollment/start")
def start_enrollment(request: EnrollmentStartRequest, admin=Depends(require_admin),
                     ctx: DoorContext = Depends(get_door_context)):
    """Put the door into enrollment mode for one user. Replacing a card needs confirmation."""
    require_fields(request.model_dump(), "userId")

    with ctx.transaction() as conn:
        ctx.doors.get_user(conn, request.userId)
        existing = ctx.doors.find_active_card_for_user(conn, request.userId)
        if existing and not request.confirmReplace:
            raise ConflictError(
                "User already has an RFID card",
                requireConfirmation=True,
                existingCard=ctx.doors.card_to_dict(existing),
            )
        result = ctx.enrollment.start(conn, request.userId)

    ctx.publish(Topic.ENROLLMENT, {
        "action": "start", "userId": result["userId"], "username": result["username"],
    })
    return {"message": "Enrollment mode started", **result}


@router.post("/enrollment/cancel", response_model=MessageResponse)
def cancel_enrollment(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context)):
    with ctx.transaction() as conn:
        ctx.enrollment.cancel(conn)
    ctx.publish(Topic.ENROLLMENT, {"action": "cancel"})
    return MessageResponse(message="Enrollment cancelled")


# ---------------- RFID cards ----------------

@router.get("/rfid/user/{user_id}")
def user_rfid_status(user_id: int, user=Depends(get_current_user),
                     ctx: DoorContext = Depends(get_door_context),
                     conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_user_rfid_status(conn, user_id)


@router.get("/rfid/my-card")
def my_card(user: Dict[str, Any] = Depends(get_current_user),
            ctx: DoorContext = Depends(get_door_context),
            conn: Connection = Depends(get_db_connection)):
    return ctx.doors.get_user_rfid_status(conn, user["id"])


@router.post("/rfid/report-lost")
def report_lost_card(background: BackgroundTasks, user: Dict[str, Any] = Depends(get_current_user),
                     ctx: DoorContext = Depends(get_door_context)):
    with ctx.transaction() as conn:
        result = ctx.doors.report_lost_card(conn, user["id"])
        ctx.publish_whitelist(conn)
        ctx.publish(Topic.RFID_LOST, {
            "userId": user["id"], "username": user["username"], "cardUid": result["card"]["uid"],
        })
        ctx.alerts.create_alert(
            conn, "door", "WARNING",
            f"RFID card of {user['username']} was reported lost and disabled",
        )

    background.add_task(ctx.push.send_to_all, "RFID card lost",
                        f"{user['username']} reported their RFID card lost. The card has been disabled.")
    return result


@router.post("/rfid", status_code=status.HTTP_201_CREATED)
def add_card(request: AddCardRequest, admin=Depends(require_admin),
             ctx: DoorContext = Depends(get_door_context)):
    require_fields(request.model_dump(), "userId", "uid")
    with ctx.transaction() as conn:
        card = ctx.doors.add_card(conn, request.userId, request.uid)
        ctx.publish_whitelist(conn)
    return card


@router.post("/rfid/revoke/{user_id}", response_model=MessageResponse)
def revoke_card(user_id: int, admin=Depends(require_admin),
                ctx: DoorContext = Depends(get_door_context)):
    with ctx.transaction() as conn:
        ctx.doors.revoke_user_card(conn, user_id)
        ctx.publish_whitelist(conn)
    return MessageResponse(message="RFID card revoked")


@router.delete("/rfid/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_card(card_id: int, admin=Depends(require_admin),
                ctx: DoorContext = Depends(get_door_context)):
    with ctx.transaction() as conn:
        ctx.doors.remove_card(conn, card_id)
        ctx.publish_whitelist(conn)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------- logs ----------------

@router.get("/logs", response_model=AccessLogPage)
def access_logs(page: int = Query(1), limit: int = Query(50), event: Optional[str] = None,
                user=Depends(get_current_user), ctx: DoorContext = Depends(get_door_context),
                conn: Connection = Depends(get_db_connection)):
    door = ctx.doors.get_or_create_door(conn)
    return ctx.access_log.get_logs(conn, door["id"], page=page, limit=limit, event_filter=event)


@router.get("/history")
def door_history(page: int = Query(1), limit: int = Query(20), event: Optional[str] = None,
                 user=Depends(get_current_user), ctx: DoorContext = Depends(get_door_context),
                 conn: Connection = Depends(get_db_connection)):
    """Open/close and access attempts; ``event`` may be ``granted`` or ``denied``."""
    door = ctx.doors.get_or_create_door(conn)
    return ctx.access_log.get_history(conn, door["id"], page=page, limit=limit, event_filter=event)


# ---------------- commands ----------------

@router.post("/unlock", response_model=MessageResponse)
def unlock(admin: Dict[str, Any] = Depends(require_admin),
           ctx: DoorContext = Depends(get_door_context)):
    # the controller logs the opening itself when it reports home/door/state
    logger.info("Unlock requested by %s", admin["username"])
    ctx.publish(Topic.COMMAND, {"action": "unlock"})
    return MessageResponse(message="Unlock command sent")


@router.post("/reset-alarm", response_model=MessageResponse)
def reset_alarm(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context)):
    ctx.reset_alarm()
    ctx.publish(Topic.COMMAND, {"action": "reset_alarm"})
    return MessageResponse(message="Reset alarm command sent")
