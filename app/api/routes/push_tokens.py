# =======================================================================================
# app/api/routes/push_tokens.py - Push Token Registration
# =======================================================================================
from typing import Any, Dict
from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from ...models.schemas import MessageResponse, PushTestRequest, PushTokenRequest
from ...services.context import DoorContext
from ..dependencies import get_current_user, get_door_context, require_admin

router = APIRouter()


@router.post("/push-tokens", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register_push_token(request: PushTokenRequest, user: Dict[str, Any] = Depends(get_current_user),
                        ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        ctx.push.register_token(conn, user["id"], request.token, request.platform)
    return MessageResponse(message="Push token registered")


@router.delete("/push-tokens/{token}", status_code=status.HTTP_204_NO_CONTENT)
def remove_push_token(token: str, user=Depends(get_current_user),
                      ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        ctx.push.remove_token(conn, token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/push/test", response_model=MessageResponse)
def send_test_notification(request: PushTestRequest, background: BackgroundTasks,
                           admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context)):
    """Send a test notification to one user's devices, or to everybody without ``userId``."""
    title = request.title or "Test"
    body = request.body or "Test notification"
    if request.userId is not None:
        background.add_task(ctx.push.send_to_user, request.userId, title, body)
    else:
        background.add_task(ctx.push.send_to_all, title, body)
    return MessageResponse(message="Notification sent")
