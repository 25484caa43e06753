# =======================================================================================
# app/api/routes/auth.py - Frontend Authentication Endpoints
# =======================================================================================
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from ...models.schemas import (
    AuthRequest, AuthResponse, MessageResponse, PasswordChangeRequest, ProfileUpdateRequest,
    RoleUpdateRequest, UserInfo, UserListItem,
)
from ...services.context import DoorContext
from ..dependencies import get_current_user, get_door_context, require_admin

router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register_user(request: AuthRequest, ctx: DoorContext = Depends(get_door_context)):
    # You might want to restrict self-registration of admins in production.
    role = request.role or "USER"
    with ctx.db.get_connection() as conn:
        user_id = ctx.users.create_user(conn, request.username, request.password, role)

    return AuthResponse(
        token=ctx.users.create_token(user_id),
        message="User created successfully",
        user=UserInfo(id=user_id, username=request.username, role=role),
    )


@router.post("/auth/login", response_model=AuthResponse)
def login_user(request: AuthRequest, ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        user = ctx.users.authenticate_user(conn, request.username, request.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    return AuthResponse(
        token=ctx.users.create_token(user["id"]),
        message="Login successful",
        user=UserInfo(**user),
    )


@router.get("/auth/me", response_model=UserInfo)
def current_user(user: Dict[str, Any] = Depends(get_current_user)):
    return UserInfo(**user)


# ---------------- own account ----------------

@router.patch("/auth/password", response_model=MessageResponse)
def change_password(request: PasswordChangeRequest, user: Dict[str, Any] = Depends(get_current_user),
                    ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        ctx.users.change_password(conn, user["id"], request.currentPassword, request.newPassword)
    return MessageResponse(message="Password changed")


@router.patch("/auth/profile", response_model=UserInfo)
def update_profile(request: ProfileUpdateRequest, user: Dict[str, Any] = Depends(get_current_user),
                   ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        return ctx.users.update_profile(conn, user["id"], request.username)


# ---------------- user administration ----------------

@router.get("/auth/users", response_model=List[UserListItem])
def list_users(admin=Depends(require_admin), ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        return ctx.users.list_users(conn)


@router.patch("/auth/users/{user_id}/role", response_model=UserInfo)
def update_user_role(user_id: int, request: RoleUpdateRequest, admin=Depends(require_admin),
                     ctx: DoorContext = Depends(get_door_context)):
    with ctx.db.get_connection() as conn:
        return ctx.users.update_role(conn, user_id, request.role)


@router.delete("/auth/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, admin=Depends(require_admin),
                ctx: DoorContext = Depends(get_door_context)):
    # the user's card leaves the whitelist with them
    with ctx.transaction() as conn:
        ctx.users.delete_user(conn, user_id)
        ctx.publish_whitelist(conn)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
