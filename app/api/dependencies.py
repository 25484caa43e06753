# =======================================================================================
# app/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from typing import Any, Dict, Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from ..services.context import DoorContext
from ..utils.exceptions import AuthenticationError, PermissionDeniedError

bearer_scheme = HTTPBearer(auto_error=False)


def get_door_context(request: Request) -> DoorContext:
    return request.app.state.door_context


def get_db_connection(ctx: DoorContext = Depends(get_door_context)) -> Connection:
    """Dependency to get a database connection (read-only routes)."""
    try:
        with ctx.db.get_connection() as conn:
            yield conn
    except SQLAlchemyError as e:
        raise HTTPException(status_code=500, detail=f"Database connection error: {str(e)}")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ctx: DoorContext = Depends(get_door_context),
) -> Dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    with ctx.db.get_connection() as conn:
        return ctx.users.verify_token(conn, credentials.credentials)


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user["role"] != "ADMIN":
        raise PermissionDeniedError("Admin access required")
    return user
