# =======================================================================================
# app/services/auth_service.py - Session Authentication for the web/mobile client
# =======================================================================================
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List
import jwt
from sqlalchemy import text
from sqlalchemy.engine import Connection
from passlib.context import CryptContext

from ..config import config
from ..utils.clock import utcnow
from ..utils.exceptions import (
    AuthenticationError, UserNotFoundError, UsernameTakenError, ValidationError,
)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

TOKEN_ALGORITHM = "HS256"


class AuthService:
    """Handles user accounts (username/password) and JWT session tokens."""

    def __init__(self, secret_key: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.secret_key = secret_key or config.SECRET_KEY
        self.ttl_seconds = ttl_seconds or config.TOKEN_TTL_SECONDS

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def create_user(self, conn: Connection, username: str, password: str, role: str = "USER") -> int:
        existing = conn.execute(
            text("SELECT id FROM users WHERE username = :u"), {"u": username}
        ).first()
        if existing:
            raise UsernameTakenError("Username already exists")

        result = conn.execute(
            text(
                """
                INSERT INTO users (username, password_hash, role, created_at)
                VALUES (:username, :password_hash, :role, :now)
                """
            ),
            {
                "username": username,
                "password_hash": self.hash_password(password),
                "role": role,
                "now": utcnow(),
            },
        )
        return result.lastrowid

    def authenticate_user(
        self, conn: Connection, username: str, password: str
    ) -> Optional[Dict[str, Any]]:
        row = conn.execute(
            text(
                """
                SELECT id, username, role, password_hash
                FROM users
                WHERE username = :username
                """
            ),
            {"username": username},
        ).mappings().first()

        if not row:
            return None

        if not self.verify_password(password, row["password_hash"]):
            return None

        return {"id": row["id"], "username": row["username"], "role": row["role"]}

    # ---------------- account management ----------------

    def _get_user(self, conn: Connection, user_id: int) -> Dict[str, Any]:
        row = conn.execute(
            text("SELECT id, username, role, password_hash, created_at FROM users WHERE id = :id"),
            {"id": user_id},
        ).mappings().first()
        if not row:
            raise UserNotFoundError("User not found")
        return dict(row)

    def list_users(self, conn: Connection) -> List[Dict[str, Any]]:
        rows = conn.execute(
            text("SELECT id, username, role, created_at FROM users ORDER BY id")
        ).mappings().all()
        return [
            {"id": r["id"], "username": r["username"], "role": r["role"], "createdAt": r["created_at"]}
            for r in rows
        ]

    def change_password(self, conn: Connection, user_id: int,
                        current_password: str, new_password: str) -> None:
        if not current_password or not new_password:
            raise ValidationError("currentPassword and newPassword are required")
        if len(new_password) < 4:
            raise ValidationError("New password must be at least 4 characters")

        user = self._get_user(conn, user_id)
        if not self.verify_password(current_password, user["password_hash"]):
            raise ValidationError("Current password is incorrect")

        conn.execute(
            text("UPDATE users SET password_hash = :h WHERE id = :id"),
            {"h": self.hash_password(new_password), "id": user_id},
        )

    def update_profile(self, conn: Connection, user_id: int, username: str) -> Dict[str, Any]:
        username = (username or "").strip()
        if len(username) < 3:
            raise ValidationError("Username must be at least 3 characters")

        taken = conn.execute(
            text("SELECT id FROM users WHERE username = :u AND id != :id"),
            {"u": username, "id": user_id},
        ).first()
        if taken:
            raise UsernameTakenError("Username already exists")

        user = self._get_user(conn, user_id)
        conn.execute(text("UPDATE users SET username = :u WHERE id = :id"), {"u": username, "id": user_id})
        return {"id": user["id"], "username": username, "role": user["role"]}

    def update_role(self, conn: Connection, user_id: int, role: str) -> Dict[str, Any]:
        user = self._get_user(conn, user_id)
        conn.execute(text("UPDATE users SET role = :r WHERE id = :id"), {"r": role, "id": user_id})
        return {"id": user["id"], "username": user["username"], "role": role}

    def delete_user(self, conn: Connection, user_id: int) -> None:
        """Remove the account with its card and push tokens; history rows keep a NULL user."""
        self._get_user(conn, user_id)
        params = {"id": user_id}
        conn.execute(text("DELETE FROM rfid_cards WHERE user_id = :id"), params)
        conn.execute(text("DELETE FROM push_tokens WHERE user_id = :id"), params)
        conn.execute(text("UPDATE door_access_logs SET user_id = NULL WHERE user_id = :id"), params)
        conn.execute(text("UPDATE alerts SET acknowledged_by_id = NULL WHERE acknowledged_by_id = :id"), params)
        # an enrollment aimed at this user can no longer complete
        conn.execute(
            text("""
                UPDATE doors SET enrollment_mode = :off, enrollment_user_id = NULL
                WHERE enrollment_user_id = :id
            """),
            {"off": False, "id": user_id},
        )
        conn.execute(text("DELETE FROM users WHERE id = :id"), params)

    # ---------------- tokens ----------------

    def create_token(self, user_id: int) -> str:
        payload = {
            "sub": str(user_id),
            "exp": datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self.secret_key, algorithm=TOKEN_ALGORITHM)

    def verify_token(self, conn: Connection, token: str) -> Dict[str, Any]:
        """Return the token's user or raise AuthenticationError."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[TOKEN_ALGORITHM])
            user_id = int(payload["sub"])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except (jwt.InvalidTokenError, KeyError, ValueError):
            raise AuthenticationError("Invalid token")

        user = conn.execute(
            text("SELECT id, username, role FROM users WHERE id = :id"), {"id": user_id}
        ).mappings().first()
        if not user:
            raise AuthenticationError("Invalid token")
        return dict(user)
