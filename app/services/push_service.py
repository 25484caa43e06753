# =======================================================================================
# app/services/push_service.py - Push Notifications
# =======================================================================================
import logging
from typing import List, Optional, Protocol
from sqlalchemy import text
from sqlalchemy.engine import Connection

import firebase_admin
from firebase_admin import credentials, messaging

from ..config import config

logger = logging.getLogger(__name__)


class PushSender(Protocol):
    def send(self, tokens: List[str], title: str, body: str) -> int:
        """Deliver to ``tokens``; return how many were accepted."""
        ...


class FirebasePushSender:
    """Firebase Cloud Messaging delivery. Initialised on first use."""

    def __init__(self, credentials_path: Optional[str] = None):
        self.credentials_path = credentials_path or config.FIREBASE_CREDENTIALS
        self._app = None

    def _ensure_app(self) -> bool:
        if self._app is not None:
            return True
        if not self.credentials_path:
            logger.warning("FIREBASE_CREDENTIALS not configured; push disabled")
            return False
        try:
            cred = credentials.Certificate(self.credentials_path)
            self._app = firebase_admin.initialize_app(cred, name="smart-home-push")
            logger.info("Firebase initialized successfully.")
            return True
        except FileNotFoundError:
            logger.error("Firebase credentials file not found: %s", self.credentials_path)
        except ValueError as e:
            logger.error("Error initializing Firebase: %s", e)
        return False

    def send(self, tokens: List[str], title: str, body: str) -> int:
        if not tokens or not self._ensure_app():
            return 0
        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            tokens=tokens,
        )
        response = messaging.send_each_for_multicast(message, app=self._app)
        if response.failure_count:
            logger.warning("Push: %d of %d deliveries failed", response.failure_count, len(tokens))
        return response.success_count


class PushService:
    """Push-token registry plus best-effort broadcast."""

    def __init__(self, db, sender: PushSender):
        self.db = db
        self.sender = sender

    def register_token(self, conn: Connection, user_id: int, token: str, platform: str) -> None:
        existing = conn.execute(
            text("SELECT id FROM push_tokens WHERE token = :t"), {"t": token}
        ).first()
        if existing:
            conn.execute(
                text("UPDATE push_tokens SET user_id = :uid, platform = :p WHERE token = :t"),
                {"uid": user_id, "p": platform, "t": token},
            )
        else:
            conn.execute(
                text("INSERT INTO push_tokens (user_id, token, platform) VALUES (:uid, :t, :p)"),
                {"uid": user_id, "t": token, "p": platform},
            )

    def remove_token(self, conn: Connection, token: str) -> bool:
        result = conn.execute(text("DELETE FROM push_tokens WHERE token = :t"), {"t": token})
        return result.rowcount > 0

    def send_to_all(self, title: str, body: str) -> int:
        """Never raises: a failed push must not block logging or unlocking."""
        try:
            rows = self.db.fetch_all("SELECT token FROM push_tokens")
            tokens = [r["token"] for r in rows]
            sent = self.sender.send(tokens, title, body)
            logger.debug("Push '%s' sent to %d device(s)", title, sent)
            return sent
        except Exception:
            logger.exception("Push notification '%s' failed", title)
            return 0

    def send_to_user(self, user_id: int, title: str, body: str) -> int:
        """Same as ``send_to_all`` but limited to one user's devices."""
        try:
            rows = self.db.fetch_all("SELECT token FROM push_tokens WHERE user_id = :uid", {"uid": user_id})
            tokens = [r["token"] for r in rows]
            if not tokens:
                return 0
            sent = self.sender.send(tokens, title, body)
            logger.debug("Push '%s' sent to %d device(s) of user %s", title, sent, user_id)
            return sent
        except Exception:
            logger.exception("Push notification '%s' to user %s failed", title, user_id)
            return 0
