# =======================================================================================
# app/services/context.py - Door Context (shared state + services)
# =======================================================================================
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Optional

from ..config import config
from ..database import DatabaseManager
from ..models.enums import Topic
from ..utils.clock import epoch_ms
from .access_log import AccessLogService
from .alert_service import AlertService
from .attempt_counter import FailedAttemptCounter
from .auth_service import AuthService
from .authentication import AuthenticationEngine
from .device_monitor import DeviceMonitor
from .door_service import DoorService
from .enrollment import EnrollmentService
from .publisher import Publisher
from .push_service import FirebasePushSender, PushSender, PushService

logger = logging.getLogger(__name__)


class DoorContext:
    """
    Everything the door core shares between the HTTP side and the device side.

    Door, card, enrollment and counter state are mutated from FastAPI worker
    threads, the MQTT callback thread and the offline sweeper. All such
    mutations go through ``transaction()`` (or hold ``lock``), which
    serialises them regardless of which thread they arrive on.
    """

    def __init__(self, db: DatabaseManager, publisher: Publisher,
                 push_sender: Optional[PushSender] = None,
                 alarm_threshold: Optional[int] = None,
                 offline_threshold_ms: Optional[int] = None):
        self.db = db
        self.publisher = publisher
        self.lock = threading.RLock()

        self.counter = FailedAttemptCounter(alarm_threshold or config.ALARM_THRESHOLD)
        self.devices = DeviceMonitor(offline_threshold_ms or config.ESP32_OFFLINE_THRESHOLD_MS)

        self.access_log = AccessLogService()
        self.doors = DoorService(self.access_log)
        self.auth = AuthenticationEngine(self.doors)
        self.enrollment = EnrollmentService(self.doors, self.access_log)
        # alerts go through publish() so they wait for the commit like everything else
        self.alerts = AlertService(self)
        self.push = PushService(db, push_sender or FirebasePushSender())
        self.users = AuthService()

        # per-thread outbox of the transaction in progress
        self._tx = threading.local()

    @contextmanager
    def transaction(self):
        """
        Hold the door lock for the lifetime of one DB transaction.

        Messages published inside the block are sent only once it commits,
        and the failed-attempt counter is put back if it rolls back. A nested
        block hands its messages to the outermost one.
        """
        with self.lock:
            if getattr(self._tx, "outbox", None) is not None:
                with self.db.get_connection() as conn:
                    yield conn
                return

            self._tx.outbox = []
            saved_count = self.counter.count
            try:
                with self.db.get_connection() as conn:
                    yield conn
            except Exception:
                self.counter.restore(saved_count)
                raise
            finally:
                outbox, self._tx.outbox = self._tx.outbox, None

            for topic, message in outbox:
                self._send(topic, message)

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        message = dict(payload)
        message.setdefault("timestamp", epoch_ms())
        outbox = getattr(self._tx, "outbox", None)
        if outbox is not None:
            outbox.append((topic, message))
        else:
            self._send(topic, message)

    def _send(self, topic: str, message: Dict[str, Any]) -> None:
        try:
            self.publisher.publish(topic, message)
        except Exception:
            logger.exception("Publish to %s failed", topic)

    def publish_whitelist(self, conn) -> None:
        """Push the full RFID whitelist to the door after any card change."""
        self.publish(Topic.CONFIG_RFID, {
            "action": "update_rfid",
            "whitelist": self.doors.get_rfid_whitelist(conn),
        })

    def reset_alarm(self) -> None:
        with self.lock:
            self.counter.reset()
