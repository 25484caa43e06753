# =======================================================================================
# app/services/event_router.py - Inbound Device Message Dispatch
# =======================================================================================
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PayloadError

from ..config import config
from ..models.enums import AccessEvent, AccessMethod, EnrollmentState, Topic
from ..models.schemas import (
    DoorAccessMessage, DoorAlarmMessage, DoorStateMessage, DoorStatusMessage,
    FireMessage, GasMessage, HeartbeatMessage, PinCheckMessage, RfidCheckMessage,
)
from ..utils.hashing import hash_uid, normalize_uid
from ..utils.validators import PinValidator
from .authentication import AuthResult
from .context import DoorContext

logger = logging.getLogger(__name__)

Notification = Tuple[str, str]


class EventRouter:
    """Routes device messages to enrollment, authentication, logging and alerts."""

    def __init__(self, context: DoorContext):
        self.context = context
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            Topic.FIRE: self.handle_fire,
            Topic.GAS: self.handle_gas,
            Topic.DOOR_STATE: self.handle_door_state,
            Topic.HEARTBEAT: self.handle_heartbeat,
            Topic.DOOR_ACCESS: self.handle_door_access,
            Topic.DOOR_ALARM: self.handle_door_alarm,
            Topic.DOOR_STATUS: self.handle_door_status,
            Topic.RFID_CHECK: self.handle_rfid_check,
            Topic.RFID_AUTH: self.handle_rfid_auth,
            Topic.PIN_CHECK: self.handle_pin_check,
            Topic.ENROLLMENT_RESULT: self.handle_enrollment_echo,
        }

        # ----------------------------------------------------------------------
        # Duplicate cache
        # ----------------------------------------------------------------------
        # key = messageId, value = time first seen
        self._seen: "OrderedDict[str, float]" = OrderedDict()
        self._seen_max = config.DEDUP_CACHE_SIZE
        self._seen_lock = threading.Lock()

        # push notifications are sent after the handler's transaction is done
        self._pending = threading.local()

    # ----------------------------------------------------------------------
    # Entry point
    # ----------------------------------------------------------------------
    def dispatch(self, topic: str, payload: Any) -> bool:
        """
        Handle one inbound message. Returns False if it was ignored.

        A ``messageId`` is remembered only once its handler has finished, so
        a redelivery after a failure is processed again.
        """
        handler = self._handlers.get(topic)
        if handler is None:
            logger.debug("No handler for topic %s", topic)
            return False
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-object payload on %s: %r", topic, payload)
            return False
        message_id = payload.get("messageId")
        if self._is_duplicate(message_id):
            logger.info("Duplicate message %s on %s ignored", message_id, topic)
            return False

        logger.debug("MQTT [%s]: %s", topic, payload)
        self._pending.items = []
        done = False
        try:
            handler(payload)
            done = True
        except PayloadError as e:
            logger.warning("Invalid payload on %s: %s", topic, e.errors())
        except Exception:
            logger.exception("Error handling message on %s", topic)
        finally:
            notes: List[Notification] = self._pending.items
            self._pending.items = None

        if done:
            self._remember(message_id)
            for title, body in notes:
                self.context.push.send_to_all(title, body)
        return True

    def _is_duplicate(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        with self._seen_lock:
            if message_id in self._seen:
                self._seen.move_to_end(message_id)
                return True
        return False

    def _remember(self, message_id: Optional[str]) -> None:
        if not message_id:
            return
        with self._seen_lock:
            self._seen[message_id] = time.time()
            while len(self._seen) > self._seen_max:
                self._seen.popitem(last=False)

    def _notify(self, title: str, body: str) -> None:
        items = getattr(self._pending, "items", None)
        if items is None:
            self.context.push.send_to_all(title, body)
        else:
            items.append((title, body))

    # ----------------------------------------------------------------------
    # Door RFID / PIN
    # ----------------------------------------------------------------------
    def handle_rfid_check(self, payload: Dict[str, Any]) -> None:
        """A card at the reader: enrollment input while enrolling, otherwise authentication."""
        msg = RfidCheckMessage.model_validate(payload)
        with self.context.lock:
            with self.context.db.get_connection() as conn:
                enrolling = self.context.enrollment.state(conn) is EnrollmentState.ENROLLING
            if enrolling:
                self._enroll(msg)
            else:
                self._authenticate_card(msg)

    def handle_rfid_auth(self, payload: Dict[str, Any]) -> None:
        self._authenticate_card(RfidCheckMessage.model_validate(payload))

    def handle_pin_check(self, payload: Dict[str, Any]) -> None:
        try:
            pin = PinCheckMessage.model_validate(payload).pin
        except PayloadError:
            pin = None
        if not PinValidator.is_valid(pin):
            self.context.publish(Topic.PIN_RESULT, {"allow": False, "reason": "invalid_request"})
            return

        try:
            with self.context.transaction() as conn:
                result = self.context.auth.verify_pin(conn, pin)
                fail_count = self._record_outcome(conn, result)
        except Exception:
            self.context.publish(Topic.PIN_RESULT, {"allow": False, "reason": "server_error"})
            raise

        self.context.publish(Topic.PIN_RESULT, self.create_result_message(result, failCount=fail_count))

    def _authenticate_card(self, msg: RfidCheckMessage) -> None:
        if not msg.uid and not msg.uidHash:
            self.context.publish(Topic.RFID_RESULT, {"uid": "", "allow": False, "reason": "invalid_request"})
            return

        uid = normalize_uid(msg.uid) if msg.uid else None
        uid_hash = msg.uidHash.lower() if msg.uidHash else hash_uid(uid)
        try:
            with self.context.transaction() as conn:
                result = self.context.auth.authenticate_rfid(conn, uid_hash)
                self._record_outcome(conn, result, rfid_uid=uid)
        except Exception:
            self.context.publish(Topic.RFID_RESULT, {"uid": uid or "", "allow": False, "reason": "server_error"})
            raise

        self.context.publish(Topic.RFID_RESULT, self.create_result_message(
            result, uid=uid or "", username=result.username or "Unknown",
        ))
        if not result.granted and result.reason == "card_revoked":
            self._notify("Access denied", f"{result.username or 'Unknown'} - {result.reason}")

    def _record_outcome(self, conn, result: AuthResult, rfid_uid: Optional[str] = None) -> int:
        """Log the attempt, feed the counter and raise the alarm at the threshold."""
        counter = self.context.counter
        door = self.context.doors.get_or_create_door(conn)
        self.context.access_log.append(
            conn,
            door_id=door["id"],
            event=AccessEvent.ACCESS_GRANTED if result.granted else AccessEvent.ACCESS_DENIED,
            method=result.method,
            user_id=result.user_id,
            rfid_uid=rfid_uid,
        )

        count = counter.record_attempt(result.granted)
        if counter.should_trigger_alarm():
            self._raise_alarm(
                conn, door["id"],
                reason="repeated failed authentication",
                method=AccessMethod.SYSTEM.value,
                fail_count=count,
                rfid_uid=rfid_uid,
            )
            if config.ALARM_CLEAR_ON_TRIGGER:
                counter.reset()
        return count

    def _raise_alarm(self, conn, door_id: str, reason: str, method: str,
                     fail_count: int, rfid_uid: Optional[str] = None) -> None:
        self.context.access_log.append(
            conn, door_id=door_id, event=AccessEvent.ALARM_TRIGGERED,
            method=method or AccessMethod.SYSTEM.value, rfid_uid=rfid_uid,
        )
        self.context.alerts.create_alert(
            conn, "door", "CRITICAL", f"Door alarm: {reason} ({fail_count} failed attempts)",
        )
        self._notify("Door alarm!", reason)

    def _enroll(self, msg: RfidCheckMessage) -> None:
        logger.info("Enrollment scan received: %s", msg.uid)
        if not msg.uid or not msg.uid.strip():
            self.context.publish(Topic.ENROLLMENT_RESULT, {"success": False, "error": "Invalid UID"})
            return

        try:
            with self.context.transaction() as conn:
                result = self.context.enrollment.process_scan(conn, msg.uid)
                if result.success:
                    self.context.publish_whitelist(conn)
        except Exception as e:
            self.context.publish(Topic.ENROLLMENT_RESULT, {"success": False, "error": str(e)})
            raise

        if result.success:
            self.context.publish(Topic.ENROLLMENT_RESULT, {
                "success": True, "message": result.message, "username": result.username,
            })
            self._notify("RFID card enrolled", result.message)
        else:
            self.context.publish(Topic.ENROLLMENT_RESULT, {
                "success": False, "error": result.message, "holder": result.holder,
            })

    # ----------------------------------------------------------------------
    # Door reports
    # ----------------------------------------------------------------------
    def handle_door_access(self, payload: Dict[str, Any]) -> None:
        """The controller decided on its own and reports the outcome."""
        msg = DoorAccessMessage.model_validate(payload)
        method = msg.method or AccessMethod.SYSTEM.value
        uid = normalize_uid(msg.rfidUid) if msg.rfidUid else None

        with self.context.transaction() as conn:
            door = self.context.doors.get_or_create_door(conn)
            self.context.access_log.append(conn, door_id=door["id"], event=msg.event, method=method, rfid_uid=uid)
            owner = self.context.doors.get_user_by_rfid_hash(conn, hash_uid(uid)) if uid else None

        if msg.event == AccessEvent.ACCESS_DENIED.value:
            username = owner["username"] if owner else (uid or "Unknown")
            self._notify("Access denied", f"{username} - {method}")

    def handle_door_alarm(self, payload: Dict[str, Any]) -> None:
        msg = DoorAlarmMessage.model_validate(payload)
        uid = normalize_uid(msg.lastRfid) if msg.lastRfid else None
        with self.context.transaction() as conn:
            door = self.context.doors.get_or_create_door(conn)
            self._raise_alarm(conn, door["id"], reason=msg.reason, method=msg.reason,
                              fail_count=msg.failCount, rfid_uid=uid)

    def handle_door_status(self, payload: Dict[str, Any]) -> None:
        msg = DoorStatusMessage.model_validate(payload)
        with self.context.transaction() as conn:
            self.context.doors.update_status(conn, msg.online)
        self.context.devices.heartbeat("door")

    def handle_door_state(self, payload: Dict[str, Any]) -> None:
        msg = DoorStateMessage.model_validate(payload)
        state = msg.status or msg.state
        actor = msg.actor or AccessMethod.SYSTEM.value

        with self.context.transaction() as conn:
            door = self.context.doors.get_or_create_door(conn)
            if state:
                self.context.access_log.record_door_event(conn, state, msg.actor)
                event = AccessEvent.DOOR_OPENED if state == "open" else AccessEvent.DOOR_CLOSED
                self.context.access_log.append(conn, door_id=door["id"], event=event, method=actor)
            if msg.abnormal:
                alert = self.context.alerts.create_alert(
                    conn, "door", "WARNING", f"Abnormal door access: {state} by {msg.actor or 'unknown'}",
                )
                self._notify("Door alert!", alert["message"])

    def handle_enrollment_echo(self, payload: Dict[str, Any]) -> None:
        logger.debug("Enrollment result echoed by broker: %s", payload)

    # ----------------------------------------------------------------------
    # Sensors / liveness
    # ----------------------------------------------------------------------
    def handle_fire(self, payload: Dict[str, Any]) -> None:
        msg = FireMessage.model_validate(payload)
        if not msg.detected:
            return
        with self.context.transaction() as conn:
            alert = self.context.alerts.create_alert(
                conn, "fire", "CRITICAL", f"Fire detected at {msg.location or 'unknown location'}",
            )
        self._notify("Fire alert!", alert["message"])

    def handle_gas(self, payload: Dict[str, Any]) -> None:
        msg = GasMessage.model_validate(payload)
        threshold = msg.threshold if msg.threshold is not None else config.GAS_DEFAULT_THRESHOLD
        if msg.level <= threshold:
            return
        level = "CRITICAL" if msg.level > config.GAS_CRITICAL_LEVEL else "WARNING"
        with self.context.transaction() as conn:
            alert = self.context.alerts.create_alert(
                conn, "gas", level, f"Gas leak detected: {msg.level:g} ppm",
            )
        self._notify("Gas leak!", alert["message"])

    def handle_heartbeat(self, payload: Dict[str, Any]) -> None:
        msg = HeartbeatMessage.model_validate(payload)
        self.context.devices.heartbeat(msg.deviceId)

    def sweep_offline_devices(self, now: Optional[float] = None) -> List[str]:
        """One offline notification per silent device; the door is also marked offline."""
        offline = self.context.devices.sweep(now)
        for device_id in offline:
            if device_id == "door":
                try:
                    with self.context.transaction() as conn:
                        self.context.doors.update_status(conn, False)
                except Exception:
                    logger.exception("Could not mark door offline")
            logger.warning("Device %s is offline", device_id)
            self.context.push.send_to_all("Device offline", f"ESP32 {device_id} is offline")
        return offline

    # ----------------------------------------------------------------------
    # Response builder
    # ----------------------------------------------------------------------
    @staticmethod
    def create_result_message(result: AuthResult, **extra: Any) -> Dict[str, Any]:
        """JSON-serializable reply for the door controller."""
        message: Dict[str, Any] = {"allow": result.granted, "method": result.method, **extra}
        if result.reason:
            message["reason"] = result.reason
        return message
