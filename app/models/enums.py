# =======================================================================================
# app/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
Role = Literal["ADMIN", "USER"]
CardStatus = Literal["ACTIVE", "REVOKED"]
AlertType = Literal["fire", "gas", "door"]
AlertLevel = Literal["INFO", "WARNING", "CRITICAL"]
Platform = Literal["web", "android"]
HistoryFilter = Literal["granted", "denied"]

class AccessEvent(str, Enum):
    """Event tags written to the door access log."""
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"
    ALARM_TRIGGERED = "alarm_triggered"
    DOOR_OPENED = "door_opened"
    DOOR_CLOSED = "door_closed"
    # administrative
    ENROLLMENT_SUCCESS = "enrollment_success"
    ENROLLMENT_FAILED = "enrollment_failed"
    CARD_REPORTED_LOST = "card_reported_lost"

class AccessMethod(str, Enum):
    """Method tags. Devices may also report free-form actor strings."""
    PIN = "pin"
    RFID = "rfid"
    INVALID_PIN = "invalid_pin"
    INVALID_RFID = "invalid_rfid"
    CARD_REVOKED = "card_revoked"
    WEB_ADMIN = "web_admin"
    PHYSICAL_BUTTON = "physical_button"
    SYSTEM = "system"
    ENROLLMENT = "enrollment"
    USER_REPORT = "user_report"

# Events shown in the door history view. Card management stays out of it.
HISTORY_EVENTS = (
    AccessEvent.DOOR_OPENED.value,
    AccessEvent.DOOR_CLOSED.value,
    AccessEvent.ACCESS_GRANTED.value,
    AccessEvent.ACCESS_DENIED.value,
    AccessEvent.ALARM_TRIGGERED.value,
)

HISTORY_FILTERS = {
    "granted": (AccessEvent.DOOR_OPENED.value, AccessEvent.ACCESS_GRANTED.value),
    "denied": (AccessEvent.ACCESS_DENIED.value, AccessEvent.ALARM_TRIGGERED.value),
}

class EnrollmentState(Enum):
    IDLE = "IDLE"
    ENROLLING = "ENROLLING"

class Topic:
    """MQTT topics shared with the door controller and web clients."""
    # inbound
    FIRE = "home/sensor/fire"
    GAS = "home/sensor/gas"
    DOOR_STATE = "home/door/state"
    HEARTBEAT = "home/device/heartbeat"
    DOOR_ACCESS = "door/access"
    DOOR_ALARM = "door/alarm"
    DOOR_STATUS = "door/status"
    RFID_CHECK = "door/rfid/check"
    RFID_AUTH = "door/rfid/auth"
    PIN_CHECK = "door/pin/check"
    # outbound
    ENROLLMENT_RESULT = "door/enrollment/result"
    RFID_RESULT = "door/rfid/result"
    PIN_RESULT = "door/pin/result"
    CONFIG_RFID = "door/config/rfid"
    CONFIG_PIN = "door/config/pin"
    COMMAND = "door/command"
    ENROLLMENT = "door/enrollment"
    ALERT_NEW = "home/alert/new"
    RFID_LOST = "home/rfid/lost"

INBOUND_TOPICS = (
    Topic.FIRE, Topic.GAS, Topic.DOOR_STATE, Topic.HEARTBEAT,
    Topic.DOOR_ACCESS, Topic.DOOR_ALARM, Topic.DOOR_STATUS,
    Topic.RFID_CHECK, Topic.RFID_AUTH, Topic.PIN_CHECK,
    Topic.ENROLLMENT_RESULT,
)
