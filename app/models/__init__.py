# =======================================================================================
# app/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *

__all__ = [
    "DeviceMessage", "DoorAccessMessage", "DoorAlarmMessage", "DoorStatusMessage",
    "RfidCheckMessage", "PinCheckMessage", "HeartbeatMessage", "FireMessage",
    "GasMessage", "DoorStateMessage", "AuthRequest", "AuthResponse", "UserInfo",
    "UserListItem", "PasswordChangeRequest", "ProfileUpdateRequest", "RoleUpdateRequest",
    "PinUpdateRequest", "EnrollmentStartRequest", "AddCardRequest", "MessageResponse",
    "LogUser", "AccessLogItem", "AccessLogPage", "DoorEventItem", "DoorEventPage", "AlertItem",
    "AlertPage", "PushTokenRequest", "PushTestRequest",
    "HealthResponse", "Role", "CardStatus", "AlertType", "AlertLevel", "Platform",
    "AccessEvent", "AccessMethod", "EnrollmentState", "Topic", "INBOUND_TOPICS",
    "HISTORY_EVENTS", "HISTORY_FILTERS",
]
