# =======================================================================================
# app/services/__init__.py - Services Package
# =======================================================================================
from .access_log import AccessLogService
from .alert_service import AlertService
from .attempt_counter import FailedAttemptCounter
from .auth_service import AuthService
from .authentication import AuthenticationEngine, AuthResult
from .context import DoorContext
from .device_monitor import DeviceMonitor
from .door_service import DoorService
from .enrollment import EnrollmentResult, EnrollmentService
from .event_router import EventRouter
from .push_service import FirebasePushSender, PushService

__all__ = [
    "AccessLogService", "AlertService", "FailedAttemptCounter", "AuthService",
    "AuthenticationEngine", "AuthResult", "DoorContext", "DeviceMonitor", "DoorService",
    "EnrollmentResult", "EnrollmentService", "EventRouter", "FirebasePushSender", "PushService",
]
