# =======================================================================================
# app/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field
from .enums import Role, Platform

# ========== Device messages (MQTT, JSON) ==========

class DeviceMessage(BaseModel):
    """Common envelope. ``messageId`` is optional and used for de-duplication."""
    model_config = ConfigDict(extra="ignore")

    messageId: Optional[str] = None

class DoorAccessMessage(DeviceMessage):
    event: str = Field(..., min_length=1)
    rfidUid: Optional[str] = None
    method: Optional[str] = None

class DoorAlarmMessage(DeviceMessage):
    reason: str = "unknown"
    failCount: int = 0
    lastRfid: Optional[str] = None

class DoorStatusMessage(DeviceMessage):
    online: bool

class RfidCheckMessage(DeviceMessage):
    uid: Optional[str] = None
    uidHash: Optional[str] = None

class PinCheckMessage(DeviceMessage):
    pin: Optional[str] = None

class HeartbeatMessage(DeviceMessage):
    deviceId: str = Field(..., min_length=1)

class FireMessage(DeviceMessage):
    detected: bool = False
    location: Optional[str] = None

class GasMessage(DeviceMessage):
    level: float
    threshold: Optional[float] = None

class DoorStateMessage(DeviceMessage):
    status: Optional[str] = None
    state: Optional[str] = None
    actor: Optional[str] = None
    abnormal: bool = False

# ========== Auth ==========

class AuthRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=191)
    password: str = Field(..., min_length=1)
    role: Optional[Role] = None

class UserInfo(BaseModel):
    id: int
    username: str
    role: Role

class AuthResponse(BaseModel):
    token: Optional[str] = None
    message: Optional[str] = None
    user: Optional[UserInfo] = None

class UserListItem(UserInfo):
    createdAt: datetime

class PasswordChangeRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None

class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = None

class RoleUpdateRequest(BaseModel):
    role: Role

# ========== Door administration ==========

class PinUpdateRequest(BaseModel):
    # Shape is checked by PinValidator so the caller gets a readable 400.
    pin: Optional[Any] = None
    currentPin: Optional[Any] = None

class EnrollmentStartRequest(BaseModel):
    userId: Optional[int] = None
    confirmReplace: bool = False

class AddCardRequest(BaseModel):
    userId: Optional[int] = None
    uid: Optional[str] = None

class MessageResponse(BaseModel):
    message: str

# ========== Logs ==========

class LogUser(BaseModel):
    id: int
    username: str

class AccessLogItem(BaseModel):
    id: int
    event: str
    method: Optional[str] = None
    rfidUid: Optional[str] = None
    userId: Optional[int] = None
    timestamp: datetime
    user: Optional[LogUser] = None

class AccessLogPage(BaseModel):
    logs: List[AccessLogItem]
    total: int
    page: int
    totalPages: int

class DoorEventItem(BaseModel):
    id: int
    eventType: str
    actor: str
    timestamp: datetime

class DoorEventPage(BaseModel):
    logs: List[DoorEventItem]
    total: int
    page: int
    totalPages: int

# ========== Alerts / push ==========

class AlertItem(BaseModel):
    id: int
    type: str
    level: str
    message: str
    createdAt: datetime
    acknowledgedBy: Optional[LogUser] = None

class AlertPage(BaseModel):
    alerts: List[AlertItem]
    total: int
    page: int
    totalPages: int

class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)
    platform: Platform = "web"

class PushTestRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    userId: Optional[int] = None

# ========== Health ==========

class HealthResponse(BaseModel):
    status: str                 # "ok" | "error"
    dataAvailable: bool
    mqttConnected: bool = False
    message: Optional[str] = None
