#backend/irrigation/schemas.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any

# Request bodies keep required fields Optional so that a missing field is
# answered with 400 by the handler instead of a 422 validation error.

class CamelModel(BaseModel):
    class Config:
        populate_by_name = True

# --- Auth ---
class SignupRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None

class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")

class DeviceAuthRequest(CamelModel):
    device_id: Optional[str] = Field(None, alias="deviceId")
    firmware_version: Optional[str] = Field(None, alias="firmwareVersion")

class UserResponse(CamelModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool = Field(True, alias="isActive")
    permissions: List[str] = []

    class Config:
        from_attributes = True
        populate_by_name = True

# --- Devices & Zones ---
class DeviceCreate(CamelModel):
    device_id: Optional[str] = Field(None, alias="deviceId")
    owner_user_id: Optional[int] = Field(None, alias="ownerUserId")

class ZoneCreate(CamelModel):
    name: Optional[str] = None
    plant_type: Optional[str] = Field(None, alias="plantType")
    soil_type: Optional[str] = Field(None, alias="soilType")
    device_id: Optional[str] = Field(None, alias="deviceId")
    location: Optional[Dict[str, Any]] = None
    area: float = 0.0
    plant_count: int = Field(0, alias="plantCount")
    ai_enabled: bool = Field(False, alias="aiEnabled")
    description: str = ""

class ZoneUpdate(CamelModel):
    name: Optional[str] = None
    plant_type: Optional[str] = Field(None, alias="plantType")
    soil_type: Optional[str] = Field(None, alias="soilType")
    location: Optional[Dict[str, Any]] = None
    area: Optional[float] = None
    plant_count: Optional[int] = Field(None, alias="plantCount")
    ai_enabled: Optional[bool] = Field(None, alias="aiEnabled")
    description: Optional[str] = None
    status: Optional[str] = None

# --- Sensor data ---
class SensorBatch(CamelModel):
    global_data: Dict[str, Any] = Field(default_factory=dict, alias="global")
    locals: List[Dict[str, Any]] = []

class SensorDataCreate(CamelModel):
    """
    Accepts both {deviceId, timestamp, sensorData: {global, locals}} and the
    unwrapped {deviceId, timestamp, global, locals} the firmware posts.
    """
    device_id: Optional[str] = Field(None, alias="deviceId")
    timestamp: Optional[float] = None
    sensor_data: Optional[SensorBatch] = Field(None, alias="sensorData")
    global_data: Optional[Dict[str, Any]] = Field(None, alias="global")
    locals: Optional[List[Dict[str, Any]]] = None

    def batch(self) -> Optional[SensorBatch]:
        if self.sensor_data is not None:
            return self.sensor_data
        if self.global_data is None and self.locals is None:
            return None
        return SensorBatch(global_data=self.global_data or {}, locals=self.locals or [])

# --- Suggestions & assistant ---
class Suggestion(CamelModel):
    id: str
    type: str
    message: str
    zone_name: str = Field(..., alias="zoneName")
    action: Optional[str] = None
    priority: Optional[str] = None
    acknowledged: bool = False

class AckRequest(CamelModel):
    suggestion_id: Optional[str] = Field(None, alias="suggestionId")

class AcknowledgmentResponse(CamelModel):
    id: int
    suggestion_id: str = Field(..., alias="suggestionId")
    user_id: int = Field(..., alias="userId")
    acknowledged_at: int = Field(..., alias="acknowledgedAt")
    status: str

    class Config:
        from_attributes = True
        populate_by_name = True

class ChatRequest(CamelModel):
    message: Optional[str] = None
