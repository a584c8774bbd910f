import math
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

RequestStatus = Literal["pending", "accepted", "rejected", "completed", "cancelled"]
TargetStatus = Literal["accepted", "rejected", "completed", "cancelled"]
AccountRole = Literal["client", "provider"]
Urgency = Literal["low", "medium", "high"]

MAX_PROVIDER_SKILLS = 5


class Position(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @field_validator("latitude", "longitude")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be a finite number")
        return value


class Provider(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    position: Position
    services: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list, max_length=MAX_PROVIDER_SKILLS)
    description: str = ""
    opening_hours: str = ""
    is_open: bool = True
    rating: float = 0.0
    owner_account_id: Optional[str] = None
    distance_km: Optional[float] = None
    synthetic: bool = False


class ProviderUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    position: Optional[Position] = None
    services: Optional[list[str]] = None
    skills: Optional[list[str]] = None
    description: Optional[str] = None
    opening_hours: Optional[str] = None
    is_open: Optional[bool] = None


class RequestLocation(Position):
    address: str = ""


class VehicleInfo(BaseModel):
    make: str
    model: str
    year: str = ""
    license_plate: str = ""


class ServiceRequest(BaseModel):
    id: str
    client_id: str
    client_name: str = ""
    client_phone: str = ""
    client_email: str = ""
    provider_id: str
    provider_name: str = ""
    description: str
    location: RequestLocation
    vehicle_info: Optional[VehicleInfo] = None
    urgency: Urgency = "medium"
    status: RequestStatus = "pending"
    created_at: str
    updated_at: str
    accepted_at: Optional[str] = None
    rejected_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None


class ServiceRequestCreate(BaseModel):
    provider_id: str
    description: str
    location: RequestLocation
    vehicle_info: Optional[VehicleInfo] = None
    urgency: Urgency = "medium"

    @field_validator("description")
    @classmethod
    def _description_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("description is required")
        return value.strip()


class StatusTransitionRequest(BaseModel):
    status: TargetStatus


class RequestStatusChange(BaseModel):
    id: str
    request_id: str
    actor_account_id: str
    from_status: str
    to_status: str
    created_at: str


class Account(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    role: AccountRole


class ProviderRegistration(BaseModel):
    address: str
    position: Position
    services: list[str] = Field(default_factory=list)
    description: str = ""


class AuthRegisterRequest(BaseModel):
    name: str
    email: str
    password: str = Field(min_length=6)
    phone: str
    role: AccountRole
    garage: Optional[ProviderRegistration] = None


class AuthLoginRequest(BaseModel):
    email: str
    password: str


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    account: Account
    provider: Optional[Provider] = None
    expires_at: str


class AuthMeResponse(BaseModel):
    account: Account
    provider: Optional[Provider] = None


class DeviceTokenRegisterRequest(BaseModel):
    device_token: str
    platform: Literal["android", "ios", "web"] = "android"


class NotificationRecord(BaseModel):
    id: str
    account_id: str
    title: str
    body: str
    category: Literal["request", "system"] = "system"
    read: bool = False
    created_at: str
    deep_link: Optional[str] = None
