"""
Pydantic models for Dashboard API request/response types.

Field names follow the JSON the browser client sends and expects
(camelCase), so the models use aliases where Python names differ.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthCheck(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Overall system status")
    version: str = Field(default="0.1.0", description="API version")
    timestamp: datetime = Field(default_factory=datetime.now, description="Check timestamp")
    services: dict[str, str] = Field(
        default_factory=dict, description="Individual service statuses"
    )


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    success: bool = False
    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human readable message")
    details: list[str] | None = Field(None, description="Validation details")


# =============================================================================
# Keys
# =============================================================================


class VapidPublicKeyResponse(BaseModel):
    publicKey: str


class VapidKeyPairResponse(BaseModel):
    publicKey: str
    privateKey: str
    message: str
    warning: str


# =============================================================================
# Subscriptions
# =============================================================================


class SubscriptionKeys(BaseModel):
    p256dh: str | None = None
    auth: str | None = None


class BrowserSubscription(BaseModel):
    """Subscription JSON as produced by the browser push manager."""

    model_config = ConfigDict(extra="allow")

    endpoint: str | None = None
    expirationTime: int | None = None
    keys: SubscriptionKeys | None = None


class SubscribeRequest(BaseModel):
    subscription: BrowserSubscription | None = None
    deviceId: str | None = Field(None, description="Stable device identifier")
    farmId: str | None = Field(None, description="Optional farm scope")


class SubscriptionOut(BaseModel):
    id: str
    userId: str
    deviceId: str
    farmId: str | None = None
    endpoint: str
    isActive: bool
    consecutiveFailureCount: int
    createdAt: str | None = None
    updatedAt: str | None = None
    lastValidatedAt: str | None = None


class SubscribeResponse(BaseModel):
    message: str
    subscription: SubscriptionOut
    created: bool


class SubscriptionListResponse(BaseModel):
    subscriptions: list[SubscriptionOut]


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None
    farmId: str | None = None


class UnsubscribeResponse(BaseModel):
    message: str
    deleted: int


class CleanupRequest(BaseModel):
    realTimeCheck: bool = False


class CleanupResponse(BaseModel):
    message: str
    cleanedCount: int
    validCount: int
    totalChecked: int
    checkType: str
