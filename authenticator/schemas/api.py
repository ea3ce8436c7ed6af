from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from authenticator.schemas.accounts import AuthMethod, PatternPoint


class ApiClientConfig(BaseModel):
    api_url: str
    app_id: str
    secret: str
    device_id: str

class VerificationData(BaseModel):
    device_id: str
    timestamp: str
    signature: str

class VerifyLoginRequest(BaseModel):
    """Body of POST {apiUrl}/api/centralized-auth/verify"""
    email: str
    app_id: str
    auth_method: str
    auth_token: str
    temp_token: str
    verification_data: VerificationData
    totp_code: Optional[str] = None

def _optional_text(v):
    if v is None or isinstance(v, str):
        return v
    return str(v)

def _optional_seconds(v):
    # Servers send expiresIn as an int, a float or a numeric string
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None

class ApiResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: Optional[str] = None
    data: Optional[Any] = None

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, v):
        return _optional_text(v)

class VerifyLoginResult(BaseModel):
    """
    Response of the verify endpoint: {success, message?, token?, expiresIn?}.
    Optional fields are coerced or dropped so they never mask the success flag.
    """
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    message: Optional[str] = None
    token: Optional[str] = None
    expires_in: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("expiresIn", "expires_in"),
    )

    @field_validator("message", "token", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return _optional_text(v)

    @field_validator("expires_in", mode="before")
    @classmethod
    def coerce_expiry(cls, v):
        return _optional_seconds(v)

class PlatformAuthResult(BaseModel):
    success: bool
    error: Optional[str] = None

class ApprovalState(str, Enum):
    RESOLVING = "resolving"
    MATCHED = "matched"
    NOT_FOUND = "not_found"
    INCOMPLETE = "incomplete"
    METHOD_SELECTED = "method_selected"
    VERIFYING = "verifying"
    APPROVED = "approved"
    DENIED = "denied"
    VERIFICATION_FAILED = "verification_failed"

TERMINAL_STATES = {
    ApprovalState.NOT_FOUND,
    ApprovalState.INCOMPLETE,
    ApprovalState.APPROVED,
    ApprovalState.DENIED,
    ApprovalState.VERIFICATION_FAILED,
}

class VerificationProof(BaseModel):
    """What the user supplied for the selected method. Unused fields stay None."""
    totp_code: Optional[str] = None
    pin: Optional[str] = None
    pattern: Optional[List[PatternPoint]] = None
    passkey: Optional[str] = None

class ApprovalResult(BaseModel):
    state: ApprovalState
    message: str
    method: Optional[AuthMethod] = None
    account_id: Optional[str] = None
    token: Optional[str] = None
    expires_in: Optional[float] = None

class AppLockType(str, Enum):
    PIN = "pin"
    PATTERN = "pattern"
    BIOMETRIC = "biometric"
    NONE = "none"

APP_LOCK_TIMEOUTS: List[int] = [0, 30, 60, 300, 900]

class AppLockConfig(BaseModel):
    enabled: bool = False
    type: AppLockType = AppLockType.NONE
    timeout: int = 60
