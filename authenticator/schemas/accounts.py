import time
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _now_millis() -> int:
    return int(time.time() * 1000)

class AuthMethod(str, Enum):
    TOTP = "totp"
    BIOMETRIC = "biometric"
    PASSKEY = "passkey"
    SCREENLOCK = "screenlock"
    PIN = "pin"
    PATTERN = "pattern"

class CredentialKind(str, Enum):
    PIN = "pin"
    PATTERN = "pattern"
    PASSKEY = "passkey"

# Methods whose secret is managed by the app, keyed by account id
CREDENTIAL_METHODS = {
    AuthMethod.PIN: CredentialKind.PIN,
    AuthMethod.PATTERN: CredentialKind.PATTERN,
    AuthMethod.PASSKEY: CredentialKind.PASSKEY,
}

# Account Schemas
class AccountBase(BaseModel):
    issuer: str = ""
    account_label: str
    secret: str
    digits: int = 6
    period: int = 30
    auth_methods: List[AuthMethod] = Field(default_factory=lambda: [AuthMethod.TOTP])
    preferred_auth_method: Optional[AuthMethod] = None
    app_id: Optional[str] = None
    api_url: Optional[str] = None
    is_centralized_auth: bool = False

class AccountDraft(AccountBase):
    """Account fields supplied at enrollment, before id and createdAt are assigned."""
    pass

class Account(AccountBase):
    id: str
    created_at: int = Field(default_factory=_now_millis)

    def missing_remote_fields(self) -> List[str]:
        missing = []
        if not self.api_url:
            missing.append("api_url")
        if not self.app_id:
            missing.append("app_id")
        if not self.secret:
            missing.append("secret")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_remote_fields()

    @property
    def default_auth_method(self) -> AuthMethod:
        if self.preferred_auth_method and self.preferred_auth_method in self.auth_methods:
            return self.preferred_auth_method
        return self.auth_methods[0] if self.auth_methods else AuthMethod.TOTP

class StorageData(BaseModel):
    accounts: List[Account] = Field(default_factory=list)
    version: str = "1.0"

# Credential Schemas
class PatternPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int
    col: int

class PinCredential(BaseModel):
    account_id: str
    hashed_value: str
    created_at: int = Field(default_factory=_now_millis)

class PatternCredential(BaseModel):
    account_id: str
    hashed_value: str
    grid_size: int = 3
    created_at: int = Field(default_factory=_now_millis)

class PasskeyCredential(BaseModel):
    id: str
    account_id: str
    name: str = "My Passkey"
    hashed_value: str
    created_at: int = Field(default_factory=_now_millis)

# TOTP / signing
class TOTPUriData(BaseModel):
    issuer: Optional[str] = None
    account: str
    secret: str
    digits: int = 6
    period: int = 30
    algorithm: str = "SHA1"

class DeviceSignature(BaseModel):
    timestamp: str
    signature: str
    device_id: str

    @property
    def auth_token(self) -> str:
        return f"{self.timestamp}:{self.signature}"

# QR payloads
class SetupQRPayload(BaseModel):
    """
    Centralized auth setup QR:
    {"type": "tni-bouquet-account", "issuer": ..., "account": ..., "secret": ...,
     "app_id": ..., "apiUrl": ...}
    """
    type: str
    issuer: str = Field(..., min_length=1)
    account: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    app_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("app_id", "appId"),
        serialization_alias="app_id",
    )
    api_url: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("apiUrl", "api_url"),
        serialization_alias="apiUrl",
    )

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in ("tni-bouquet-account", "account"):
            raise ValueError("Not a centralized auth setup payload")
        return v

    @field_validator("secret")
    @classmethod
    def normalize_secret(cls, v: str) -> str:
        return "".join(v.split()).upper()

class LoginApprovalRequest(BaseModel):
    """One inbound approval flow, from a login QR code or push payload. Never persisted."""
    email: str = Field(..., min_length=1)
    temp_token: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("temp_token", "tempToken"),
    )
    app_id: str = Field(
        ..., min_length=1,
        validation_alias=AliasChoices("app_id", "appId"),
    )
    timestamp: int = Field(default_factory=_now_millis)

    @field_validator("timestamp", mode="before")
    @classmethod
    def default_timestamp(cls, v):
        return _now_millis() if v is None else v
