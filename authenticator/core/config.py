from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "Authenticator"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Storage
    STORAGE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    STORAGE_NAMESPACE: str = "authenticator"
    # Optional 32 byte url-safe base64 encoded Fernet key; values are stored encrypted when set
    STORAGE_ENCRYPTION_KEY: Optional[str] = None

    # Storage keys
    ACCOUNTS_STORAGE_KEY: str = "@authenticator_accounts"
    ACCOUNTS_STORAGE_VERSION: str = "1.0"
    PIN_STORAGE_KEY: str = "@pin_credentials"
    PATTERN_STORAGE_KEY: str = "@pattern_credentials"
    PASSKEY_PREFIX: str = "passkey_"
    DEVICE_ID_KEY: str = "@device_id"
    API_CLIENT_CONFIG_KEY: str = "@api_client_config"
    APP_LOCK_ENABLED_KEY: str = "@app_lock_enabled"
    APP_LOCK_TYPE_KEY: str = "@app_lock_type"
    APP_LOCK_TIMEOUT_KEY: str = "@app_lock_timeout"
    APP_LOCK_LAST_ACTIVITY_KEY: str = "@last_activity"
    APP_LOCK_PIN_KEY: str = "app_lock_pin"
    APP_LOCK_PATTERN_KEY: str = "app_lock_pattern"

    # TOTP
    TOTP_DEFAULT_DIGITS: int = 6
    TOTP_DEFAULT_PERIOD: int = 30
    TOTP_SECRET_LENGTH: int = 32

    # Local credentials
    PIN_MIN_LENGTH: int = 4
    PIN_MAX_LENGTH: int = 6
    PASSKEY_MIN_LENGTH: int = 6
    PATTERN_MIN_POINTS: int = 4
    PATTERN_GRID_SIZE: int = 3

    # Remote verification service
    API_TIMEOUT_SECONDS: float = 10.0
    VERIFY_ENDPOINT: str = "/api/centralized-auth/verify"
    SYNC_METHODS_ENDPOINT: str = "/api/centralized-auth/sync-methods"
    PENDING_REQUESTS_ENDPOINT: str = "/api/auth/pending"
    APPROVE_ENDPOINT: str = "/api/auth/approve"
    REJECT_ENDPOINT: str = "/api/auth/reject"

settings = Settings()
