import logging
import time
from typing import Optional, Sequence

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.core.exceptions import ValidationError
from authenticator.core.pattern import pattern_to_string, validate_pattern
from authenticator.db.store import KeyValueStore
from authenticator.schemas.accounts import PatternPoint
from authenticator.schemas.api import APP_LOCK_TIMEOUTS, AppLockConfig, AppLockType

logger = logging.getLogger(__name__)


class AppLockService:
    """
    App-level lock, independent of per-account credentials.
    Lockout policy after repeated failures is left to the caller.
    """
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_config(self) -> AppLockConfig:
        enabled = await self.store.get(settings.APP_LOCK_ENABLED_KEY)
        lock_type = await self.store.get(settings.APP_LOCK_TYPE_KEY)
        timeout = await self.store.get(settings.APP_LOCK_TIMEOUT_KEY)

        try:
            parsed_type = AppLockType(lock_type) if lock_type else AppLockType.NONE
        except ValueError:
            parsed_type = AppLockType.NONE

        return AppLockConfig(
            enabled=enabled == "true",
            type=parsed_type,
            timeout=int(timeout) if timeout and timeout.isdigit() else 60,
        )

    async def set_config(
        self,
        enabled: Optional[bool] = None,
        lock_type: Optional[AppLockType] = None,
        timeout: Optional[int] = None
    ) -> AppLockConfig:
        if timeout is not None and timeout not in APP_LOCK_TIMEOUTS:
            raise ValidationError(f"timeout must be one of {APP_LOCK_TIMEOUTS}")

        if enabled is not None:
            await self.store.set(settings.APP_LOCK_ENABLED_KEY, "true" if enabled else "false")
        if lock_type is not None:
            await self.store.set(settings.APP_LOCK_TYPE_KEY, AppLockType(lock_type).value)
        if timeout is not None:
            await self.store.set(settings.APP_LOCK_TIMEOUT_KEY, str(timeout))
        return await self.get_config()

    async def set_pin(self, pin: str) -> None:
        await self.store.set(settings.APP_LOCK_PIN_KEY, security.hash_credential(pin))

    async def verify_pin(self, pin: str) -> bool:
        stored = await self.store.get(settings.APP_LOCK_PIN_KEY)
        return bool(stored) and security.verify_credential(pin, stored)

    async def set_pattern(self, points: Sequence[PatternPoint]) -> None:
        if not validate_pattern(points, settings.PATTERN_GRID_SIZE):
            raise ValidationError("Invalid pattern. Must have at least 4 unique points within grid bounds.")
        await self.store.set(settings.APP_LOCK_PATTERN_KEY, security.hash_credential(pattern_to_string(points)))

    async def verify_pattern(self, points: Sequence[PatternPoint]) -> bool:
        stored = await self.store.get(settings.APP_LOCK_PATTERN_KEY)
        return bool(stored) and security.verify_credential(pattern_to_string(points), stored)

    async def has_credentials(self, lock_type: AppLockType) -> bool:
        if lock_type == AppLockType.PIN:
            return bool(await self.store.get(settings.APP_LOCK_PIN_KEY))
        if lock_type == AppLockType.PATTERN:
            return bool(await self.store.get(settings.APP_LOCK_PATTERN_KEY))
        # Biometrics use device enrollment
        return lock_type == AppLockType.BIOMETRIC

    async def record_activity(self, now: Optional[float] = None) -> None:
        millis = int((now if now is not None else time.time()) * 1000)
        await self.store.set(settings.APP_LOCK_LAST_ACTIVITY_KEY, str(millis))

    async def get_last_activity(self, now: Optional[float] = None) -> float:
        stored = await self.store.get(settings.APP_LOCK_LAST_ACTIVITY_KEY)
        if stored and stored.isdigit():
            return int(stored) / 1000
        return now if now is not None else time.time()

    async def should_lock(self, now: Optional[float] = None) -> bool:
        now = now if now is not None else time.time()
        config = await self.get_config()

        if not config.enabled or config.type == AppLockType.NONE:
            return False
        if config.timeout == 0:
            return True

        elapsed = now - await self.get_last_activity(now)
        return elapsed >= config.timeout

    async def clear_credentials(self) -> None:
        await self.store.delete(settings.APP_LOCK_PIN_KEY)
        await self.store.delete(settings.APP_LOCK_PATTERN_KEY)

    async def reset(self) -> None:
        for key in (
            settings.APP_LOCK_ENABLED_KEY,
            settings.APP_LOCK_TYPE_KEY,
            settings.APP_LOCK_TIMEOUT_KEY,
            settings.APP_LOCK_LAST_ACTIVITY_KEY,
        ):
            await self.store.delete(key)
        await self.clear_credentials()
        logger.info("App lock reset")
