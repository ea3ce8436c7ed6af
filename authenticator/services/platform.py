import logging
from abc import ABC, abstractmethod

from authenticator.schemas.api import PlatformAuthResult

logger = logging.getLogger(__name__)


class PlatformAuthenticator(ABC):
    """
    Abstract base class for OS-level authentication (biometric sensor,
    device screen lock). The app never sees the enrolled credential.
    """
    @abstractmethod
    async def has_biometric_hardware(self) -> bool:
        pass

    @abstractmethod
    async def is_biometric_enrolled(self) -> bool:
        pass

    @abstractmethod
    async def prompt(self, message: str, allow_device_fallback: bool) -> PlatformAuthResult:
        """
        Show the platform prompt. allow_device_fallback lets the user fall back
        to the device PIN/password instead of biometrics.
        """
        pass

    async def is_biometric_available(self) -> bool:
        return await self.has_biometric_hardware() and await self.is_biometric_enrolled()

    async def is_screen_lock_available(self) -> bool:
        # Enrollment is checked by the prompt itself when falling back to device credentials
        return await self.has_biometric_hardware()

    async def authenticate_with_biometrics(self, message: str = "Authenticate to continue") -> PlatformAuthResult:
        if not await self.is_biometric_available():
            return PlatformAuthResult(success=False, error="Biometric authentication is not available")
        return await self.prompt(message, allow_device_fallback=False)

    async def authenticate_with_screen_lock(self, message: str = "Unlock to access your account") -> PlatformAuthResult:
        return await self.prompt(message, allow_device_fallback=True)


class HeadlessPlatformAuthenticator(PlatformAuthenticator):
    """
    Platform authenticator for environments without a biometric sensor or lock screen.
    Reports no hardware and fails every prompt.
    """
    async def has_biometric_hardware(self) -> bool:
        return False

    async def is_biometric_enrolled(self) -> bool:
        return False

    async def prompt(self, message: str, allow_device_fallback: bool) -> PlatformAuthResult:
        logger.warning("Platform prompt requested without platform support", extra={"prompt": message})
        return PlatformAuthResult(success=False, error="Platform authentication is not supported on this device")


class PushRegistrar(ABC):
    """
    Abstract base class for push notification bindings, keyed by account email.
    """
    @abstractmethod
    async def register(self, email: str) -> None:
        pass

    @abstractmethod
    async def unregister(self, email: str) -> None:
        pass


class LoggingPushRegistrar(PushRegistrar):
    """
    Push registrar that only logs. Useful for development and testing.
    """
    async def register(self, email: str) -> None:
        logger.info("Push binding registered", extra={"email": email})

    async def unregister(self, email: str) -> None:
        logger.info("Push binding revoked", extra={"email": email})


def get_platform_authenticator() -> PlatformAuthenticator:
    return HeadlessPlatformAuthenticator()

def get_push_registrar() -> PushRegistrar:
    return LoggingPushRegistrar()
