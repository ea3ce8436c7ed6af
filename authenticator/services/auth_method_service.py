import logging
from typing import Optional, Sequence

from authenticator.core.exceptions import (
    AuthMethodUnavailableError,
    LastAuthMethodError,
    SetupRequiredError,
    ValidationError,
)
from authenticator.schemas.accounts import (
    CREDENTIAL_METHODS,
    Account,
    AuthMethod,
    PatternPoint,
)
from authenticator.services.account_registry import AccountRegistry
from authenticator.services.credential_service import CredentialService
from authenticator.services.platform import PlatformAuthenticator

logger = logging.getLogger(__name__)


class AuthMethodService:
    """
    Enabling, disabling and preferring authentication methods on an account.

    Invariants:
    - auth_methods is never empty; the sole enabled method cannot be disabled.
    - disabling pin/pattern/passkey deletes the stored credential.
    - pin/pattern/passkey are only enabled by a successful setup flow.
    - biometric/screenlock are only enabled when the platform reports them available.
    """
    def __init__(
        self,
        registry: AccountRegistry,
        credentials: CredentialService,
        platform: PlatformAuthenticator
    ):
        self.registry = registry
        self.credentials = credentials
        self.platform = platform

    async def disable(self, account_id: str, method: AuthMethod) -> Account:
        account = await self.registry.get(account_id)
        if method not in account.auth_methods:
            return account

        if len(account.auth_methods) == 1:
            raise LastAuthMethodError("You must keep at least one authentication method enabled.")

        kind = CREDENTIAL_METHODS.get(method)
        if kind is not None:
            await self.credentials.remove_credential(kind, account_id)

        remaining = [m for m in account.auth_methods if m != method]
        preferred = account.preferred_auth_method
        if preferred == method:
            preferred = remaining[0]

        logger.info("Auth method disabled", extra={"account_id": account_id, "method": method.value})
        return await self.registry.update(
            account.model_copy(update={"auth_methods": remaining, "preferred_auth_method": preferred})
        )

    async def enable(self, account_id: str, method: AuthMethod) -> Account:
        """
        Raises:
            SetupRequiredError: pin/pattern/passkey has no credential yet; run the
                matching setup_* method, which enables the flag on success.
            AuthMethodUnavailableError: platform lacks biometric or screen lock support.
        """
        account = await self.registry.get(account_id)
        if method in account.auth_methods:
            return account

        if method == AuthMethod.BIOMETRIC and not await self.platform.is_biometric_available():
            raise AuthMethodUnavailableError(
                "Biometric authentication is not available. "
                "Set up fingerprint or face recognition in your device settings first."
            )

        if method == AuthMethod.SCREENLOCK and not await self.platform.is_screen_lock_available():
            raise AuthMethodUnavailableError(
                "Screen lock is not available. Set up a device PIN, pattern or password first."
            )

        kind = CREDENTIAL_METHODS.get(method)
        if kind is not None and not await self.credentials.has_credential(kind, account_id):
            raise SetupRequiredError(f"Set up a {method.value} before enabling it.", method=method.value)

        return await self._add_method(account, method)

    async def set_preferred(self, account_id: str, method: AuthMethod) -> Account:
        account = await self.registry.get(account_id)
        if method not in account.auth_methods:
            raise ValidationError("Please enable this authentication method first.")
        return await self.registry.update(account.model_copy(update={"preferred_auth_method": method}))

    async def setup_pin(self, account_id: str, pin: str) -> Account:
        account = await self.registry.get(account_id)
        await self.credentials.setup_pin(account_id, pin)
        return await self._add_method(account, AuthMethod.PIN)

    async def setup_pattern(
        self,
        account_id: str,
        points: Sequence[PatternPoint],
        grid_size: Optional[int] = None
    ) -> Account:
        account = await self.registry.get(account_id)
        await self.credentials.setup_pattern(account_id, points, grid_size)
        return await self._add_method(account, AuthMethod.PATTERN)

    async def setup_passkey(self, account_id: str, passkey: str, name: str = "My Passkey") -> Account:
        account = await self.registry.get(account_id)
        await self.credentials.create_passkey(account_id, passkey, name)
        return await self._add_method(account, AuthMethod.PASSKEY)

    async def _add_method(self, account: Account, method: AuthMethod) -> Account:
        if method in account.auth_methods:
            return account
        logger.info("Auth method enabled", extra={"account_id": account.id, "method": method.value})
        return await self.registry.update(
            account.model_copy(update={"auth_methods": [*account.auth_methods, method]})
        )
