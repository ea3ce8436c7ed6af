import logging
from typing import Optional, Sequence

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.core.exceptions import (
    CredentialNotFoundError,
    LocalVerificationFailedError,
    ValidationError,
)
from authenticator.core.pattern import pattern_to_string, validate_pattern
from authenticator.schemas.accounts import (
    CredentialKind,
    PasskeyCredential,
    PatternCredential,
    PatternPoint,
    PinCredential,
)
from authenticator.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class CredentialService:
    """
    Setup and verification of app-managed secrets (PIN, pattern, passkey).
    Only hashes reach the store; plaintext never leaves this class.
    """
    def __init__(self, store: CredentialStore):
        self.store = store

    # --- PIN ---

    @staticmethod
    def validate_pin(pin: str) -> None:
        if not pin or not (settings.PIN_MIN_LENGTH <= len(pin) <= settings.PIN_MAX_LENGTH):
            raise ValidationError(
                f"PIN must be {settings.PIN_MIN_LENGTH}-{settings.PIN_MAX_LENGTH} digits"
            )
        if not pin.isdigit() or not pin.isascii():
            raise ValidationError("PIN must contain only digits")

    async def setup_pin(self, account_id: str, pin: str) -> PinCredential:
        self.validate_pin(pin)
        record = PinCredential(account_id=account_id, hashed_value=security.hash_credential(pin))
        await self.store.put(CredentialKind.PIN, account_id, record)
        logger.info("PIN set up", extra={"account_id": account_id})
        return record

    async def verify_pin(self, account_id: str, pin: str) -> bool:
        record = await self.store.get(CredentialKind.PIN, account_id)
        if record is None:
            return False
        return security.verify_credential(pin, record.hashed_value)

    async def has_pin(self, account_id: str) -> bool:
        return await self.store.exists(CredentialKind.PIN, account_id)

    async def remove_pin(self, account_id: str) -> None:
        await self.store.delete(CredentialKind.PIN, account_id)

    # --- Pattern ---

    async def setup_pattern(
        self,
        account_id: str,
        points: Sequence[PatternPoint],
        grid_size: Optional[int] = None
    ) -> PatternCredential:
        grid_size = grid_size or settings.PATTERN_GRID_SIZE
        if not validate_pattern(points, grid_size):
            raise ValidationError(
                "Invalid pattern. Must have at least 4 unique points within grid bounds."
            )
        record = PatternCredential(
            account_id=account_id,
            hashed_value=security.hash_credential(pattern_to_string(points)),
            grid_size=grid_size,
        )
        await self.store.put(CredentialKind.PATTERN, account_id, record)
        logger.info("Pattern set up", extra={"account_id": account_id, "grid_size": grid_size})
        return record

    async def verify_pattern(self, account_id: str, points: Sequence[PatternPoint]) -> bool:
        record = await self.store.get(CredentialKind.PATTERN, account_id)
        if record is None:
            return False
        return security.verify_credential(pattern_to_string(points), record.hashed_value)

    async def has_pattern(self, account_id: str) -> bool:
        return await self.store.exists(CredentialKind.PATTERN, account_id)

    async def remove_pattern(self, account_id: str) -> None:
        await self.store.delete(CredentialKind.PATTERN, account_id)

    async def get_pattern_grid_size(self, account_id: str) -> int:
        record = await self.store.get(CredentialKind.PATTERN, account_id)
        return record.grid_size if record else settings.PATTERN_GRID_SIZE

    # --- Passkey ---

    async def create_passkey(self, account_id: str, passkey: str, name: str = "My Passkey") -> PasskeyCredential:
        if len(passkey) < settings.PASSKEY_MIN_LENGTH:
            raise ValidationError(
                f"Passkey must be at least {settings.PASSKEY_MIN_LENGTH} characters long"
            )
        record = PasskeyCredential(
            id=security.generate_record_id(),
            account_id=account_id,
            name=name,
            hashed_value=security.hash_credential(passkey),
        )
        await self.store.put(CredentialKind.PASSKEY, account_id, record)
        logger.info("Passkey created", extra={"account_id": account_id})
        return record

    async def verify_passkey(self, account_id: str, passkey: str) -> bool:
        record = await self.store.get(CredentialKind.PASSKEY, account_id)
        if record is None:
            return False
        return security.verify_credential(passkey, record.hashed_value)

    async def has_passkey(self, account_id: str) -> bool:
        return await self.store.exists(CredentialKind.PASSKEY, account_id)

    async def get_passkey_info(self, account_id: str) -> Optional[PasskeyCredential]:
        return await self.store.get(CredentialKind.PASSKEY, account_id)

    async def delete_passkey(self, account_id: str) -> None:
        await self.store.delete(CredentialKind.PASSKEY, account_id)

    async def update_passkey(self, account_id: str, old_passkey: str, new_passkey: str) -> PasskeyCredential:
        existing = await self.get_passkey_info(account_id)
        if existing is None:
            raise CredentialNotFoundError("No passkey found for this account")
        if not security.verify_credential(old_passkey, existing.hashed_value):
            raise LocalVerificationFailedError("Current passkey is incorrect")

        return await self.create_passkey(account_id, new_passkey, existing.name)

    # --- Shared ---

    async def has_credential(self, kind: CredentialKind, account_id: str) -> bool:
        return await self.store.exists(kind, account_id)

    async def remove_credential(self, kind: CredentialKind, account_id: str) -> None:
        await self.store.delete(kind, account_id)

    async def remove_all(self, account_id: str) -> None:
        await self.store.delete_all_for_account(account_id)
