import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError as SchemaValidationError

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.core.exceptions import (
    AccountNotFoundError,
    InvalidSecretFormatError,
    StorageError,
    ValidationError,
)
from authenticator.db.store import KeyValueStore
from authenticator.schemas.accounts import (
    Account,
    AccountBase,
    AccountDraft,
    AuthMethod,
    SetupQRPayload,
    StorageData,
    TOTPUriData,
)
from authenticator.services.credential_service import CredentialService
from authenticator.services.platform import PushRegistrar, get_push_registrar

logger = logging.getLogger(__name__)

AccountPredicate = Callable[[Account], bool]

MIN_DIGITS, MAX_DIGITS = 6, 8
MIN_PERIOD, MAX_PERIOD = 15, 120


def validate_account_fields(account: AccountBase) -> str:
    """
    Check TOTP parameters and auth-method invariants.
    Returns the normalized secret.
    """
    secret = security.normalize_secret(account.secret or "")
    if not secret:
        raise InvalidSecretFormatError("Secret is required")
    security.base32_decode(secret)

    if not (MIN_DIGITS <= account.digits <= MAX_DIGITS):
        raise ValidationError(f"digits must be between {MIN_DIGITS} and {MAX_DIGITS}")
    if not (MIN_PERIOD <= account.period <= MAX_PERIOD):
        raise ValidationError(f"period must be between {MIN_PERIOD} and {MAX_PERIOD} seconds")
    if not account.auth_methods:
        raise ValidationError("At least one authentication method must be enabled")
    if len(set(account.auth_methods)) != len(account.auth_methods):
        raise ValidationError("Authentication methods must not repeat")
    if account.preferred_auth_method and account.preferred_auth_method not in account.auth_methods:
        raise ValidationError("Preferred authentication method must be enabled")
    return secret

def validate_centralized_account(account: Account) -> List[str]:
    """List configuration problems of a centralized auth account; empty when valid."""
    errors = []
    if not account.app_id:
        errors.append("Missing app_id")
    if not account.api_url:
        errors.append("Missing apiUrl")
    if not account.secret or len(account.secret) < 16:
        errors.append("Invalid or missing secret")
    if not account.account_label or "@" not in account.account_label:
        errors.append("Invalid account email")
    return errors


class AccountRegistry:
    """
    Enrolled accounts, persisted as one collection under ACCOUNTS_STORAGE_KEY.
    Every mutation is a read-modify-write of the whole collection; concurrent
    writers are not serialized (last writer wins).
    """
    def __init__(
        self,
        store: KeyValueStore,
        credentials: CredentialService,
        push_registrar: Optional[PushRegistrar] = None
    ):
        self.store = store
        self.credentials = credentials
        self.push_registrar = push_registrar or get_push_registrar()

    async def list_accounts(self) -> List[Account]:
        data = await self.store.get_json(settings.ACCOUNTS_STORAGE_KEY)
        if not data:
            return []
        try:
            return StorageData.model_validate(data).accounts
        except SchemaValidationError:
            raise StorageError("Corrupt account collection")

    async def _save(self, accounts: List[Account]) -> None:
        data = StorageData(accounts=accounts, version=settings.ACCOUNTS_STORAGE_VERSION)
        await self.store.set_json(settings.ACCOUNTS_STORAGE_KEY, data.model_dump(mode="json"))

    def _generate_id(self, draft: AccountDraft) -> str:
        if draft.app_id:
            # Login matching relies on the app id being part of the account id
            return f"{draft.app_id}_{int(time.time() * 1000)}"
        return security.generate_record_id()

    async def add(self, draft: AccountDraft) -> Account:
        secret = validate_account_fields(draft)

        accounts = await self.list_accounts()
        account = Account(
            **draft.model_dump(exclude={"secret"}),
            secret=secret,
            id=self._generate_id(draft),
        )
        existing_ids = {a.id for a in accounts}
        while account.id in existing_ids:
            account.id = f"{account.id}_{security.generate_record_id()}"

        accounts.append(account)
        await self._save(accounts)
        logger.info("Account added", extra={"account_id": account.id, "issuer": account.issuer})

        if "@" in account.account_label:
            try:
                await self.push_registrar.register(account.account_label)
            except Exception as e:
                # Enrollment succeeds without push
                logger.error("Push registration failed", extra={"account_id": account.id, "error": str(e)})

        return account

    async def add_from_setup_qr(self, payload: SetupQRPayload) -> Account:
        draft = AccountDraft(
            issuer=payload.issuer,
            account_label=payload.account,
            secret=payload.secret,
            digits=settings.TOTP_DEFAULT_DIGITS,
            period=settings.TOTP_DEFAULT_PERIOD,
            app_id=payload.app_id,
            api_url=payload.api_url,
            is_centralized_auth=True,
            auth_methods=[AuthMethod.TOTP],
        )
        return await self.add(draft)

    async def add_from_totp_uri(self, data: TOTPUriData) -> Account:
        draft = AccountDraft(
            issuer=data.issuer or "",
            account_label=data.account,
            secret=data.secret,
            digits=data.digits,
            period=data.period,
        )
        return await self.add(draft)

    async def get(self, account_id: str) -> Account:
        account = await self.find(lambda a: a.id == account_id)
        if account is None:
            raise AccountNotFoundError("Account not found")
        return account

    async def update(self, account: Account) -> Account:
        """Full-record replace by id."""
        secret = validate_account_fields(account)
        account = account.model_copy(update={"secret": secret})

        accounts = await self.list_accounts()
        for index, existing in enumerate(accounts):
            if existing.id == account.id:
                accounts[index] = account
                await self._save(accounts)
                return account

        raise AccountNotFoundError("Account not found")

    async def delete(self, account_id: str) -> None:
        """Remove the account, its push binding and every local credential bound to it."""
        accounts = await self.list_accounts()
        target = next((a for a in accounts if a.id == account_id), None)
        if target is None:
            raise AccountNotFoundError("Account not found")

        if "@" in target.account_label:
            try:
                await self.push_registrar.unregister(target.account_label)
            except Exception as e:
                # Continue with deletion even if unregistration fails
                logger.error("Push unregistration failed", extra={"account_id": account_id, "error": str(e)})

        await self._save([a for a in accounts if a.id != account_id])
        await self.credentials.remove_all(account_id)
        logger.info("Account deleted", extra={"account_id": account_id})

    async def find(self, predicate: AccountPredicate) -> Optional[Account]:
        for account in await self.list_accounts():
            if predicate(account):
                return account
        return None

    async def find_all(self, predicate: AccountPredicate) -> List[Account]:
        return [a for a in await self.list_accounts() if predicate(a)]

    async def clear_all(self) -> None:
        await self.store.delete(settings.ACCOUNTS_STORAGE_KEY)
