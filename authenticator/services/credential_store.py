import logging
from typing import List, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from authenticator.core.config import settings
from authenticator.core.exceptions import StorageError
from authenticator.db.store import KeyValueStore
from authenticator.schemas.accounts import (
    CredentialKind,
    PasskeyCredential,
    PatternCredential,
    PinCredential,
)

logger = logging.getLogger(__name__)

CredentialRecord = Union[PinCredential, PatternCredential, PasskeyCredential]

_RECORD_TYPES = {
    CredentialKind.PIN: PinCredential,
    CredentialKind.PATTERN: PatternCredential,
    CredentialKind.PASSKEY: PasskeyCredential,
}


class CredentialStore:
    """
    Adapter between the core and durable secret storage.

    PIN and pattern credentials live in one list per kind; passkeys live under
    one key per account. Either way there is at most one record per account per kind.
    """
    def __init__(self, store: KeyValueStore):
        self.store = store

    def _list_key(self, kind: CredentialKind) -> str:
        if kind == CredentialKind.PIN:
            return settings.PIN_STORAGE_KEY
        return settings.PATTERN_STORAGE_KEY

    def _passkey_key(self, account_id: str) -> str:
        return f"{settings.PASSKEY_PREFIX}{account_id}"

    async def _load_list(self, kind: CredentialKind) -> List[dict]:
        records = await self.store.get_json(self._list_key(kind), default=[])
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise StorageError(f"Corrupt {kind.value} credential collection")
        return records

    def _parse(self, kind: CredentialKind, data: dict) -> CredentialRecord:
        try:
            return _RECORD_TYPES[kind].model_validate(data)
        except SchemaValidationError:
            raise StorageError(f"Corrupt {kind.value} credential record")

    async def get(self, kind: CredentialKind, account_id: str) -> Optional[CredentialRecord]:
        if kind == CredentialKind.PASSKEY:
            data = await self.store.get_json(self._passkey_key(account_id))
            return self._parse(kind, data) if data else None

        for data in await self._load_list(kind):
            if data.get("account_id") == account_id:
                return self._parse(kind, data)
        return None

    async def put(self, kind: CredentialKind, account_id: str, record: CredentialRecord) -> None:
        """Replace any existing record for the account (delete then insert)."""
        if not isinstance(record, _RECORD_TYPES[kind]):
            raise TypeError(f"Expected {_RECORD_TYPES[kind].__name__} for {kind.value}")
        if record.account_id != account_id:
            raise ValueError("Record account_id does not match")

        if kind == CredentialKind.PASSKEY:
            await self.store.delete(self._passkey_key(account_id))
            await self.store.set_json(self._passkey_key(account_id), record.model_dump(mode="json"))
            return

        records = [r for r in await self._load_list(kind) if r.get("account_id") != account_id]
        records.append(record.model_dump(mode="json"))
        await self.store.set_json(self._list_key(kind), records)

    async def delete(self, kind: CredentialKind, account_id: str) -> None:
        if kind == CredentialKind.PASSKEY:
            await self.store.delete(self._passkey_key(account_id))
            return

        records = await self._load_list(kind)
        filtered = [r for r in records if r.get("account_id") != account_id]
        if len(filtered) != len(records):
            await self.store.set_json(self._list_key(kind), filtered)

    async def exists(self, kind: CredentialKind, account_id: str) -> bool:
        return await self.get(kind, account_id) is not None

    async def delete_all_for_account(self, account_id: str) -> None:
        for kind in CredentialKind:
            await self.delete(kind, account_id)
        logger.info("Removed local credentials", extra={"account_id": account_id})
