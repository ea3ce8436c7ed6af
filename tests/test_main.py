import logging

import pytest

from authenticator.core.config import settings
from authenticator.core.exceptions import StorageError
from authenticator.core.redis import RedisClient, redis_client
from authenticator.db.store import MemoryKeyValueStore, RedisKeyValueStore, get_store
from authenticator.main import Authenticator, lifespan
from authenticator.schemas.accounts import AccountDraft, AuthMethod, LoginApprovalRequest
from authenticator.schemas.api import ApprovalState
from authenticator.services.platform import HeadlessPlatformAuthenticator
from authenticator.utils.logging import setup_logging
from tests.conftest import TEST_API_URL, TEST_SECRET, RecordingPushRegistrar


@pytest.mark.asyncio
async def test_lifespan_with_memory_backend():
    async with lifespan(push_registrar=RecordingPushRegistrar()) as app:
        assert isinstance(app.store, MemoryKeyValueStore)
        assert isinstance(app.platform, HeadlessPlatformAuthenticator)
        assert await app.registry.list_accounts() == []

def test_setup_logging_is_idempotent():
    setup_logging()
    setup_logging()
    names = [h.get_name() for h in logging.getLogger().handlers]
    assert names.count("authenticator") == 1

def test_redis_backend_requires_client(monkeypatch):
    monkeypatch.setattr(RedisClient, "_client", None)
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "redis")
    with pytest.raises(StorageError):
        get_store()

@pytest.mark.asyncio
async def test_redis_backend_selected(monkeypatch, fake_redis):
    monkeypatch.setattr(RedisClient, "_client", None)
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "redis")
    redis_client.use(fake_redis)

    store = get_store()
    assert isinstance(store, RedisKeyValueStore)
    assert redis_client.is_initialized()

    app = Authenticator(store, push_registrar=RecordingPushRegistrar())
    account = await app.registry.add(AccountDraft(account_label="user@example.com", secret=TEST_SECRET))
    assert await fake_redis.get(f"{settings.STORAGE_NAMESPACE}:{settings.ACCOUNTS_STORAGE_KEY}") is not None
    assert (await app.registry.get(account.id)).secret == TEST_SECRET

@pytest.mark.asyncio
async def test_end_to_end_pin_approval(store, platform, client_factory, verification_server):
    app = Authenticator(store, platform=platform, push_registrar=RecordingPushRegistrar(), client_factory=client_factory)
    account = await app.registry.add(AccountDraft(
        issuer="Example",
        account_label="user@example.com",
        secret=TEST_SECRET,
        app_id="app-123",
        api_url=TEST_API_URL,
        is_centralized_auth=True,
    ))
    await app.auth_methods.setup_pin(account.id, "1234")
    await app.auth_methods.set_preferred(account.id, AuthMethod.PIN)

    request = LoginApprovalRequest(email="user@example.com", temp_token="temp-token", app_id="app-123")
    async with await app.matcher.start(request) as flow:
        result = await flow.approve(pin="1234")

    assert result.state == ApprovalState.APPROVED
    assert verification_server.last_json["auth_method"] == "pin"
