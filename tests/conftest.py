import json
from typing import List, Optional, Tuple

import httpx
import pytest

from authenticator.db.store import MemoryKeyValueStore, RedisKeyValueStore
from authenticator.schemas.accounts import AccountDraft, AuthMethod
from authenticator.schemas.api import PlatformAuthResult
from authenticator.services.account_registry import AccountRegistry
from authenticator.services.api_client import CentralizedAuthClient
from authenticator.services.auth_method_service import AuthMethodService
from authenticator.services.credential_service import CredentialService
from authenticator.services.credential_store import CredentialStore
from authenticator.services.login_approval import LoginApprovalMatcher
from authenticator.services.platform import PlatformAuthenticator, PushRegistrar

TEST_SECRET = "JBSWY3DPEHPK3PXP"
TEST_API_URL = "https://api.example.test"


class FakePlatformAuthenticator(PlatformAuthenticator):
    """Scriptable platform: hardware/enrollment flags and prompt outcome."""
    def __init__(self, hardware: bool = True, enrolled: bool = True, succeed: bool = True):
        self.hardware = hardware
        self.enrolled = enrolled
        self.succeed = succeed
        self.prompts: List[Tuple[str, bool]] = []

    async def has_biometric_hardware(self) -> bool:
        return self.hardware

    async def is_biometric_enrolled(self) -> bool:
        return self.enrolled

    async def prompt(self, message: str, allow_device_fallback: bool) -> PlatformAuthResult:
        self.prompts.append((message, allow_device_fallback))
        if self.succeed:
            return PlatformAuthResult(success=True)
        return PlatformAuthResult(success=False, error="User cancelled")


class RecordingPushRegistrar(PushRegistrar):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.registered: List[str] = []
        self.unregistered: List[str] = []

    async def register(self, email: str) -> None:
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.registered.append(email)

    async def unregister(self, email: str) -> None:
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.unregistered.append(email)


class FakeVerificationServer:
    """httpx MockTransport handler standing in for the remote verification service."""
    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body = {"success": True, "message": "Login approved", "token": "session-token", "expiresIn": 3600}
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def store():
    return MemoryKeyValueStore()

@pytest.fixture
async def fake_redis():
    import fakeredis.aioredis
    fake_redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.aclose()

@pytest.fixture
def redis_store(fake_redis):
    return RedisKeyValueStore(fake_redis, namespace="test")

@pytest.fixture
def credential_store(store):
    return CredentialStore(store)

@pytest.fixture
def credentials(credential_store):
    return CredentialService(credential_store)

@pytest.fixture
def push_registrar():
    return RecordingPushRegistrar()

@pytest.fixture
def registry(store, credentials, push_registrar):
    return AccountRegistry(store, credentials, push_registrar)

@pytest.fixture
def platform():
    return FakePlatformAuthenticator()

@pytest.fixture
def auth_methods(registry, credentials, platform):
    return AuthMethodService(registry, credentials, platform)

@pytest.fixture
def verification_server():
    return FakeVerificationServer()

@pytest.fixture
def client_factory(verification_server):
    def _factory() -> CentralizedAuthClient:
        return CentralizedAuthClient(transport=httpx.MockTransport(verification_server))
    return _factory

@pytest.fixture
def matcher(registry, credentials, platform, store, client_factory):
    return LoginApprovalMatcher(registry, credentials, platform, store, client_factory=client_factory)

@pytest.fixture
def account_factory(registry):
    """Factory to enroll an account for testing"""
    async def _create_account(
        email: str = "user@example.com",
        app_id: Optional[str] = "app-123",
        centralized: bool = True,
        api_url: Optional[str] = TEST_API_URL,
        secret: str = TEST_SECRET,
        methods: Optional[List[AuthMethod]] = None,
        preferred: Optional[AuthMethod] = None,
    ):
        draft = AccountDraft(
            issuer="Example",
            account_label=email,
            secret=secret,
            app_id=app_id,
            api_url=api_url,
            is_centralized_auth=centralized,
            auth_methods=methods or [AuthMethod.TOTP],
            preferred_auth_method=preferred,
        )
        return await registry.add(draft)

    return _create_account
