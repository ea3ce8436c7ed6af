import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from authenticator.core.config import settings
from authenticator.core.redis import redis_client
from authenticator.db.store import KeyValueStore, get_store
from authenticator.services.account_registry import AccountRegistry
from authenticator.services.api_client import CentralizedAuthClient
from authenticator.services.app_lock import AppLockService
from authenticator.services.auth_method_service import AuthMethodService
from authenticator.services.credential_service import CredentialService
from authenticator.services.credential_store import CredentialStore
from authenticator.services.login_approval import LoginApprovalMatcher
from authenticator.services.platform import (
    PlatformAuthenticator,
    PushRegistrar,
    get_platform_authenticator,
    get_push_registrar,
)
from authenticator.utils.logging import setup_logging

logger = logging.getLogger(__name__)


class Authenticator:
    """
    Wires the services together over one key-value store.
    """
    def __init__(
        self,
        store: KeyValueStore,
        platform: Optional[PlatformAuthenticator] = None,
        push_registrar: Optional[PushRegistrar] = None,
        client_factory=CentralizedAuthClient
    ):
        self.store = store
        self.platform = platform or get_platform_authenticator()
        self.credentials = CredentialService(CredentialStore(store))
        self.registry = AccountRegistry(store, self.credentials, push_registrar or get_push_registrar())
        self.auth_methods = AuthMethodService(self.registry, self.credentials, self.platform)
        self.matcher = LoginApprovalMatcher(
            self.registry,
            self.credentials,
            self.platform,
            store,
            client_factory=client_factory,
        )
        self.app_lock = AppLockService(store)


@asynccontextmanager
async def lifespan(
    platform: Optional[PlatformAuthenticator] = None,
    push_registrar: Optional[PushRegistrar] = None
) -> AsyncIterator[Authenticator]:
    """
    Lifespan context manager for the authenticator.
    Handles startup and shutdown of the storage backend.
    """
    # Startup
    setup_logging()
    uses_redis = settings.STORAGE_BACKEND.lower() == "redis"
    if uses_redis:
        redis_client.init(settings.REDIS_URL)
    logger.info(f"{settings.APP_NAME} starting", extra={"storage_backend": settings.STORAGE_BACKEND})

    try:
        yield Authenticator(get_store(), platform=platform, push_registrar=push_registrar)
    finally:
        # Shutdown
        if uses_redis:
            await redis_client.close()
