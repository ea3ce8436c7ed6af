import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.core.exceptions import (
    ClientNotInitializedError,
    NetworkFailureError,
    RemoteRejectionError,
)
from authenticator.db.store import KeyValueStore
from authenticator.schemas.api import (
    ApiClientConfig,
    ApiResult,
    VerificationData,
    VerifyLoginRequest,
    VerifyLoginResult,
)

logger = logging.getLogger(__name__)


class CentralizedAuthClient:
    """
    Client for the remote verification service.

    Constructed empty and configured once with initialize(); every call made
    before that raises ClientNotInitializedError. Network and server failures
    are normalised into a success=False result and never raised to the caller.
    """
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._config: Optional[ApiClientConfig] = None
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def is_initialized(self) -> bool:
        return self._config is not None

    @property
    def config(self) -> ApiClientConfig:
        if self._config is None:
            raise ClientNotInitializedError("API client not initialized. Call initialize first.")
        return self._config

    async def initialize(self, config: ApiClientConfig) -> "CentralizedAuthClient":
        if self._http is not None:
            await self._http.aclose()
        self._config = config
        self._http = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=settings.API_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=self._transport,
        )
        logger.info("API client initialized", extra={"api_url": config.api_url, "app_id": config.app_id})
        return self

    async def update_config(self, **changes: Any) -> None:
        await self.initialize(self.config.model_copy(update=changes))

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "CentralizedAuthClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _verification_data(self, method: str):
        signature = security.create_request_signature(self.config.device_id, method, self.config.secret)
        data = VerificationData(
            device_id=signature.device_id,
            timestamp=signature.timestamp,
            signature=signature.signature,
        )
        return signature, data

    async def _request(self, http_method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Perform one request and return the decoded JSON body.

        Raises:
            NetworkFailureError: transport error or timeout
            RemoteRejectionError: non-2xx status or success=false
        """
        if self._http is None:
            raise ClientNotInitializedError("API client not initialized. Call initialize first.")
        try:
            response = await self._http.request(http_method, path, **kwargs)
        except httpx.TimeoutException:
            raise NetworkFailureError("Request to verification service timed out")
        except httpx.HTTPError as e:
            raise NetworkFailureError(f"Could not reach verification service: {str(e)}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_error:
            message = body.get("message") or f"Verification service returned HTTP {response.status_code}"
            raise RemoteRejectionError(message)
        if body.get("success") is False:
            raise RemoteRejectionError(body.get("message") or "Request was rejected")
        return body

    async def verify_login(
        self,
        email: str,
        temp_token: str,
        method: str,
        totp_code: Optional[str] = None
    ) -> VerifyLoginResult:
        signature, verification_data = self._verification_data(method)
        request = VerifyLoginRequest(
            email=email,
            app_id=self.config.app_id,
            auth_method=method,
            auth_token=signature.auth_token,
            temp_token=temp_token,
            verification_data=verification_data,
            totp_code=totp_code or None,
        )
        logger.info(
            "Verifying login",
            extra={"email": email, "method": method, "has_totp_code": bool(totp_code)}
        )

        try:
            body = await self._request(
                "POST", settings.VERIFY_ENDPOINT,
                json=request.model_dump(exclude_none=True),
            )
            result = VerifyLoginResult.model_validate(body)
        except (NetworkFailureError, RemoteRejectionError) as e:
            logger.error("Login verification failed", extra={"email": email, "error": e.code})
            return VerifyLoginResult(success=False, message=str(e))
        except SchemaValidationError:
            return VerifyLoginResult(success=False, message="Failed to verify authentication")

        logger.info("Login verification finished", extra={"email": email, "success": result.success})
        return result

    async def sync_methods(self, methods: List[str]) -> ApiResult:
        """Sync enabled MFA methods with the backend."""
        _, verification_data = self._verification_data("sync")
        return await self._call(
            "POST", settings.SYNC_METHODS_ENDPOINT, "Failed to sync methods",
            json={
                "app_id": self.config.app_id,
                "methods": methods,
                "verification_data": verification_data.model_dump(),
            },
        )

    async def get_pending_auth_requests(self, email: str) -> ApiResult:
        return await self._call(
            "GET", settings.PENDING_REQUESTS_ENDPOINT, "Failed to get pending requests",
            params={"email": email, "app_id": self.config.app_id, "app_secret": self.config.secret},
        )

    async def approve_auth_request(self, session_id: str, auth_method: str) -> ApiResult:
        signature, verification_data = self._verification_data(auth_method)
        return await self._call(
            "POST", settings.APPROVE_ENDPOINT, "Failed to approve authentication",
            json={
                "session_id": session_id,
                "auth_method": auth_method,
                "device_signature": signature.signature,
                "verification_data": verification_data.model_dump(),
            },
        )

    async def reject_auth_request(self, session_id: str) -> ApiResult:
        return await self._call(
            "POST", settings.REJECT_ENDPOINT, "Failed to reject authentication",
            json={"session_id": session_id},
        )

    async def _call(self, http_method: str, path: str, fallback: str, **kwargs) -> ApiResult:
        try:
            body = await self._request(http_method, path, **kwargs)
        except RemoteRejectionError as e:
            return ApiResult(success=False, message=str(e) or fallback)
        except NetworkFailureError as e:
            logger.error("Request failed", extra={"path": path, "error": str(e)})
            return ApiResult(success=False, message=fallback)
        body.setdefault("success", True)
        try:
            return ApiResult.model_validate(body)
        except SchemaValidationError:
            return ApiResult(success=False, message=fallback)


# --- Persisted client configuration ---

async def save_client_config(store: KeyValueStore, config: ApiClientConfig) -> None:
    await store.set_json(settings.API_CLIENT_CONFIG_KEY, config.model_dump())

async def load_client_from_storage(
    store: KeyValueStore,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[CentralizedAuthClient]:
    data = await store.get_json(settings.API_CLIENT_CONFIG_KEY)
    if not data:
        return None
    try:
        config = ApiClientConfig.model_validate(data)
    except SchemaValidationError:
        logger.error("Stored API client config is invalid")
        return None
    return await CentralizedAuthClient(transport=transport).initialize(config)

async def clear_client_config(store: KeyValueStore) -> None:
    await store.delete(settings.API_CLIENT_CONFIG_KEY)
