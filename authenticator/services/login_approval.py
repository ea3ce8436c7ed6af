import logging
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from authenticator.core import security
from authenticator.core.exceptions import (
    AccountIncompleteError,
    AccountNotFoundError,
    CredentialNotFoundError,
    LocalVerificationFailedError,
    ValidationError,
)
from authenticator.db.store import KeyValueStore
from authenticator.schemas.accounts import Account, AuthMethod, LoginApprovalRequest
from authenticator.schemas.api import (
    TERMINAL_STATES,
    ApiClientConfig,
    ApprovalResult,
    ApprovalState,
    VerificationProof,
)
from authenticator.services.account_registry import AccountRegistry
from authenticator.services.api_client import CentralizedAuthClient
from authenticator.services.credential_service import CredentialService
from authenticator.services.device import get_device_id
from authenticator.services.platform import PlatformAuthenticator

logger = logging.getLogger(__name__)


class MatchTier(str, Enum):
    STRICT = "strict"
    FLEXIBLE = "flexible"
    LOOSE = "loose"

def _strict_match(account: Account, request: LoginApprovalRequest) -> bool:
    return (
        account.account_label == request.email
        and account.app_id == request.app_id
        and account.is_centralized_auth
    )

def _flexible_match(account: Account, request: LoginApprovalRequest) -> bool:
    if account.account_label != request.email:
        return False
    # A missing app id counts as the empty string, which every request app id contains.
    # This lets legacy accounts surface as incomplete rather than not found.
    account_app_id = account.app_id or ""
    return (
        account_app_id == request.app_id
        or request.app_id in account.id
        or account_app_id in request.app_id
    )

def _loose_match(account: Account, request: LoginApprovalRequest) -> bool:
    return account.account_label == request.email and account.is_centralized_auth

# Evaluated in order, first match wins
MATCH_TIERS: List[Tuple[MatchTier, Callable[[Account, LoginApprovalRequest], bool]]] = [
    (MatchTier.STRICT, _strict_match),
    (MatchTier.FLEXIBLE, _flexible_match),
    (MatchTier.LOOSE, _loose_match),
]

def match_account(
    accounts: Sequence[Account],
    request: LoginApprovalRequest
) -> Optional[Tuple[Account, MatchTier]]:
    for tier, predicate in MATCH_TIERS:
        for account in accounts:
            if predicate(account, request):
                return account, tier
        logger.debug("No match at tier", extra={"tier": tier.value, "email": request.email})
    return None


# One handler per AuthMethod member
_METHOD_HANDLERS = {
    AuthMethod.TOTP: "_verify_totp",
    AuthMethod.PIN: "_verify_pin",
    AuthMethod.PATTERN: "_verify_pattern",
    AuthMethod.PASSKEY: "_verify_passkey",
    AuthMethod.SCREENLOCK: "_verify_screen_lock",
    AuthMethod.BIOMETRIC: "_verify_biometric",
}
_unhandled = set(AuthMethod) - set(_METHOD_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No approval handler for: {sorted(m.value for m in _unhandled)}")


class LoginApprovalFlow:
    """
    State machine for one inbound login request.

    RESOLVING -> MATCHED | NOT_FOUND | INCOMPLETE
    MATCHED -> METHOD_SELECTED -> VERIFYING -> APPROVED | VERIFICATION_FAILED
    DENIED is reachable from any non-terminal state before VERIFYING.

    Local verification must succeed before anything is sent; a local failure
    leaves the flow in METHOD_SELECTED so the user can retry. Nothing is
    persisted, so an abandoned flow has no side effects.
    """
    def __init__(
        self,
        request: LoginApprovalRequest,
        registry: AccountRegistry,
        credentials: CredentialService,
        platform: PlatformAuthenticator,
        store: KeyValueStore,
        client_factory: Callable[[], CentralizedAuthClient] = CentralizedAuthClient
    ):
        self.request = request
        self.registry = registry
        self.credentials = credentials
        self.platform = platform
        self.store = store
        self.client_factory = client_factory

        self.state = ApprovalState.RESOLVING
        self.account: Optional[Account] = None
        self.tier: Optional[MatchTier] = None
        self.selected_method: Optional[AuthMethod] = None
        self.client: Optional[CentralizedAuthClient] = None

    async def __aenter__(self) -> "LoginApprovalFlow":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def available_methods(self) -> List[AuthMethod]:
        if self.account is None:
            return []
        return list(self.account.auth_methods) or [AuthMethod.TOTP]

    async def resolve(self) -> Account:
        """
        Raises:
            AccountNotFoundError: no tier matched; the user must enroll the account.
            AccountIncompleteError: matched account cannot be used remotely; re-scan setup.
        """
        if self.state != ApprovalState.RESOLVING:
            raise ValidationError("Login request has already been resolved")

        accounts = await self.registry.list_accounts()
        logger.info(
            "Resolving login request",
            extra={"email": self.request.email, "app_id": self.request.app_id, "accounts": len(accounts)}
        )

        matched = match_account(accounts, self.request)
        if matched is None:
            self.state = ApprovalState.NOT_FOUND
            logger.error("No matching account", extra={"email": self.request.email, "app_id": self.request.app_id})
            raise AccountNotFoundError(
                "This account is not set up in your Authentication App.\n\n"
                f"Looking for: {self.request.email}\n"
                f"App ID: {self.request.app_id}\n\n"
                "Please scan the setup QR code from Settings first.",
                email=self.request.email,
                app_id=self.request.app_id,
            )

        account, tier = matched
        missing = account.missing_remote_fields()
        if missing:
            self.state = ApprovalState.INCOMPLETE
            logger.error("Matched account is incomplete", extra={"account_id": account.id, "missing": missing})
            raise AccountIncompleteError(
                "This account was added with an older version and is missing required information.\n\n"
                "To fix this:\n"
                "1. Delete this account from the Authenticator\n"
                "2. Scan the setup QR code again\n\n"
                "The account will then work properly for login.",
                missing=missing,
            )

        self.account = account
        self.tier = tier
        self.selected_method = account.default_auth_method
        self.state = ApprovalState.MATCHED

        self.client = self.client_factory()
        await self.client.initialize(ApiClientConfig(
            api_url=account.api_url,
            app_id=account.app_id,
            secret=account.secret,
            device_id=await get_device_id(self.store),
        ))
        logger.info("Account matched", extra={"account_id": account.id, "tier": tier.value})
        return account

    def _require_pending(self) -> None:
        if self.state not in (ApprovalState.MATCHED, ApprovalState.METHOD_SELECTED):
            raise ValidationError(f"Login request is not awaiting approval (state: {self.state.value})")

    def select_method(self, method: AuthMethod) -> None:
        self._require_pending()
        if method not in self.available_methods:
            raise ValidationError(f"{method.value} is not enabled for this account")
        self.selected_method = method
        self.state = ApprovalState.METHOD_SELECTED

    def current_totp_code(self, at=None) -> str:
        """Code shown to the user for explicit confirmation before a TOTP approval."""
        if self.account is None:
            raise ValidationError("Login request has not been matched to an account")
        return security.generate_totp(self.account.secret, self.account.period, self.account.digits, at=at)

    async def approve(self, proof: Optional[VerificationProof] = None, **fields) -> ApprovalResult:
        """
        Verify locally with the selected method, then submit to the remote service.

        Raises:
            LocalVerificationFailedError: wrong secret or failed prompt; flow stays open for retry.
            CredentialNotFoundError: the selected method has no stored credential.
        """
        self._require_pending()
        proof = proof or VerificationProof(**fields)
        method = self.selected_method or self.account.default_auth_method
        self.selected_method = method
        self.state = ApprovalState.METHOD_SELECTED

        handler = getattr(self, _METHOD_HANDLERS[method])
        totp_code = await handler(proof)
        logger.info("Local verification passed", extra={"account_id": self.account.id, "method": method.value})

        self.state = ApprovalState.VERIFYING
        result = await self.client.verify_login(
            email=self.request.email,
            temp_token=self.request.temp_token,
            method=method.value,
            totp_code=totp_code,
        )

        if result.success:
            self.state = ApprovalState.APPROVED
            message = result.message or "Login approved successfully! The user can now access their account."
        else:
            self.state = ApprovalState.VERIFICATION_FAILED
            message = result.message or "Verification failed"

        return ApprovalResult(
            state=self.state,
            message=message,
            method=method,
            account_id=self.account.id,
            token=result.token,
            expires_in=result.expires_in,
        )

    def deny(self) -> ApprovalResult:
        if self.state == ApprovalState.VERIFYING or self.is_terminal:
            raise ValidationError(f"Login request can no longer be denied (state: {self.state.value})")
        self.state = ApprovalState.DENIED
        return ApprovalResult(
            state=self.state,
            message="Login request denied",
            method=self.selected_method,
            account_id=self.account.id if self.account else None,
        )

    # --- Method handlers; each returns the TOTP code to submit, if any ---

    async def _verify_totp(self, proof: VerificationProof) -> Optional[str]:
        if not proof.totp_code:
            raise LocalVerificationFailedError("Confirm the displayed TOTP code to approve")
        now = time.time()
        # The window may roll over between display and confirmation
        accepted = {self.current_totp_code(now), self.current_totp_code(now - self.account.period)}
        if proof.totp_code not in accepted:
            raise LocalVerificationFailedError("TOTP code has expired, confirm the current code")
        return proof.totp_code

    async def _verify_pin(self, proof: VerificationProof) -> Optional[str]:
        if not await self.credentials.has_pin(self.account.id):
            raise CredentialNotFoundError("PIN not set up for this account")
        if not proof.pin or not await self.credentials.verify_pin(self.account.id, proof.pin):
            raise LocalVerificationFailedError("Incorrect PIN")
        return None

    async def _verify_pattern(self, proof: VerificationProof) -> Optional[str]:
        if not await self.credentials.has_pattern(self.account.id):
            raise CredentialNotFoundError("Pattern not set up for this account")
        if not proof.pattern or not await self.credentials.verify_pattern(self.account.id, proof.pattern):
            raise LocalVerificationFailedError("Incorrect pattern")
        return None

    async def _verify_passkey(self, proof: VerificationProof) -> Optional[str]:
        if not await self.credentials.has_passkey(self.account.id):
            raise CredentialNotFoundError("Passkey not set up for this account")
        if not proof.passkey or not proof.passkey.strip():
            raise LocalVerificationFailedError("Passkey cannot be empty")
        if not await self.credentials.verify_passkey(self.account.id, proof.passkey):
            raise LocalVerificationFailedError("Invalid passkey")
        return None

    async def _verify_screen_lock(self, proof: VerificationProof) -> Optional[str]:
        result = await self.platform.authenticate_with_screen_lock("Unlock to approve login request")
        if not result.success:
            raise LocalVerificationFailedError(result.error or "Screen lock authentication failed")
        return None

    async def _verify_biometric(self, proof: VerificationProof) -> Optional[str]:
        result = await self.platform.authenticate_with_biometrics("Authenticate to approve login request")
        if not result.success:
            raise LocalVerificationFailedError(result.error or "Biometric authentication failed")
        return None


class LoginApprovalMatcher:
    """
    Entry point for inbound login requests: resolves each against the registry
    and hands back a flow bound to the matched account.
    """
    def __init__(
        self,
        registry: AccountRegistry,
        credentials: CredentialService,
        platform: PlatformAuthenticator,
        store: KeyValueStore,
        client_factory: Callable[[], CentralizedAuthClient] = CentralizedAuthClient
    ):
        self.registry = registry
        self.credentials = credentials
        self.platform = platform
        self.store = store
        self.client_factory = client_factory

    async def match(self, request: LoginApprovalRequest) -> Optional[Tuple[Account, MatchTier]]:
        return match_account(await self.registry.list_accounts(), request)

    async def start(self, request: LoginApprovalRequest) -> LoginApprovalFlow:
        flow = LoginApprovalFlow(
            request,
            self.registry,
            self.credentials,
            self.platform,
            self.store,
            client_factory=self.client_factory,
        )
        await flow.resolve()
        return flow
