from typing import Optional


class AuthenticatorError(Exception):
    """Base error for the authenticator core."""

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}

class InvalidSecretFormatError(AuthenticatorError):
    """TOTP secret is not valid base32."""
    pass

class ValidationError(AuthenticatorError):
    """A field is outside its allowed range."""
    pass

class LastAuthMethodError(ValidationError):
    """The only enabled authentication method cannot be disabled."""
    pass

class NotFoundError(AuthenticatorError):
    """Lookup miss."""
    pass

class AccountNotFoundError(NotFoundError):
    """No stored account satisfies the lookup."""

    def __init__(self, message: str, email: Optional[str] = None, app_id: Optional[str] = None):
        super().__init__(message)
        self.email = email
        self.app_id = app_id

class CredentialNotFoundError(NotFoundError):
    """No PIN, pattern or passkey is set up for the account."""
    pass

class AccountIncompleteError(AuthenticatorError):
    """Matched account lacks the fields needed for remote approval."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message)
        self.missing = missing or []

class LocalVerificationFailedError(AuthenticatorError):
    """Wrong PIN, pattern or passkey, or a failed platform prompt."""
    pass

class NetworkFailureError(AuthenticatorError):
    """Remote call failed before a usable response arrived."""
    pass

class RemoteRejectionError(AuthenticatorError):
    """Remote service answered with success=false or a non-2xx status."""
    pass

class ClientNotInitializedError(AuthenticatorError):
    """Remote client used before initialize()."""
    pass

class StorageError(AuthenticatorError):
    """Key-value store read or write failed."""
    pass

class AuthMethodUnavailableError(AuthenticatorError):
    """Device hardware does not support the requested method."""
    pass

class SetupRequiredError(AuthenticatorError):
    """The method needs a credential setup flow before it can be enabled."""

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.method = method
