import json
import logging
from typing import Optional, Union

from pydantic import ValidationError as SchemaValidationError

from authenticator.core.exceptions import AccountIncompleteError
from authenticator.core.security import parse_totp_uri
from authenticator.schemas.accounts import (
    Account,
    LoginApprovalRequest,
    SetupQRPayload,
    TOTPUriData,
)

logger = logging.getLogger(__name__)

LOGIN_PAYLOAD_TYPE = "tni-bouquet-login"
SETUP_PAYLOAD_TYPE = "tni-bouquet-account"

ScannedCode = Union[SetupQRPayload, LoginApprovalRequest, TOTPUriData]


def _load_json_object(data: str) -> Optional[dict]:
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None

def parse_setup_qr(data: str) -> Optional[SetupQRPayload]:
    """Parse a centralized auth setup QR code; None when the payload is not one."""
    parsed = _load_json_object(data)
    if parsed is None:
        return None
    try:
        return SetupQRPayload.model_validate(parsed)
    except SchemaValidationError:
        logger.debug("Not a centralized auth setup payload")
        return None

def parse_login_qr(data: str) -> Optional[LoginApprovalRequest]:
    """Parse a login QR code or push payload; None when the payload is not one."""
    parsed = _load_json_object(data)
    if parsed is None or parsed.get("type") != LOGIN_PAYLOAD_TYPE:
        return None
    try:
        return LoginApprovalRequest.model_validate(parsed)
    except SchemaValidationError:
        logger.debug("Login payload is missing required fields")
        return None

def parse_scanned_code(data: str) -> Optional[ScannedCode]:
    """
    Classify raw scanned text: login request, setup payload or otpauth URI.
    Returns None when the code is not recognized.
    """
    data = (data or "").strip()
    if data.startswith("otpauth://"):
        return parse_totp_uri(data)
    return parse_login_qr(data) or parse_setup_qr(data)

def generate_setup_qr_payload(account: Account) -> SetupQRPayload:
    """Export a centralized auth account back into its setup payload."""
    missing = account.missing_remote_fields()
    if missing:
        raise AccountIncompleteError("Account cannot be exported without its remote binding", missing=missing)
    return SetupQRPayload(
        type=SETUP_PAYLOAD_TYPE,
        issuer=account.issuer or account.account_label,
        account=account.account_label,
        secret=account.secret,
        app_id=account.app_id,
        api_url=account.api_url,
    )
