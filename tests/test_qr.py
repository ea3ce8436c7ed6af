import json

import pytest

from authenticator.core.exceptions import AccountIncompleteError
from authenticator.schemas.accounts import LoginApprovalRequest, SetupQRPayload, TOTPUriData
from authenticator.services.qr_service import (
    generate_setup_qr_payload,
    parse_login_qr,
    parse_scanned_code,
    parse_setup_qr,
)
from tests.conftest import TEST_API_URL, TEST_SECRET

SETUP = {
    "type": "tni-bouquet-account",
    "issuer": "Bouquet",
    "account": "user@example.com",
    "secret": "JBSW Y3DP EHPK 3PXP",
    "app_id": "app-123",
    "apiUrl": TEST_API_URL,
}

LOGIN = {
    "type": "tni-bouquet-login",
    "email": "user@example.com",
    "tempToken": "temp-token",
    "appId": "app-123",
    "timestamp": 1700000000000,
}


def test_parse_setup_qr():
    payload = parse_setup_qr(json.dumps(SETUP))
    assert payload.secret == TEST_SECRET
    assert payload.app_id == "app-123"
    assert payload.api_url == TEST_API_URL

def test_parse_setup_qr_legacy_type_and_camel_case():
    data = {k: v for k, v in SETUP.items() if k != "app_id"}
    payload = parse_setup_qr(json.dumps({**data, "type": "account", "appId": "app-9"}))
    assert payload.app_id == "app-9"

@pytest.mark.parametrize("missing", ["issuer", "account", "secret", "app_id", "apiUrl"])
def test_parse_setup_qr_missing_field(missing):
    data = {k: v for k, v in SETUP.items() if k != missing}
    assert parse_setup_qr(json.dumps(data)) is None

@pytest.mark.parametrize("raw", ["not json", "[1, 2]", json.dumps({**SETUP, "type": "tni-bouquet-login"})])
def test_parse_setup_qr_rejects(raw):
    assert parse_setup_qr(raw) is None

def test_parse_login_qr():
    request = parse_login_qr(json.dumps(LOGIN))
    assert request.email == "user@example.com"
    assert request.temp_token == "temp-token"
    assert request.app_id == "app-123"
    assert request.timestamp == 1700000000000

def test_parse_login_qr_defaults_timestamp():
    request = parse_login_qr(json.dumps({**LOGIN, "timestamp": None}))
    assert request.timestamp > 1700000000000

def test_parse_login_qr_requires_type_and_fields():
    assert parse_login_qr(json.dumps({**LOGIN, "type": "other"})) is None
    assert parse_login_qr(json.dumps({k: v for k, v in LOGIN.items() if k != "tempToken"})) is None

def test_parse_scanned_code_dispatch():
    assert isinstance(parse_scanned_code(json.dumps(LOGIN)), LoginApprovalRequest)
    assert isinstance(parse_scanned_code(json.dumps(SETUP)), SetupQRPayload)
    assert isinstance(parse_scanned_code(f"  otpauth://totp/Ex:john?secret={TEST_SECRET}\n"), TOTPUriData)
    assert parse_scanned_code("https://example.com") is None
    assert parse_scanned_code("") is None

@pytest.mark.asyncio
async def test_generate_setup_qr_payload(registry):
    account = await registry.add_from_setup_qr(parse_setup_qr(json.dumps(SETUP)))
    payload = generate_setup_qr_payload(account)

    exported = payload.model_dump(by_alias=True)
    assert exported["type"] == "tni-bouquet-account"
    assert exported["apiUrl"] == TEST_API_URL
    assert exported["app_id"] == "app-123"
    assert parse_setup_qr(payload.model_dump_json(by_alias=True)) == payload

@pytest.mark.asyncio
async def test_generate_setup_qr_payload_incomplete(account_factory):
    account = await account_factory(app_id=None, api_url=None)
    with pytest.raises(AccountIncompleteError) as exc:
        generate_setup_qr_payload(account)
    assert set(exc.value.missing) == {"app_id", "api_url"}
