import pytest

from authenticator.core.exceptions import (
    AccountNotFoundError,
    AuthMethodUnavailableError,
    LastAuthMethodError,
    SetupRequiredError,
    ValidationError,
)
from authenticator.schemas.accounts import AuthMethod, PatternPoint
from authenticator.services.auth_method_service import AuthMethodService
from tests.conftest import FakePlatformAuthenticator

PATTERN = [PatternPoint(row=0, col=0), PatternPoint(row=1, col=1), PatternPoint(row=2, col=2), PatternPoint(row=2, col=1)]


@pytest.mark.asyncio
async def test_cannot_disable_last_method(auth_methods, account_factory):
    account = await account_factory()
    with pytest.raises(LastAuthMethodError):
        await auth_methods.disable(account.id, AuthMethod.TOTP)
    assert (await auth_methods.registry.get(account.id)).auth_methods == [AuthMethod.TOTP]

@pytest.mark.asyncio
async def test_last_method_error_is_a_validation_error(auth_methods, account_factory):
    account = await account_factory()
    with pytest.raises(ValidationError):
        await auth_methods.disable(account.id, AuthMethod.TOTP)

@pytest.mark.asyncio
async def test_disable_totp_when_other_method_enabled(auth_methods, account_factory):
    account = await account_factory()
    await auth_methods.setup_pin(account.id, "1234")
    updated = await auth_methods.disable(account.id, AuthMethod.TOTP)
    assert updated.auth_methods == [AuthMethod.PIN]

@pytest.mark.asyncio
async def test_disable_not_enabled_is_noop(auth_methods, account_factory):
    account = await account_factory()
    assert (await auth_methods.disable(account.id, AuthMethod.PIN)).auth_methods == [AuthMethod.TOTP]

@pytest.mark.asyncio
async def test_setup_pin_enables_method(auth_methods, credentials, account_factory):
    account = await account_factory()
    updated = await auth_methods.setup_pin(account.id, "1234")

    assert updated.auth_methods == [AuthMethod.TOTP, AuthMethod.PIN]
    assert await credentials.verify_pin(account.id, "1234")

@pytest.mark.asyncio
async def test_failed_setup_does_not_enable(auth_methods, account_factory):
    account = await account_factory()
    with pytest.raises(ValidationError):
        await auth_methods.setup_pin(account.id, "12")
    assert AuthMethod.PIN not in (await auth_methods.registry.get(account.id)).auth_methods

@pytest.mark.asyncio
async def test_disable_pin_removes_credential(auth_methods, credentials, account_factory):
    account = await account_factory()
    await auth_methods.setup_pin(account.id, "1234")

    updated = await auth_methods.disable(account.id, AuthMethod.PIN)

    assert updated.auth_methods == [AuthMethod.TOTP]
    assert not await credentials.has_pin(account.id)

@pytest.mark.asyncio
async def test_disable_pattern_and_passkey_remove_credentials(auth_methods, credentials, account_factory):
    account = await account_factory()
    await auth_methods.setup_pattern(account.id, PATTERN)
    await auth_methods.setup_passkey(account.id, "my-passkey")

    await auth_methods.disable(account.id, AuthMethod.PATTERN)
    await auth_methods.disable(account.id, AuthMethod.PASSKEY)

    assert not await credentials.has_pattern(account.id)
    assert not await credentials.has_passkey(account.id)

@pytest.mark.asyncio
async def test_disable_preferred_falls_back(auth_methods, account_factory):
    account = await account_factory()
    await auth_methods.setup_pin(account.id, "1234")
    await auth_methods.set_preferred(account.id, AuthMethod.PIN)

    updated = await auth_methods.disable(account.id, AuthMethod.PIN)

    assert updated.preferred_auth_method == AuthMethod.TOTP

@pytest.mark.asyncio
@pytest.mark.parametrize("method", [AuthMethod.PIN, AuthMethod.PATTERN, AuthMethod.PASSKEY])
async def test_enable_credential_method_requires_setup(auth_methods, account_factory, method):
    account = await account_factory()
    with pytest.raises(SetupRequiredError) as exc:
        await auth_methods.enable(account.id, method)
    assert exc.value.method == method.value

@pytest.mark.asyncio
async def test_enable_after_setup_and_external_disable(auth_methods, credentials, account_factory):
    account = await account_factory()
    await credentials.setup_pin(account.id, "1234")
    updated = await auth_methods.enable(account.id, AuthMethod.PIN)
    assert AuthMethod.PIN in updated.auth_methods

@pytest.mark.asyncio
async def test_enable_biometric_when_available(auth_methods, account_factory):
    account = await account_factory()
    updated = await auth_methods.enable(account.id, AuthMethod.BIOMETRIC)
    assert updated.auth_methods == [AuthMethod.TOTP, AuthMethod.BIOMETRIC]

@pytest.mark.asyncio
async def test_enable_biometric_not_enrolled(registry, credentials, account_factory):
    service = AuthMethodService(registry, credentials, FakePlatformAuthenticator(enrolled=False))
    account = await account_factory()

    with pytest.raises(AuthMethodUnavailableError):
        await service.enable(account.id, AuthMethod.BIOMETRIC)
    # Screen lock only needs the hardware
    assert AuthMethod.SCREENLOCK in (await service.enable(account.id, AuthMethod.SCREENLOCK)).auth_methods

@pytest.mark.asyncio
async def test_enable_screen_lock_without_hardware(registry, credentials, account_factory):
    service = AuthMethodService(registry, credentials, FakePlatformAuthenticator(hardware=False))
    account = await account_factory()
    with pytest.raises(AuthMethodUnavailableError):
        await service.enable(account.id, AuthMethod.SCREENLOCK)

@pytest.mark.asyncio
async def test_enable_is_idempotent(auth_methods, account_factory):
    account = await account_factory()
    assert (await auth_methods.enable(account.id, AuthMethod.TOTP)).auth_methods == [AuthMethod.TOTP]

@pytest.mark.asyncio
async def test_set_preferred_requires_enabled(auth_methods, account_factory):
    account = await account_factory()
    with pytest.raises(ValidationError):
        await auth_methods.set_preferred(account.id, AuthMethod.BIOMETRIC)

@pytest.mark.asyncio
async def test_unknown_account(auth_methods):
    with pytest.raises(AccountNotFoundError):
        await auth_methods.enable("missing", AuthMethod.BIOMETRIC)
