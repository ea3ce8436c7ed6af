import pyotp

from scripts.totp_generator import main
from tests.conftest import TEST_SECRET


def test_prints_code(capsys):
    assert main([TEST_SECRET, "--at", "1700000000"]) == 0
    out = capsys.readouterr().out
    assert f"Code: {pyotp.TOTP(TEST_SECRET).at(1700000000)}" in out
    assert "Valid for: ~10 seconds" in out

def test_rfc_vector(capsys):
    assert main(["GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ", "--digits", "8", "--at", "59"]) == 0
    assert "Code: 94287082" in capsys.readouterr().out

def test_otpauth_uri(capsys):
    uri = f"otpauth://totp/Example:john?secret={TEST_SECRET}&digits=8&period=60"
    assert main([uri, "--at", "1700000000"]) == 0
    expected = pyotp.TOTP(TEST_SECRET, digits=8, interval=60).at(1700000000)
    assert f"Code: {expected}" in capsys.readouterr().out

def test_secret_only(capsys):
    assert main(["--secret-only"]) == 0
    assert len(capsys.readouterr().out.strip()) == 32

def test_missing_secret(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().out

def test_invalid_secret(capsys):
    assert main(["NOT-BASE32!"]) == 1
    assert "Error generating TOTP" in capsys.readouterr().out

def test_unrecognized_uri(capsys):
    assert main(["otpauth://hotp/john?secret=ABC"]) == 1
    assert "Not a recognized TOTP URI" in capsys.readouterr().out
