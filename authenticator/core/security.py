import hashlib
import hmac
import math
import secrets
import struct
import time
from datetime import datetime, timezone
from typing import Optional, Union
from urllib.parse import parse_qs, quote, unquote, urlsplit

from cryptography.fernet import Fernet, InvalidToken

from authenticator.core.config import settings
from authenticator.core.exceptions import InvalidSecretFormatError, StorageError
from authenticator.schemas.accounts import DeviceSignature, TOTPUriData

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_BASE32_LOOKUP = {char: index for index, char in enumerate(BASE32_ALPHABET)}

_ALGORITHMS = {
    "SHA1": "sha1",
    "SHA-1": "sha1",
    "SHA256": "sha256",
    "SHA-256": "sha256",
    "SHA512": "sha512",
    "SHA-512": "sha512",
}

TimeLike = Union[datetime, int, float, None]

_STORAGE_FERNET: Optional[Fernet] = None

def get_storage_fernet() -> Optional[Fernet]:
    """
    Singleton accessor for the Fernet instance used to encrypt stored values.
    Returns None when no STORAGE_ENCRYPTION_KEY is configured.
    """
    global _STORAGE_FERNET
    if not settings.STORAGE_ENCRYPTION_KEY:
        return None
    if _STORAGE_FERNET is None:
        try:
            _STORAGE_FERNET = Fernet(settings.STORAGE_ENCRYPTION_KEY)
        except Exception as e:
            raise RuntimeError(f"Invalid STORAGE_ENCRYPTION_KEY configuration: {str(e)}")
    return _STORAGE_FERNET

def encrypt_value(fernet: Fernet, value: str) -> str:
    return fernet.encrypt(value.encode()).decode()

def decrypt_value(fernet: Fernet, encrypted_value: str) -> str:
    try:
        return fernet.decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        raise StorageError("Stored value could not be decrypted")

# --- Base32 codec (RFC 4648) ---

def normalize_secret(secret: str) -> str:
    """Remove whitespace and trailing padding, convert to uppercase."""
    return "".join(secret.split()).upper().rstrip("=")

def base32_decode(secret: str) -> bytes:
    """
    Decode a base32 secret, 5 bits per character, MSB first.
    Raises InvalidSecretFormatError on any character outside A-Z2-7.
    """
    cleaned = normalize_secret(secret)
    buffer = 0
    bits = 0
    output = bytearray()
    for char in cleaned:
        value = _BASE32_LOOKUP.get(char)
        if value is None:
            raise InvalidSecretFormatError(f"Invalid base32 character: {char!r}")
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            output.append((buffer >> bits) & 0xFF)
    return bytes(output)

def base32_encode(data: bytes) -> str:
    """Encode bytes as unpadded base32."""
    buffer = 0
    bits = 0
    output = []
    for byte in data:
        buffer = (buffer << 8) | byte
        bits += 8
        while bits >= 5:
            bits -= 5
            output.append(BASE32_ALPHABET[(buffer >> bits) & 0x1F])
    if bits:
        output.append(BASE32_ALPHABET[(buffer << (5 - bits)) & 0x1F])
    return "".join(output)

def generate_totp_secret(length: Optional[int] = None) -> str:
    """
    Generate a random base32 secret by drawing characters uniformly from the alphabet.
    32 characters decode to 20 bytes (160 bits).
    """
    length = length or settings.TOTP_SECRET_LENGTH
    return "".join(secrets.choice(BASE32_ALPHABET) for _ in range(length))

# --- Pure Python TOTP Implementation (RFC 6238) ---

def _unix_seconds(at: TimeLike = None) -> int:
    if at is None:
        return int(time.time())
    if isinstance(at, datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        return math.floor(at.timestamp())
    return math.floor(at)

def _digest_name(algorithm: str) -> str:
    name = _ALGORITHMS.get(algorithm.upper())
    if name is None:
        raise ValueError(f"Unsupported TOTP algorithm: {algorithm}")
    return name

def generate_hotp(key: bytes, counter: int, digits: int = 6, algorithm: str = "SHA1") -> str:
    """
    Generate HOTP code (RFC 4226) for a decoded key and counter.
    """
    # Convert counter to 8-byte big-endian
    counter_bytes = struct.pack('>Q', counter)

    hmac_hash = hmac.new(key, counter_bytes, _digest_name(algorithm)).digest()

    # Dynamic truncation
    offset = hmac_hash[-1] & 0x0F
    code = struct.unpack('>I', hmac_hash[offset:offset+4])[0] & 0x7FFFFFFF

    return str(code % (10 ** digits)).zfill(digits)

def generate_totp(
    secret: str,
    period: int = 30,
    digits: int = 6,
    algorithm: str = "SHA1",
    at: TimeLike = None
) -> str:
    """
    Generate TOTP code (RFC 6238).

    Args:
        secret: Base32 encoded secret key
        period: Time step in seconds (default 30)
        digits: Number of digits in code (default 6)
        algorithm: HMAC hash, SHA1 by default
        at: datetime or unix seconds, defaults to now

    Raises:
        InvalidSecretFormatError: secret is not valid base32
    """
    key = base32_decode(secret)
    counter = _unix_seconds(at) // period
    return generate_hotp(key, counter, digits, algorithm)

def remaining_seconds(period: int = 30, at: TimeLike = None) -> int:
    """Seconds left in the current time window, in [1, period]."""
    return period - (_unix_seconds(at) % period)

def parse_totp_uri(uri: str) -> Optional[TOTPUriData]:
    """
    Parse otpauth://totp/[issuer:]account?secret=...

    Returns None for anything that is not a usable TOTP URI.
    An explicit issuer query parameter takes precedence over the label prefix.
    """
    if not uri or not uri.startswith("otpauth://totp/"):
        return None

    parts = urlsplit(uri)
    label = unquote(parts.path.lstrip("/"))
    params = {key: values[0] for key, values in parse_qs(parts.query).items() if values}

    secret = params.get("secret")
    if not secret:
        return None

    issuer: Optional[str] = None
    account = label
    if ":" in label:
        issuer, account = label.split(":", 1)
        issuer = issuer.strip()
        account = account.strip()
    if params.get("issuer"):
        issuer = params["issuer"]

    try:
        digits = int(params.get("digits", settings.TOTP_DEFAULT_DIGITS))
        period = int(params.get("period", settings.TOTP_DEFAULT_PERIOD))
    except ValueError:
        return None

    return TOTPUriData(
        issuer=issuer or None,
        account=account,
        secret=normalize_secret(secret),
        digits=digits,
        period=period,
        algorithm=params.get("algorithm", "SHA1").upper(),
    )

def generate_provisioning_uri(
    secret: str,
    name: str,
    issuer_name: Optional[str] = None,
    digits: int = 6,
    period: int = 30
) -> str:
    """
    Generate otpauth URI for QR code generation.
    Format: otpauth://totp/{label}?secret={secret}&issuer={issuer}
    Label is {issuer}:{name} or just {name}.
    """
    label = f"{issuer_name}:{name}" if issuer_name else name
    uri = f"otpauth://totp/{quote(label, safe='')}?secret={secret}"

    if issuer_name:
        uri += f"&issuer={quote(issuer_name, safe='')}"
    if digits != 6:
        uri += f"&digits={digits}"
    if period != 30:
        uri += f"&period={period}"

    return uri

# --- Credential hashing ---

def hash_credential(credential: str) -> str:
    """Single-pass SHA-256 hex digest, used for PINs, patterns and passkeys."""
    return hashlib.sha256(credential.encode()).hexdigest()

def verify_credential(credential: str, hashed_credential: str) -> bool:
    if not hashed_credential:
        return False
    return hmac.compare_digest(hash_credential(credential), hashed_credential)

# --- Device request signatures ---

def format_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"

def compute_signature(message: str, secret: str) -> str:
    # Server counterpart hashes message + secret in one SHA-256 pass; not RFC 2104 HMAC.
    return hash_credential(message + secret)

def create_request_signature(
    device_id: str,
    method: str,
    secret: str,
    moment: Optional[datetime] = None
) -> DeviceSignature:
    timestamp = format_timestamp(moment)
    message = f"{device_id}|{timestamp}|{method}"
    return DeviceSignature(
        timestamp=timestamp,
        signature=compute_signature(message, secret),
        device_id=device_id,
    )

def verify_signature(device_id: str, timestamp: str, method: str, signature: str, secret: str) -> bool:
    message = f"{device_id}|{timestamp}|{method}"
    return hmac.compare_digest(compute_signature(message, secret), signature)

def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))

def generate_device_id() -> str:
    """Unique identifier for this install: <epoch-millis>_<random base36>."""
    return f"{int(time.time() * 1000)}_{_base36(secrets.randbits(64))[:13]}"

def generate_record_id() -> str:
    return f"{int(time.time() * 1000)}_{_base36(secrets.randbits(48))[:7]}"
