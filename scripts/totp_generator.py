#!/usr/bin/env python3
"""
TOTP Generator
Prints the current RFC 6238 code for a base32 secret or otpauth:// URI,
using the same engine the login approval flow uses.
"""
import argparse
import sys
import time

from authenticator.core import security
from authenticator.core.exceptions import InvalidSecretFormatError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate TOTP codes (RFC 6238)")
    parser.add_argument("secret", nargs="?", help="Base32 secret or otpauth://totp/ URI")
    parser.add_argument("--digits", type=int, default=6, help="Number of digits (default 6)")
    parser.add_argument("--period", type=int, default=30, help="Time step in seconds (default 30)")
    parser.add_argument("--algorithm", default="SHA1", help="HMAC algorithm (SHA1, SHA256, SHA512)")
    parser.add_argument("--at", type=float, default=None, help="Unix time to generate for (default now)")
    parser.add_argument("--secret-only", action="store_true", help="Generate a new random secret and exit")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.secret_only:
        print(security.generate_totp_secret())
        return 0

    if not args.secret:
        print("Usage: totp_generator.py <BASE32_SECRET | otpauth URI>")
        print("\nExample:")
        print("  totp_generator.py JBSWY3DPEHPK3PXP")
        return 1

    secret, digits, period, algorithm = args.secret, args.digits, args.period, args.algorithm
    if secret.startswith("otpauth://"):
        parsed = security.parse_totp_uri(secret)
        if parsed is None:
            print("❌ Not a recognized TOTP URI")
            return 1
        secret, digits, period, algorithm = parsed.secret, parsed.digits, parsed.period, parsed.algorithm

    at = args.at if args.at is not None else time.time()
    try:
        code = security.generate_totp(secret, period=period, digits=digits, algorithm=algorithm, at=at)
    except (InvalidSecretFormatError, ValueError) as e:
        print(f"❌ Error generating TOTP: {e}")
        return 1

    print("✅ TOTP Code Generated:")
    print(f"   Code: {code}")
    print(f"   Time: {int(at)}")
    print(f"   Valid for: ~{security.remaining_seconds(period, at)} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
