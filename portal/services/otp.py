"""Time-based one-time passwords (RFC 6238) for two-factor login."""
from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
import time

STEP_SECONDS = 30
DIGITS = 6


def generate_secret() -> str:
    return base64.b32encode(secrets.token_bytes(20)).decode().rstrip('=')


def _decode(secret: str) -> bytes:
    secret = secret.strip().replace(' ', '').upper()
    return base64.b32decode(secret + '=' * (-len(secret) % 8))


def hotp(secret: str, counter: int, digits: int = DIGITS) -> str:
    digest = hmac.new(_decode(secret), struct.pack('>Q', counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = struct.unpack('>I', digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(code % (10 ** digits)).zfill(digits)


def totp(secret: str, at: float | None = None) -> str:
    counter = int((time.time() if at is None else at) // STEP_SECONDS)
    return hotp(secret, counter)


def verify(secret: str, code: str, at: float | None = None, drift: int = 1) -> bool:
    """Accept ``code`` for the current step or up to ``drift`` steps either side."""
    if not secret or not code or not code.isdigit() or len(code) != DIGITS:
        return False
    counter = int((time.time() if at is None else at) // STEP_SECONDS)
    return any(
        hmac.compare_digest(hotp(secret, counter + offset), code)
        for offset in range(-drift, drift + 1)
    )


def provisioning_uri(secret: str, account: str, issuer: str = 'Consular Services') -> str:
    return f"otpauth://totp/{issuer}:{account}?secret={secret}&issuer={issuer}&digits={DIGITS}&period={STEP_SECONDS}"
