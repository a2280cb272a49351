from __future__ import annotations

import base64

import pytest

# RFC 4226 / RFC 6238 Appendix test keys
RFC_KEYS = {
    "SHA1": b"12345678901234567890",
    "SHA256": b"12345678901234567890123456789012",
    "SHA512": b"1234567890" * 6 + b"1234",
}


def _b32(key: bytes) -> str:
    return base64.b32encode(key).decode("ascii").rstrip("=")


@pytest.fixture
def rfc_secrets() -> dict[str, str]:
    return {name: _b32(key) for name, key in RFC_KEYS.items()}


@pytest.fixture
def rfc_secret(rfc_secrets: dict[str, str]) -> str:
    return rfc_secrets["SHA1"]


@pytest.fixture
def totp_uri(rfc_secret: str) -> str:
    return f"otpauth://totp/ACME:alice@example.com?secret={rfc_secret}&issuer=ACME"


@pytest.fixture
def hotp_uri(rfc_secret: str) -> str:
    return f"otpauth://hotp/ACME:alice@example.com?secret={rfc_secret}&issuer=ACME&counter=0"
