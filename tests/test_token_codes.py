from __future__ import annotations

import hashlib
import threading

import pyotp
import pytest

from token_core import CryptoFailure, Token, TokenCode
from token_core import otp_core

pytestmark = pytest.mark.unit

# RFC 6238 Appendix B: (unix time, {algorithm: 8-digit TOTP})
RFC6238_TOTP = [
    (59, {"SHA1": "94287082", "SHA256": "46119246", "SHA512": "90693936"}),
    (1111111109, {"SHA1": "07081804", "SHA256": "68084774", "SHA512": "25091201"}),
    (1111111111, {"SHA1": "14050471", "SHA256": "67062674", "SHA512": "99943326"}),
    (1234567890, {"SHA1": "89005924", "SHA256": "91819424", "SHA512": "93441116"}),
    (2000000000, {"SHA1": "69279037", "SHA256": "90698825", "SHA512": "38618901"}),
    (20000000000, {"SHA1": "65353130", "SHA256": "77737706", "SHA512": "47863826"}),
]


@pytest.mark.parametrize("algorithm", ["SHA1", "SHA256", "SHA512"])
@pytest.mark.parametrize("timestamp,expected", RFC6238_TOTP)
def test_totp_matches_rfc6238_vectors(
    rfc_secrets: dict[str, str], algorithm: str, timestamp: int, expected: dict[str, str]
) -> None:
    token = Token.parse(
        f"otpauth://totp/rfc6238?secret={rfc_secrets[algorithm]}&algorithm={algorithm}&digits=8&period=30"
    )
    assert token.generate_codes(now_ms=timestamp * 1000).code == expected[algorithm]


def test_hotp_matches_rfc4226_and_advances_counter(hotp_uri: str) -> None:
    token = Token.parse(hotp_uri)

    first = token.generate_codes(now_ms=1_000)
    assert first.code == "755224"
    assert token.counter == 1

    second = token.generate_codes(now_ms=2_000)
    assert second.code == "287082"
    assert token.counter == 2
    assert first.code != second.code


def test_hotp_result_reports_state_change_and_window(hotp_uri: str) -> None:
    token = Token.parse(hotp_uri)
    codes = token.generate_codes(now_ms=1_000_000)

    assert codes.changed is True
    assert codes.next is None
    assert (codes.start_ms, codes.until_ms) == (1_000_000, 1_030_000)


def test_totp_windows_and_next_code(totp_uri: str) -> None:
    token = Token.parse(totp_uri)
    now_ms = 1_700_000_012_345
    codes = token.generate_codes(now_ms=now_ms)

    step = now_ms // 1000 // 30
    assert (codes.start_ms, codes.until_ms) == (step * 30_000, (step + 1) * 30_000)
    assert codes.changed is False
    assert codes.next is not None
    assert (codes.next.start_ms, codes.next.until_ms) == ((step + 1) * 30_000, (step + 2) * 30_000)
    assert codes.next.next is None
    assert token.counter == 0


@pytest.mark.parametrize("period", [15, 30, 60])
def test_totp_next_code_equals_code_one_period_later(rfc_secret: str, period: int) -> None:
    token = Token.parse(f"otpauth://totp/alice?secret={rfc_secret}&period={period}")
    now_ms = 1_234_567_890_123

    now = token.generate_codes(now_ms=now_ms)
    later = token.generate_codes(now_ms=now_ms + period * 1000)

    assert now.next.code == later.code


@pytest.mark.parametrize("digits", [6, 8])
def test_fresh_totp_code_has_configured_length(digits: int) -> None:
    secret = pyotp.random_base32()
    token = Token.parse(f"otpauth://totp/alice?secret={secret}&digits={digits}")
    codes = token.generate_codes()

    assert len(codes.code) == digits
    assert codes.code.isdigit()
    assert len(codes.next.code) == digits


def test_steam_codes_use_steam_alphabet(rfc_secret: str) -> None:
    hotp = Token.parse(f"otpauth://hotp/Steam:gamer?secret={rfc_secret}&digits=5")
    assert hotp.generate_codes().code == "GG5F5"

    totp = Token.parse(f"otpauth://totp/Steam:gamer?secret={pyotp.random_base32()}&digits=5")
    code = totp.generate_codes().code
    assert len(code) == 5
    assert set(code) <= set(otp_core.STEAM_CHARS)


@pytest.mark.parametrize(
    "algorithm,digest",
    [("sha1", hashlib.sha1), ("sha256", hashlib.sha256), ("sha512", hashlib.sha512)],
)
def test_codes_agree_with_pyotp(algorithm: str, digest) -> None:
    secret = pyotp.random_base32()
    now = 1_650_000_000

    totp = Token.parse(f"otpauth://totp/x?secret={secret}&algorithm={algorithm}&digits=8&period=45")
    assert totp.generate_codes(now_ms=now * 1000).code == pyotp.TOTP(
        secret, digits=8, digest=digest, interval=45
    ).at(now)

    hotp = Token.parse(f"otpauth://hotp/x?secret={secret}&algorithm={algorithm}&counter=17")
    assert hotp.generate_codes().code == pyotp.HOTP(secret, digest=digest).at(17)


def test_crypto_failure_propagates_and_keeps_counter(
    hotp_uri: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    token = Token.parse(hotp_uri)

    def boom(*args, **kwargs):
        raise ValueError("key rejected")

    monkeypatch.setattr(otp_core.hmac, "new", boom)

    with pytest.raises(CryptoFailure):
        token.generate_codes()
    assert token.counter == 0


def test_concurrent_hotp_generation_never_skips_or_repeats(hotp_uri: str) -> None:
    token = Token.parse(hotp_uri)
    results: list[str] = []
    results_lock = threading.Lock()

    def worker() -> None:
        for _ in range(25):
            code = token.generate_codes().code
            with results_lock:
                results.append(code)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert token.counter == 200
    expected = [otp_core.hotp_code(token.secret, c) for c in range(200)]
    assert sorted(results) == sorted(expected)


def test_token_code_active_falls_through_to_next() -> None:
    upcoming = TokenCode("222222", 30_000, 60_000)
    codes = TokenCode("111111", 0, 30_000, next=upcoming)

    assert codes.current_code(10_000) == "111111"
    assert codes.current_code(30_000) == "222222"
    assert codes.current_code(60_000) is None
    assert codes.remaining_ms(10_000) == 20_000
    assert codes.remaining_ms(45_000) == 15_000
    assert codes.remaining_ms(90_000) == 0
    assert codes.progress(15_000) == 0.5
    assert codes.progress(90_000) == 1.0


def test_steam_token_with_many_digits_generates_quickly() -> None:
    token = Token.parse("otpauth://totp/Steam:gamer?secret=JBSWY3DPEHPK3PXP&digits=100000")
    code = token.generate_codes(now_ms=0).code
    assert len(code) == 100_000
    assert set(code[7:]) == {"2"}
