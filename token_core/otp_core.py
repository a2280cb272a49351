#!/usr/bin/env python3
"""
otp_core.py — Core helpers cho HOTP / TOTP theo RFC 4226 & RFC 6238 (kèm biến thể Steam Guard).

Mục tiêu:
- Chứa các hàm thuần (pure functions) cho phần thuật toán: encode counter, HMAC, truncate, format code.
- Không đọc/ghi file, không đọc đồng hồ; Token (token.py) lo phần state và thời gian.
- Các hằng số mặc định của otpauth URI nằm ở đầu file.

Lưu ý:
- Secret ở đây đã là bytes (đã Base32-decode bởi token_core.base32).
- Mọi lỗi từ HMAC primitive được bọc thành CryptoFailure, không trả về code rỗng.
"""

from typing import Tuple
import hashlib
import hmac
import struct

from token_core.errors import CryptoFailure

# --- Config / constants ----------------------------------------------------
DEFAULT_DIGITS = 6          # chuẩn: 6 chữ số
DEFAULT_PERIOD = 30         # TOTP step (giây)
DEFAULT_ALGORITHM = "sha1"
DEFAULT_COUNTER = 0
SECRET_BYTES = 20           # 160-bit secret (common practice)
ALLOWED_DIGITS = (6, 8)

# Steam Guard: issuer "Steam" dùng alphabet riêng thay cho chữ số thập phân
STEAM_ISSUER = "Steam"
STEAM_CHARS = "23456789BCDFGHJKMNPQRTVWXY"
STEAM_MAX_SIGNIFICANT = 7      # 26**7 > 2**31

# Tên canonical (in hoa) -> hashlib constructor.
# MD5 không có mặt: digest 16 byte quá ngắn cho dynamic truncation (offset tối đa 15 + 4 byte).
SUPPORTED_ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA224": hashlib.sha224,
    "SHA256": hashlib.sha256,
    "SHA384": hashlib.sha384,
    "SHA512": hashlib.sha512,
}

_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


# --- RFC helpers -----------------------------------------------------------
def is_supported_algorithm(name: str) -> bool:
    """True nếu `name` (đã upper-case) là một keyed-hash algorithm được hỗ trợ."""
    return name in SUPPORTED_ALGORITHMS


def int_to_bytes(i: int) -> bytes:
    """
    Chuyển moving factor (counter / time-step) sang 8-byte big-endian như RFC4226 yêu cầu.

    Giá trị âm hoặc vượt 64-bit được wrap theo two's complement (giống long của Java),
    vì counter HOTP có thể import từ URI với bất kỳ giá trị 64-bit signed nào.

    Ví dụ: int_to_bytes(1) -> b'\x00\x00\x00\x00\x00\x00\x00\x01'
    """
    return struct.pack(">Q", i & _UINT64_MASK)


def hmac_digest(algorithm: str, key: bytes, message: bytes) -> bytes:
    """
    Tính HMAC(key, message) với hash `algorithm` (tên canonical, ví dụ "SHA256").

    Raises:
        CryptoFailure: nếu algorithm không được hỗ trợ hoặc key không hợp lệ với primitive.
    """
    digestmod = SUPPORTED_ALGORITHMS.get(algorithm)
    if digestmod is None:
        raise CryptoFailure(f"Unsupported HMAC algorithm: {algorithm!r}")
    try:
        return hmac.new(key, message, digestmod).digest()
    except (TypeError, ValueError) as e:
        raise CryptoFailure(f"HMAC-{algorithm} rejected the key") from e


def dynamic_truncate(digest: bytes) -> int:
    """
    Áp dụng dynamic truncation theo RFC4226.

    - Lấy offset = last_byte & 0x0F
    - Lấy 4 bytes từ offset, clear MSB (0x7F) cho byte đầu
    - Trả về integer 31-bit (unsigned)

    Raises:
        CryptoFailure: nếu digest ngắn hơn offset + 4 (hash không dùng được cho OTP)
    """
    offset = digest[-1] & 0x0F
    if len(digest) < offset + 4:
        raise CryptoFailure(f"Digest of {len(digest)} bytes is too short to truncate")
    return (
        ((digest[offset] & 0x7F) << 24)
        | ((digest[offset + 1] & 0xFF) << 16)
        | ((digest[offset + 2] & 0xFF) << 8)
        | (digest[offset + 3] & 0xFF)
    )


def format_decimal(binary: int, digits: int) -> str:
    """binary mod 10^digits, zero-pad đủ `digits` ký tự."""
    return str(binary % (10 ** digits)).zfill(digits)


def format_steam(binary: int, digits: int) -> str:
    """
    Format code theo alphabet Steam Guard (26 ký tự).

    Chữ số ít ý nghĩa nhất đứng TRƯỚC (ngược với format thập phân). Steam client
    sinh code đúng theo thứ tự này, không được đảo lại.

    Giá trị 31-bit có tối đa STEAM_MAX_SIGNIFICANT chữ số base-26; các vị trí sau đó
    luôn là STEAM_CHARS[0] nên được pad thẳng thay vì lặp từng ký tự.
    """
    chars = []
    for _ in range(min(digits, STEAM_MAX_SIGNIFICANT)):
        chars.append(STEAM_CHARS[binary % len(STEAM_CHARS)])
        binary //= len(STEAM_CHARS)
    return "".join(chars) + STEAM_CHARS[0] * (digits - len(chars))


def hotp_code(
    key: bytes,
    moving_factor: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = "SHA1",
    steam: bool = False,
) -> str:
    """
    Sinh một mã OTP cho một moving factor (HOTP core, dùng chung cho cả TOTP).

    Steps:
    1. Message = 8-byte moving factor (big-endian)
    2. HMAC-<algorithm>(key, message)
    3. Dynamic truncate -> binary (31-bit)
    4. Steam: alphabet 26 ký tự; còn lại: binary % 10^digits, zero-pad

    Arguments:
        key: raw secret bytes
        moving_factor: counter (HOTP) hoặc time-step (TOTP)
        digits: độ dài code
        algorithm: tên canonical trong SUPPORTED_ALGORITHMS
        steam: True nếu token thuộc issuer Steam

    Raises:
        CryptoFailure: nếu HMAC primitive từ chối algorithm / key
    """
    digest = hmac_digest(algorithm, key, int_to_bytes(moving_factor))
    binary = dynamic_truncate(digest)
    if steam:
        return format_steam(binary, digits)
    return format_decimal(binary, digits)


def time_step(now_ms: int, period: int) -> int:
    """Moving factor TOTP: floor(now_ms / 1000 / period)."""
    return now_ms // 1000 // period


def step_window(step: int, period: int) -> Tuple[int, int]:
    """Khoảng hiệu lực [start, until) tính bằng milliseconds của một time-step."""
    return step * period * 1000, (step + 1) * period * 1000
