"""
base32.py — Base32 codec (RFC 4648) cho secret trong otpauth URI.

- Authenticator apps thường xuất secret không có padding '=' và đôi khi chia nhóm
  bằng dấu cách hoặc '-', nên decode() chuẩn hóa trước rồi mới decode strict.
- encode() trả chuỗi in hoa, không padding (giống format của Google Authenticator).
"""

import base64
import binascii
import re

from token_core.errors import Base32DecodingError

_SEPARATORS = re.compile(r"[\s-]+")


def decode(encoded: str) -> bytes:
    """
    Decode Base32 secret -> raw bytes.

    Raises:
        Base32DecodingError: nếu có ký tự ngoài alphabet hoặc độ dài không hợp lệ
    """
    if encoded is None:
        raise Base32DecodingError("secret is missing")
    compact = _SEPARATORS.sub("", encoded).rstrip("=")
    # upper() biến một số ký tự non-ASCII thành ASCII ("ſ" -> "S"), nên phải chặn trước
    if not compact.isascii():
        raise Base32DecodingError("Invalid Base32 secret: non-ASCII characters")
    compact = compact.upper()
    padding = "=" * (-len(compact) % 8)
    try:
        return base64.b32decode(compact + padding)
    except (binascii.Error, ValueError) as e:
        raise Base32DecodingError("Invalid Base32 secret") from e


def encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=")
