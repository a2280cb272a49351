"""
token_core package
==================

Parse, validate, sinh mã và export HOTP/TOTP token theo otpauth:// URI
(RFC 4226 & RFC 6238, kèm biến thể Steam Guard).

──────────────────────────────────────────────
Giải thuật cốt lõi
──────────────────────────────────────────────
- HOTP: code = Truncate(HMAC-<ALG>(key=secret, msg=counter)) mod 10^digits
  → counter tăng 1 sau mỗi lần sinh code.

- TOTP: HOTP với counter = floor(now_ms / 1000 / period)
  → kèm mã của step kế tiếp để UI hiển thị trước.

- Steam Guard (issuer "Steam"): thay vì mod 10^digits, lấy lần lượt binary % 26
  trong alphabet "23456789BCDFGHJKMNPQRTVWXY".

──────────────────────────────────────────────
Ví dụ sử dụng nhanh
──────────────────────────────────────────────
>>> from token_core import Token
>>> token = Token.parse("otpauth://totp/ACME:alice?secret=JBSWY3DPEHPK3PXP")
>>> codes = token.generate_codes()
>>> print("Mã TOTP:", codes.code, "mã kế tiếp:", codes.next.code)
>>> token.set_label("Alice (work)")    # True → phải lưu lại token
>>> backup = token.to_uri(include_internal=True)
"""
# Can be imported as: from token_core import <name>
from token_core.errors import Base32DecodingError, CryptoFailure, InvalidTokenUri
from token_core.token import Token, TokenCode, TokenType

__all__ = [
    "Base32DecodingError",
    "CryptoFailure",
    "InvalidTokenUri",
    "Token",
    "TokenCode",
    "TokenType",
]
