"""Exception types cho token_core."""


class InvalidTokenUri(ValueError):
    """otpauth URI không hợp lệ (scheme, authority, path, tham số hoặc secret)."""


class CryptoFailure(RuntimeError):
    """HMAC primitive từ chối algorithm hoặc key khi sinh code."""


class Base32DecodingError(ValueError):
    """Chuỗi Base32 không decode được."""
