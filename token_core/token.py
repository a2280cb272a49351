"""
token.py — Token: parse / validate / generate / serialize cho otpauth:// URI.

Vòng đời:
    Token.parse(uri) -> generate_codes() -> (set_issuer / set_label) -> to_uri()

Token không tự lưu trữ. Các thao tác làm thay đổi state báo cho caller biết phải lưu:
- set_issuer() / set_label() trả về True khi alias thay đổi
- generate_codes() trả TokenCode với changed=True cho HOTP (counter đã tăng)
Caller lưu lại bằng to_uri(include_internal=True) rồi đọc lại bằng
Token.parse(..., allow_internal_fields=True).

Ví dụ:
    >>> token = Token.parse("otpauth://totp/ACME:alice?secret=JBSWY3DPEHPK3PXP")
    >>> codes = token.generate_codes()
    >>> codes.code, codes.next.code
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit
import logging
import re
import threading
import time

from token_core import base32
from token_core.alias import AliasField
from token_core.errors import Base32DecodingError, InvalidTokenUri
from token_core.otp_core import (
    ALLOWED_DIGITS,
    DEFAULT_ALGORITHM,
    DEFAULT_COUNTER,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    STEAM_ISSUER,
    hotp_code,
    is_supported_algorithm,
    step_window,
    time_step,
)

logger = logging.getLogger(__name__)

SCHEME = "otpauth"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT32_RANGE = (-(2 ** 31), 2 ** 31 - 1)
_INT64_RANGE = (-(2 ** 63), 2 ** 63 - 1)


class TokenType(Enum):
    HOTP = "hotp"
    TOTP = "totp"


_TOKEN_TYPES = {t.value: t for t in TokenType}


@dataclass(frozen=True)
class TokenCode:
    """
    Một code kèm khoảng hiệu lực [start_ms, until_ms).

    - next: code kế tiếp (TOTP look-ahead), None với HOTP
    - changed: True nếu việc sinh code đã thay đổi Token (HOTP), caller phải lưu token
    """

    code: str
    start_ms: int
    until_ms: int
    next: Optional["TokenCode"] = None
    changed: bool = False

    def active(self, now_ms: Optional[int] = None) -> Optional["TokenCode"]:
        """Code đang có hiệu lực tại now_ms (có thể là self hoặc next), None nếu đã hết hạn."""
        if now_ms is None:
            now_ms = _now_ms()
        if self.start_ms <= now_ms < self.until_ms:
            return self
        if self.next is None:
            return None
        return self.next.active(now_ms)

    def current_code(self, now_ms: Optional[int] = None) -> Optional[str]:
        active = self.active(now_ms)
        return active.code if active is not None else None

    def remaining_ms(self, now_ms: Optional[int] = None) -> int:
        if now_ms is None:
            now_ms = _now_ms()
        active = self.active(now_ms)
        if active is None:
            return 0
        return active.until_ms - now_ms

    def progress(self, now_ms: Optional[int] = None) -> float:
        """Phần đã trôi qua của cửa sổ hiện tại, trong khoảng [0, 1]."""
        if now_ms is None:
            now_ms = _now_ms()
        active = self.active(now_ms)
        if active is None:
            return 1.0
        return (now_ms - active.start_ms) / (active.until_ms - active.start_ms)


class Token:
    """
    Một HOTP/TOTP token import từ otpauth:// URI.

    Base fields (issuer_external, issuer_internal, label, secret, digits,
    algorithm, period, token_type) cố định sau khi tạo. Chỉ alias và counter
    (HOTP) thay đổi được.
    """

    def __init__(
        self,
        token_type: TokenType,
        label: str,
        secret: bytes,
        issuer_external: str = "",
        issuer_internal: Optional[str] = None,
        algorithm: str = DEFAULT_ALGORITHM,
        digits: int = DEFAULT_DIGITS,
        period: int = DEFAULT_PERIOD,
        counter: int = DEFAULT_COUNTER,
    ):
        if not isinstance(token_type, TokenType):
            _reject(f"unknown token type {token_type!r}")
        algorithm = algorithm.upper()
        if not is_supported_algorithm(algorithm):
            _reject(f"unsupported algorithm {algorithm!r}")
        if issuer_external != STEAM_ISSUER and digits not in ALLOWED_DIGITS:
            _reject(f"digits must be one of {ALLOWED_DIGITS}, got {digits}")
        if not secret:
            _reject("secret is empty")

        self.token_type = token_type
        self.issuer_external = issuer_external
        self.issuer_internal = issuer_internal
        self.label = label
        self.secret = bytes(secret)
        self.algorithm = algorithm
        self.digits = digits
        # Avoid divide-by-zero: period <= 0 được coi là mặc định, không bị reject
        self.period = period if period > 0 else DEFAULT_PERIOD
        self.counter = counter if token_type is TokenType.HOTP else DEFAULT_COUNTER

        self._issuer = AliasField(issuer_external)
        self._label = AliasField(label)
        self._lock = threading.Lock()

    # --- Construction ------------------------------------------------------
    @classmethod
    def from_fields(cls, token_type, label, secret_b32, **fields) -> "Token":
        """Tạo Token từ field rời, secret dạng Base32 (cùng validation như parse)."""
        if not isinstance(token_type, TokenType):
            token_type = _TOKEN_TYPES.get(token_type)
            if token_type is None:
                _reject("token type must be 'totp' or 'hotp'")
        if not label:
            _reject("label is empty")
        try:
            secret = base32.decode(secret_b32)
        except Base32DecodingError as e:
            raise InvalidTokenUri(str(e)) from e
        return cls(token_type, label, secret, **fields)

    @classmethod
    def parse(cls, uri_text: str, allow_internal_fields: bool = False) -> "Token":
        """
        Parse và validate một otpauth:// URI.

        Arguments:
            uri_text: otpauth://{totp|hotp}/[ISSUER:]LABEL?secret=...&...
            allow_internal_fields: chỉ True với URI do chính app export (backup tin cậy);
                khi đó issueralt / labelalt được áp dụng làm alias. URI từ QR code
                bên thứ ba không được phép cài alias.

        Raises:
            InvalidTokenUri: ở lần kiểm tra đầu tiên thất bại; không có Token dở dang nào được trả về
        """
        if uri_text is None:
            _reject("uri is missing")

        scheme, sep, _ = uri_text.partition(":")
        # urlsplit lower-case scheme, nên so sánh trên text gốc
        if not sep or scheme != SCHEME:
            _reject(f"scheme must be {SCHEME!r}")

        try:
            parts = urlsplit(uri_text)
        except ValueError as e:
            raise InvalidTokenUri(f"malformed uri: {e}") from e

        token_type = _TOKEN_TYPES.get(parts.netloc)
        if token_type is None:
            _reject(f"authority must be 'totp' or 'hotp', got {parts.netloc!r}")

        path = unquote(parts.path)
        if path.startswith("/"):
            path = path[1:]
        if not path:
            _reject("path is empty")

        issuer_external, sep, label = path.partition(":")
        if not sep:
            issuer_external, label = "", path

        params = _query_params(parts.query)

        algorithm = params.get("algorithm", DEFAULT_ALGORITHM).upper()
        if not is_supported_algorithm(algorithm):
            _reject(f"unsupported algorithm {algorithm!r}")

        digits = _parse_int(params.get("digits", str(DEFAULT_DIGITS)), "digits", _INT32_RANGE)
        if issuer_external != STEAM_ISSUER and digits not in ALLOWED_DIGITS:
            _reject(f"digits must be one of {ALLOWED_DIGITS}, got {digits}")

        period = _parse_int(params.get("period", str(DEFAULT_PERIOD)), "period", _INT32_RANGE)

        counter = DEFAULT_COUNTER
        if token_type is TokenType.HOTP:
            counter = _parse_int(params.get("counter", str(DEFAULT_COUNTER)), "counter", _INT64_RANGE)

        try:
            secret = base32.decode(params.get("secret"))
        except Base32DecodingError as e:
            raise InvalidTokenUri(str(e)) from e

        token = cls(
            token_type,
            label,
            secret,
            issuer_external=issuer_external,
            issuer_internal=params.get("issuer"),
            algorithm=algorithm,
            digits=digits,
            period=period,
            counter=counter,
        )

        if allow_internal_fields:
            token.set_issuer(params.get("issueralt"))
            token.set_label(params.get("labelalt"))

        return token

    # --- Accessors ---------------------------------------------------------
    @property
    def issuer_alias(self) -> Optional[str]:
        return self._issuer.override

    @property
    def label_alias(self) -> Optional[str]:
        return self._label.override

    def get_id(self) -> str:
        if self.issuer_internal:
            return f"{self.issuer_internal}:{self.label}"
        if self.issuer_external:
            return f"{self.issuer_external}:{self.label}"
        return self.label

    def get_issuer(self) -> str:
        return self._issuer.effective()

    def get_label(self) -> str:
        return self._label.effective()

    def set_issuer(self, issuer: Optional[str]) -> bool:
        """Đặt issuer alias. Trả True nếu state thay đổi, caller PHẢI lưu token ngay."""
        with self._lock:
            return self._issuer.set(issuer)

    def set_label(self, label: Optional[str]) -> bool:
        """Đặt label alias. Trả True nếu state thay đổi, caller PHẢI lưu token ngay."""
        with self._lock:
            return self._label.set(label)

    @property
    def is_steam(self) -> bool:
        return self.issuer_external == STEAM_ISSUER

    # --- Code generation ---------------------------------------------------
    def generate_codes(self, now_ms: Optional[int] = None) -> TokenCode:
        """
        Sinh code hiện tại (và code kế tiếp với TOTP).

        HOTP: dùng counter hiện tại rồi tăng counter lên 1 (atomic theo từng token);
        TokenCode.changed = True nên caller phải lưu lại token.
        TOTP: step = now_ms // 1000 // period, kèm code của step + 1 trong `next`.

        Raises:
            CryptoFailure: nếu HMAC primitive từ chối algorithm / key
        """
        if now_ms is None:
            now_ms = _now_ms()

        if self.token_type is TokenType.HOTP:
            return self._generate_hotp(now_ms)
        if self.token_type is TokenType.TOTP:
            return self._generate_totp(now_ms)
        raise AssertionError(f"unhandled token type {self.token_type!r}")

    def _code(self, moving_factor: int) -> str:
        return hotp_code(self.secret, moving_factor, self.digits, self.algorithm, steam=self.is_steam)

    def _generate_hotp(self, now_ms: int) -> TokenCode:
        with self._lock:
            code = self._code(self.counter)
            used = self.counter
            self.counter = _wrap_int64(self.counter + 1)
        logger.debug("HOTP %s: used counter=%d, next counter=%d", self.get_id(), used, self.counter)
        return TokenCode(code, now_ms, now_ms + self.period * 1000, changed=True)

    def _generate_totp(self, now_ms: int) -> TokenCode:
        step = time_step(now_ms, self.period)
        next_start, next_until = step_window(step + 1, self.period)
        upcoming = TokenCode(self._code(step + 1), next_start, next_until)
        start, until = step_window(step, self.period)
        return TokenCode(self._code(step), start, until, next=upcoming)

    # --- Serialization -----------------------------------------------------
    def to_uri(self, include_internal: bool = False) -> str:
        """
        Export token thành otpauth:// URI.

        - issuer: ưu tiên issuer_internal, fallback issuer_external
        - HOTP: counter export là counter + 1 (lần sinh code kế tiếp sẽ dùng counter hiện tại,
          URI export phải tiếp tục sau nó)
        - Alias chỉ được export khi include_internal=True (backup nội bộ)
        """
        label = quote(self.label, safe="")
        if self.issuer_external:
            issuer_label = f"{quote(self.issuer_external, safe='')}:{label}"
        elif ":" in self.label:
            # issuer rỗng nhưng label có ':': giữ dấu ':' đầu để parse lại đúng label
            issuer_label = f":{label}"
        else:
            issuer_label = label

        params = [
            ("secret", base32.encode(self.secret)),
            ("issuer", self.issuer_internal if self.issuer_internal is not None else self.issuer_external),
            ("algorithm", self.algorithm),
            ("digits", str(self.digits)),
            ("period", str(self.period)),
        ]
        if self.token_type is TokenType.HOTP:
            params.append(("counter", str(_wrap_int64(self.counter + 1))))
        if include_internal:
            if self.issuer_alias is not None:
                params.append(("issueralt", self.issuer_alias))
            if self.label_alias is not None:
                params.append(("labelalt", self.label_alias))

        query = urlencode(params, quote_via=quote)
        return f"{SCHEME}://{self.token_type.value}/{issuer_label}?{query}"

    def __str__(self):
        return self.to_uri()

    def __repr__(self):
        return f"Token(id={self.get_id()!r}, type={self.token_type.name}, algorithm={self.algorithm}, digits={self.digits})"


# --- Helpers ---------------------------------------------------------------
def _now_ms() -> int:
    return int(time.time() * 1000)


def _reject(reason: str):
    logger.debug("Rejected otpauth URI: %s", reason)
    raise InvalidTokenUri(reason)


def _query_params(query: str) -> dict:
    """Query string -> dict; '+' là dấu cách, tham số lặp lại thì lấy giá trị đầu tiên."""
    params = {}
    for key, value in parse_qsl(query, keep_blank_values=True):
        params.setdefault(key, value)
    return params


def _parse_int(text: str, name: str, bounds) -> int:
    """Parse integer kiểu Integer.parseInt: chỉ [+-]?[0-9]+ và phải nằm trong bounds."""
    if not _INT_RE.fullmatch(text):
        _reject(f"{name} is not an integer: {text!r}")
    value = int(text)
    low, high = bounds
    if not low <= value <= high:
        _reject(f"{name} out of range: {text!r}")
    return value


def _wrap_int64(value: int) -> int:
    return (value - _INT64_RANGE[0]) % 2 ** 64 + _INT64_RANGE[0]
